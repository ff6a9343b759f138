"""
Exception hierarchy for PDFDeck.

Three families matter to callers:
- PipelineError: fatal to the whole batch (bad source file, page render
  failure, deck write failure). The job moves to ERROR.
- SlideAnalysisError: recoverable for a single slide. The slide is replaced
  by an empty placeholder and the batch keeps going.
- Request rejections (AccessDeniedError, ConfigurationRequiredError): raised
  before any batch work starts.
"""

from typing import Optional


class PDFDeckError(Exception):
    """Base class for all PDFDeck errors."""


# --- Fatal to the batch ---


class PipelineError(PDFDeckError):
    """A failure that aborts the whole job."""


class InvalidSourceError(PipelineError):
    """The input file is missing, unreadable, or not a PDF."""


class RasterizationError(PipelineError):
    """A page could not be rendered to a preview image."""


class DeckWriteError(PipelineError):
    """The output deck could not be written."""


# --- Recoverable per slide ---


class SlideAnalysisError(PDFDeckError):
    """The model could not produce a usable scene for one slide."""


class ModelHTTPError(SlideAnalysisError):
    """The model endpoint answered with a non-success status."""

    def __init__(
        self,
        status: int,
        message: str = "",
        retry_after: Optional[float] = None,
    ):
        self.status = status
        self.retry_after = retry_after
        super().__init__(f"Model API error {status}: {message}" if message else f"Model API error {status}")


class RetryExhaustedError(SlideAnalysisError):
    """Rate limiting or overload persisted past the attempt bound."""

    def __init__(self, attempts: int, last_status: int):
        self.attempts = attempts
        self.last_status = last_status
        super().__init__(
            f"Gave up after {attempts} attempts (last status {last_status})"
        )


class SceneParseError(SlideAnalysisError):
    """The model response was not a valid scene description."""


class InvalidBoxError(PDFDeckError, ValueError):
    """A box is not [ymin, xmin, ymax, xmax]."""


# --- Request rejections ---


class AccessDeniedError(PDFDeckError):
    """No session, or the session is not allowed to do this."""

    def __init__(self, message: str = "Unauthorized", status_code: int = 401):
        self.status_code = status_code
        super().__init__(message)


class ConfigurationRequiredError(PDFDeckError):
    """A model API key is required before the job can start."""


class CredentialError(PDFDeckError):
    """A stored credential could not be decrypted."""


# --- Job state misuse ---


class InvalidTransitionError(PDFDeckError):
    """The requested action is not valid in the job's current state."""


class NoSlidesSelectedError(PDFDeckError):
    """Conversion was requested with every slide disabled."""


class UnknownPageError(PDFDeckError, LookupError):
    """No slide job item exists for the requested page."""
