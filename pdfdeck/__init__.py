"""
PDFDeck: Convert slide PDFs into editable PPTX decks.

Renders each page, asks a vision model (Gemini) to describe it as shapes,
text blocks and visual parts, and rebuilds it as editable PowerPoint.
"""

__version__ = "0.1.0"
__author__ = "PDFDeck Team"

from pdfdeck.models import ExtractionMode, JobStatus, SlideJobItem, SlideStructure
from pdfdeck.pipeline import ConversionPipeline

__all__ = [
    "ExtractionMode",
    "JobStatus",
    "SlideJobItem",
    "SlideStructure",
    "ConversionPipeline",
]
