"""
Main orchestration pipeline for PDFDeck.

Runs one conversion job through its states:

    IDLE -> DECOMPOSING -> PREVIEWING -> ASSEMBLING -> COMPLETED | ERROR

`load` renders the page previews, the caller then edits the per-page
settings, and `convert` analyzes every enabled page and writes the deck.
"""

import time
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

from pdfdeck.audit import AuditHTMLGenerator
from pdfdeck.errors import (
    ConfigurationRequiredError,
    InvalidTransitionError,
    NoSlidesSelectedError,
    PipelineError,
    RasterizationError,
    SlideAnalysisError,
    UnknownPageError,
)
from pdfdeck.extractors import BaseRasterizer, PDFRasterizer
from pdfdeck.models import (
    DeckDocument,
    DeckMeta,
    ExtractionMode,
    JobStatus,
    SlideJobItem,
    SlideOutcome,
    SlideStructure,
)
from pdfdeck.preprocessors import ImageCropper
from pdfdeck.prompt import SceneAnalyzer, build_full_image_slide, build_slide, policy_for
from pdfdeck.renderers import PPTXRenderer, resolve_output_path


ProgressCallback = Callable[[float, str], None]


class ConversionPipeline:
    """
    One PDF-to-deck conversion job.

    Work is strictly sequential: one page rendered or analyzed at a time,
    in page order. `reset()` may be called while `load` or `convert` runs
    in another thread; the running call finishes and its result is dropped.
    """

    def __init__(
        self,
        analyzer: Optional[SceneAnalyzer] = None,
        rasterizer: Optional[BaseRasterizer] = None,
        cropper: Optional[ImageCropper] = None,
        renderer: Optional[PPTXRenderer] = None,
        require_credentials: bool = True,
        generate_audit: bool = False,
        save_intermediate: bool = False,
        pacing_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        """
        Initialize pipeline.

        Args:
            analyzer: Scene analyzer; only FULL_IMAGE pages can run without one
            rasterizer: Page rasterizer (default: PyMuPDF at 2x, capped at 100 pages)
            cropper: Visual part cropper
            renderer: Deck renderer
            require_credentials: Refuse to load without an analyzer
            generate_audit: Write <name>.audit.html next to the deck
            save_intermediate: Write <name>.slides.json next to the deck
            pacing_delay: Seconds to wait between analyzed slides
            sleep: Sleep function (replaced in tests)
            progress_callback: Called with (progress, message) after every step
        """
        self.analyzer = analyzer
        self.rasterizer = rasterizer or PDFRasterizer()
        self.cropper = cropper or ImageCropper()
        self.renderer = renderer or PPTXRenderer()
        self.require_credentials = require_credentials
        self.generate_audit = generate_audit
        self.save_intermediate = save_intermediate
        self.pacing_delay = pacing_delay
        self.sleep = sleep
        self.progress_callback = progress_callback

        self._generation = 0
        self._clear()

    def _clear(self) -> None:
        self.status = JobStatus.IDLE
        self.progress = 0.0
        self.message = ""
        self.error: Optional[str] = None
        self.source_path: Optional[Path] = None
        self.items: List[SlideJobItem] = []
        self.slides: List[SlideStructure] = []
        self.outcomes: List[SlideOutcome] = []
        self.output_path: Optional[Path] = None
        self.artifacts: Dict[str, Path] = {}

    # --- State ---

    @property
    def failed_pages(self) -> List[int]:
        return [o.page_number for o in self.outcomes if o.status == "fallback"]

    def _require(self, *states: JobStatus) -> None:
        if self.status not in states:
            allowed = ", ".join(s.value for s in states)
            raise InvalidTransitionError(
                f"Not allowed while {self.status.value} (needs {allowed})"
            )

    def _report(self, generation: int, progress: float, message: str) -> bool:
        """Publish progress. Returns False once the job has been reset."""
        if generation != self._generation:
            return False
        self.progress = progress
        self.message = message
        if self.progress_callback:
            self.progress_callback(progress, message)
        return True

    def _fail(self, generation: int, error: Exception) -> None:
        if generation != self._generation:
            return
        self.status = JobStatus.ERROR
        self.error = str(error)
        self._report(generation, self.progress, f"Error: {error}")
        print(f"[Pipeline] Error: {error}")

    def reset(self) -> None:
        """Back to IDLE from any state. Work still running is abandoned."""
        self._generation += 1
        self._clear()
        print("[Pipeline] Job reset")

    # --- Decomposing ---

    def load(self, pdf_path: Path) -> List[SlideJobItem]:
        """
        Render every page (up to the cap) into a slide job item.

        Args:
            pdf_path: Path to input PDF file

        Returns:
            The job items, all enabled in BALANCED mode

        Raises:
            ConfigurationRequiredError: no analyzer and credentials are required
            InvalidSourceError: the file is not a readable PDF
            RasterizationError: a page failed to render
        """
        self._require(JobStatus.IDLE)
        if self.require_credentials and self.analyzer is None:
            raise ConfigurationRequiredError("A Gemini API key is required before converting")

        pdf_path = Path(pdf_path)
        generation = self._generation
        self.source_path = pdf_path
        self.status = JobStatus.DECOMPOSING
        self._report(generation, 0.0, "Reading PDF")

        print(f"\n{'='*60}")
        print("PDFDeck: rendering previews")
        print(f"{'='*60}")
        print(f"Input: {pdf_path}")
        print(f"{'='*60}\n")

        items: List[SlideJobItem] = []
        try:
            total = self.rasterizer.rendered_page_count(pdf_path)
            for i, raster in enumerate(self.rasterizer.iter_pages(pdf_path), start=1):
                items.append(SlideJobItem(page_number=raster.page_number, preview=raster))
                if not self._report(generation, i / total * 100, f"Rendering previews ({i}/{total})"):
                    print("[Pipeline] Load abandoned")
                    return []
        except PipelineError as e:
            self._fail(generation, e)
            raise
        except Exception as e:
            error = RasterizationError(f"Failed to read {pdf_path.name}: {e}")
            self._fail(generation, error)
            raise error from e

        if generation != self._generation:
            return []

        self.items = items
        self.status = JobStatus.PREVIEWING
        self._report(generation, 0.0, f"{len(items)} pages ready")
        print(f"[Pipeline] {len(items)} previews ready")
        return items

    # --- Previewing ---

    def _item(self, page_number: int) -> SlideJobItem:
        for item in self.items:
            if item.page_number == page_number:
                return item
        raise UnknownPageError(f"No page {page_number} in this job")

    def set_enabled(self, page_number: int, enabled: bool) -> SlideJobItem:
        self._require(JobStatus.PREVIEWING)
        item = self._item(page_number)
        item.enabled = enabled
        return item

    def set_all_enabled(self, enabled: bool) -> None:
        self._require(JobStatus.PREVIEWING)
        for item in self.items:
            item.enabled = enabled

    def set_mode(self, page_number: int, mode: ExtractionMode) -> SlideJobItem:
        self._require(JobStatus.PREVIEWING)
        item = self._item(page_number)
        item.mode = ExtractionMode(mode)
        return item

    def set_mode_for_enabled(self, mode: ExtractionMode) -> None:
        """Apply one mode to every enabled page."""
        self._require(JobStatus.PREVIEWING)
        mode = ExtractionMode(mode)
        for item in self.enabled_items():
            item.mode = mode

    def enabled_items(self) -> List[SlideJobItem]:
        return [item for item in self.items if item.enabled]

    # --- Assembling ---

    def convert(self, output_path: Path) -> Optional[Path]:
        """
        Build a slide for every enabled page and write the deck.

        A slide whose analysis fails becomes an empty white slide and the
        batch continues.

        Args:
            output_path: Deck path; .pptx is appended if missing

        Returns:
            Path to the generated PPTX file (None if the job was reset meanwhile)

        Raises:
            NoSlidesSelectedError: every page is disabled
            ConfigurationRequiredError: a page needs the model and there is no analyzer
            DeckWriteError: the deck could not be written
        """
        self._require(JobStatus.PREVIEWING)
        enabled = self.enabled_items()
        if not enabled:
            raise NoSlidesSelectedError("Select at least one slide to convert")
        if self.analyzer is None and any(policy_for(i.mode).uses_model for i in enabled):
            raise ConfigurationRequiredError("A Gemini API key is required for analyzed slides")

        output_path = resolve_output_path(output_path)
        generation = self._generation
        self.status = JobStatus.ASSEMBLING
        self.outcomes = []
        self._report(generation, 0.0, "Starting conversion")

        print(f"\n{'='*60}")
        print("PDFDeck: assembling deck")
        print(f"{'='*60}")
        print(f"Slides: {len(enabled)} of {len(self.items)}")
        print(f"Output: {output_path}")
        print(f"{'='*60}\n")

        slides: List[SlideStructure] = []
        outcomes: List[SlideOutcome] = []
        total = len(enabled)

        try:
            for i, item in enumerate(enabled, start=1):
                self._report(generation, (i - 1) / total * 100, f"Converting slide {item.page_number} ({i}/{total})")
                slide, outcome = self._convert_item(item)
                if generation != self._generation:
                    print("[Pipeline] Conversion abandoned")
                    return None
                slides.append(slide)
                outcomes.append(outcome)
                self.outcomes = list(outcomes)
                self._report(generation, i / total * 100, f"Converted slide {item.page_number} ({i}/{total})")

                if policy_for(item.mode).uses_model and i < total and self.pacing_delay > 0:
                    self.sleep(self.pacing_delay)

            self._report(generation, 100.0, "Writing deck")
            written = self.renderer.render(slides, output_path)
        except PipelineError as e:
            self._fail(generation, e)
            raise
        except Exception as e:
            error = PipelineError(f"Conversion failed: {e}")
            self._fail(generation, error)
            raise error from e

        if generation != self._generation:
            return None

        self.slides = slides
        self.output_path = written
        self.artifacts = {"pptx": written}
        self._write_artifacts(written)

        self.status = JobStatus.COMPLETED
        failed = self.failed_pages
        summary = f"Done ({len(slides)} slides"
        summary += f", {len(failed)} failed)" if failed else ")"
        self._report(generation, 100.0, summary)

        print(f"\n{'='*60}")
        print("✓ Pipeline Complete")
        print(f"{'='*60}")
        for kind, path in self.artifacts.items():
            print(f"{kind}: {path}")
        if failed:
            print(f"Failed slides (left empty): {', '.join(str(p) for p in failed)}")
        print(f"{'='*60}\n")

        return written

    def _convert_item(self, item: SlideJobItem):
        """One enabled page -> (slide, outcome). Never raises SlideAnalysisError."""
        page = item.page_number

        if not policy_for(item.mode).uses_model:
            slide = build_full_image_slide(item.preview, self.cropper)
            if slide.is_empty:
                print(f"[Pipeline] Slide {page}: full-page crop failed, using empty slide")
                return slide, SlideOutcome(
                    page_number=page, mode=item.mode, status="fallback", reason="Page image could not be cropped"
                )
            return slide, SlideOutcome(page_number=page, mode=item.mode)

        try:
            scene = self.analyzer.analyze(item.preview, item.mode)
            slide = build_slide(scene, item.preview, item.mode, self.cropper)
        except SlideAnalysisError as e:
            reason = str(e)
        except (OSError, ValueError) as e:
            reason = f"Could not build slide: {e}"
        else:
            return slide, SlideOutcome(page_number=page, mode=item.mode)

        print(f"[Pipeline] Slide {page} failed, using empty slide: {reason}")
        return SlideStructure.empty(page), SlideOutcome(
            page_number=page, mode=item.mode, status="fallback", reason=reason
        )

    def _write_artifacts(self, deck_path: Path) -> None:
        """Side outputs; a failure here never fails the job."""
        stem = deck_path.with_suffix("")

        if self.save_intermediate:
            path = stem.with_name(stem.name + ".slides.json")
            try:
                path.write_text(self.to_document().to_json(), encoding="utf-8")
                self.artifacts["slides"] = path
                print(f"[Pipeline] Saved slides to {path}")
            except OSError as e:
                print(f"[Pipeline] Warning: could not save slides JSON: {e}")

        if self.generate_audit:
            path = stem.with_name(stem.name + ".audit.html")
            meta = {
                "source": self.source_path.name if self.source_path else "",
                "created_at": datetime.now().isoformat(timespec="seconds"),
            }
            try:
                self.artifacts["audit"] = AuditHTMLGenerator().generate(
                    self.items, self.slides, self.outcomes, path, meta
                )
            except OSError as e:
                print(f"[Audit] Warning: could not write report: {e}")

    def to_document(self) -> DeckDocument:
        """The assembled slides in their saved form."""
        return DeckDocument(
            meta=DeckMeta(
                source=self.source_path.name if self.source_path else "",
                created_at=datetime.now().isoformat(timespec="seconds"),
                total_slides=len(self.slides),
                canvas_width_in=self.renderer.slide_width_inches,
                canvas_height_in=self.renderer.slide_height_inches,
            ),
            slides=self.slides,
            outcomes=self.outcomes,
        )

    @classmethod
    def from_slides_json(
        cls,
        slides_path: Path,
        output_path: Optional[Path] = None,
        renderer: Optional[PPTXRenderer] = None,
    ) -> Path:
        """
        Re-render a deck from a saved <name>.slides.json without calling the model.

        Args:
            slides_path: Path to the saved slides JSON
            output_path: Deck path (default: next to the JSON)

        Returns:
            Path to the generated PPTX file
        """
        slides_path = Path(slides_path)
        document = DeckDocument.from_json(slides_path.read_text(encoding="utf-8"))

        if output_path is None:
            name = slides_path.name
            if name.endswith(".slides.json"):
                name = name[: -len(".slides.json")]
            output_path = slides_path.with_name(name)

        print(f"\n{'='*60}")
        print("PDFDeck: rendering from saved slides")
        print(f"{'='*60}")
        print(f"Slides: {slides_path} ({len(document.slides)} slides)")
        print(f"{'='*60}\n")

        renderer = renderer or PPTXRenderer(
            slide_width_inches=document.meta.canvas_width_in,
            slide_height_inches=document.meta.canvas_height_in,
        )
        return renderer.render(document.slides, output_path)
