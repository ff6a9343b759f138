"""
PDF page rasterizer using PyMuPDF.

Renders each page at a fixed scale into a JPEG preview. The preview is both
what the vision model sees and the source the visual parts are cropped from.
"""

from pathlib import Path
from typing import Iterator, Optional

import fitz  # PyMuPDF

from pdfdeck.errors import InvalidSourceError, RasterizationError
from pdfdeck.extractors.base import BaseRasterizer
from pdfdeck.models import PageRaster


class PDFRasterizer(BaseRasterizer):
    """
    Render PDF pages to fixed-resolution JPEG previews.

    A 2x zoom keeps small text legible to the model while keeping the
    request payload reasonable; quality 80 JPEG does the same for size.
    """

    DEFAULT_SCALE = 2.0
    DEFAULT_JPEG_QUALITY = 80

    def __init__(
        self,
        scale: float = DEFAULT_SCALE,
        jpeg_quality: int = DEFAULT_JPEG_QUALITY,
        max_pages: Optional[int] = None,
    ):
        super().__init__(max_pages=max_pages)
        self.scale = scale
        self.jpeg_quality = jpeg_quality

    def _open(self, pdf_path: Path) -> "fitz.Document":
        pdf_path = Path(pdf_path)
        if not pdf_path.exists():
            raise InvalidSourceError(f"PDF not found: {pdf_path}")

        try:
            document = fitz.open(str(pdf_path))
        except (RuntimeError, ValueError, OSError) as e:
            raise InvalidSourceError(f"Could not open {pdf_path.name}: {e}") from e

        if not document.is_pdf:
            document.close()
            raise InvalidSourceError(f"Not a PDF file: {pdf_path.name}")
        if document.page_count == 0:
            document.close()
            raise InvalidSourceError(f"PDF has no pages: {pdf_path.name}")
        return document

    def page_count(self, pdf_path: Path) -> int:
        with self._open(pdf_path) as document:
            return document.page_count

    def iter_pages(self, pdf_path: Path) -> Iterator[PageRaster]:
        with self._open(pdf_path) as document:
            total = min(document.page_count, self.max_pages)
            if document.page_count > self.max_pages:
                print(
                    f"[Raster] {document.page_count} pages found, "
                    f"only the first {self.max_pages} will be converted"
                )
            for page_number in range(1, total + 1):
                yield self.render_page(document, page_number)

    def render_page(self, document: "fitz.Document", page_number: int) -> PageRaster:
        """Render one 1-based page of an open document."""
        try:
            page = document.load_page(page_number - 1)
            matrix = fitz.Matrix(self.scale, self.scale)
            pix = page.get_pixmap(matrix=matrix, alpha=False)
            data = pix.tobytes("jpeg", jpg_quality=self.jpeg_quality)
        except (RuntimeError, ValueError) as e:
            raise RasterizationError(f"Failed to render page {page_number}: {e}") from e

        return PageRaster(
            page_number=page_number,
            data=data,
            mime_type="image/jpeg",
            width_px=pix.width,
            height_px=pix.height,
        )
