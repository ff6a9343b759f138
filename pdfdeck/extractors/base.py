"""
Base rasterizer interface.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterator, Optional

from pdfdeck.models import PageRaster


class BaseRasterizer(ABC):
    """Abstract base class for page rasterizers."""

    DEFAULT_MAX_PAGES = 100

    def __init__(self, max_pages: Optional[int] = None):
        # Hard ceiling: callers may lower the cap, never raise it
        if max_pages is None:
            max_pages = self.DEFAULT_MAX_PAGES
        self.max_pages = min(max(int(max_pages), 1), self.DEFAULT_MAX_PAGES)
        self.name = self.__class__.__name__.replace("Rasterizer", "").lower()

    @abstractmethod
    def page_count(self, pdf_path: Path) -> int:
        """
        Count the pages of the source document.

        Raises:
            InvalidSourceError: if the file cannot be opened as a PDF
        """
        pass

    @abstractmethod
    def iter_pages(self, pdf_path: Path) -> Iterator[PageRaster]:
        """
        Render pages 1..min(page_count, max_pages) in order.

        Pages past the cap are never rendered.

        Raises:
            InvalidSourceError: if the file cannot be opened as a PDF
            RasterizationError: if a page fails to render
        """
        pass

    def rendered_page_count(self, pdf_path: Path) -> int:
        """Number of pages `iter_pages` will yield."""
        return min(self.page_count(pdf_path), self.max_pages)
