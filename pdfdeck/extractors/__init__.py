"""
Page rasterizers for turning PDF pages into preview images.

Backed by PyMuPDF, which needs no external binaries such as Poppler.
"""

from pdfdeck.extractors.base import BaseRasterizer
from pdfdeck.extractors.rasterizer import PDFRasterizer

__all__ = ["BaseRasterizer", "PDFRasterizer"]
