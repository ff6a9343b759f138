"""
Shared test fixtures: synthetic rasters and PDFs, and fakes for the model
transport and the rasterizer. Nothing here touches the network.
"""

import io
import json
from pathlib import Path
from typing import Callable, List, Optional, Union

import fitz  # PyMuPDF
import pytest
from PIL import Image

from pdfdeck.errors import RasterizationError
from pdfdeck.extractors.base import BaseRasterizer
from pdfdeck.models import PageRaster


def make_raster(
    page_number: int = 1,
    width: int = 200,
    height: int = 100,
    color=(200, 30, 30),
) -> PageRaster:
    img = Image.new("RGB", (width, height), color)
    buffer = io.BytesIO()
    img.save(buffer, format="JPEG")
    return PageRaster(
        page_number=page_number,
        data=buffer.getvalue(),
        mime_type="image/jpeg",
        width_px=width,
        height_px=height,
    )


def make_pdf(path: Path, pages: int, width: float = 160, height: float = 90) -> Path:
    doc = fitz.open()
    for i in range(pages):
        page = doc.new_page(width=width, height=height)
        page.insert_text((10, 30), f"Page {i + 1}")
    doc.save(str(path))
    doc.close()
    return path


def scene_json(
    background_color: str = "#FFFFFF",
    shapes: Optional[list] = None,
    text_blocks: Optional[list] = None,
    visual_parts: Optional[list] = None,
) -> str:
    return json.dumps(
        {
            "background_color": background_color,
            "shapes": shapes or [],
            "text_blocks": text_blocks or [],
            "visual_parts": visual_parts or [],
        }
    )


class FakeTransport:
    """
    Model transport that replays canned answers.

    Each entry is a JSON string, an exception to raise, or a callable taking
    the request. The last entry repeats once the list is exhausted.
    """

    def __init__(self, responses: List[Union[str, Exception, Callable]]):
        self.responses = list(responses)
        self.requests = []

    def send(self, request) -> str:
        self.requests.append(request)
        index = min(len(self.requests), len(self.responses)) - 1
        response = self.responses[index]
        if callable(response) and not isinstance(response, Exception):
            response = response(request)
        if isinstance(response, Exception):
            raise response
        return response


class FakeRasterizer(BaseRasterizer):
    """Yields synthetic previews without opening a file."""

    def __init__(self, pages: int, fail_on: Optional[int] = None, max_pages: Optional[int] = None):
        super().__init__(max_pages=max_pages)
        self.pages = pages
        self.fail_on = fail_on

    def page_count(self, pdf_path: Path) -> int:
        return self.pages

    def iter_pages(self, pdf_path: Path):
        for page_number in range(1, min(self.pages, self.max_pages) + 1):
            if page_number == self.fail_on:
                raise RasterizationError(f"Failed to render page {page_number}")
            yield make_raster(page_number=page_number)


class SleepRecorder:
    """Stands in for time.sleep and remembers every requested delay."""

    def __init__(self):
        self.calls: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def raster():
    return make_raster()


@pytest.fixture
def pdf_factory(tmp_path):
    def factory(pages: int = 2, name: str = "deck.pdf", **kwargs) -> Path:
        return make_pdf(tmp_path / name, pages, **kwargs)

    return factory


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()
