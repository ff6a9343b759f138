"""
Coordinate mapping between the model's normalized box space, preview
pixels, and the output canvas.

Boxes are always [ymin, xmin, ymax, xmax] on a 0-1000 scale, whatever the
size of the raster the model looked at. Everything here is pure.
"""

import math
from typing import NamedTuple, Optional, Sequence, Tuple

from pdfdeck.errors import InvalidBoxError

NORMALIZED_SCALE = 1000.0

# 16:9 widescreen canvas, in inches
SLIDE_WIDTH_IN = 13.33
SLIDE_HEIGHT_IN = 7.5

# (Kw, Kh) multipliers applied to placed width/height.
# Text boxes are inflated to absorb font-metric differences between the
# source rendering and PowerPoint.
TEXT_INFLATION: Tuple[float, float] = (1.25, 1.10)
UNIT_INFLATION: Tuple[float, float] = (1.0, 1.0)

FULL_BOX: Tuple[float, float, float, float] = (0.0, 0.0, NORMALIZED_SCALE, NORMALIZED_SCALE)


class Placement(NamedTuple):
    """Position and size on the output canvas (inches)."""

    x: float
    y: float
    w: float
    h: float


class CropRegion(NamedTuple):
    """Pixel rectangle on a preview raster."""

    x: float
    y: float
    w: float
    h: float

    def to_pixel_box(self) -> Tuple[int, int, int, int]:
        """(left, upper, right, lower) integer box, at least 1px each way."""
        left = int(math.floor(self.x))
        top = int(math.floor(self.y))
        right = left + max(1, int(round(self.w)))
        bottom = top + max(1, int(round(self.h)))
        return left, top, right, bottom


def unpack_box(box: Sequence[float]) -> Tuple[float, float, float, float]:
    """Validate a box and return (ymin, xmin, ymax, xmax) as floats."""
    if box is None or len(box) != 4:
        raise InvalidBoxError(f"Box needs 4 values [ymin, xmin, ymax, xmax], got {box!r}")
    try:
        ymin, xmin, ymax, xmax = (float(v) for v in box)
    except (TypeError, ValueError) as e:
        raise InvalidBoxError(f"Box values must be numbers: {box!r}") from e
    return ymin, xmin, ymax, xmax


def to_placement(
    box: Sequence[float],
    canvas_width: float = SLIDE_WIDTH_IN,
    canvas_height: float = SLIDE_HEIGHT_IN,
    inflation: Tuple[float, float] = UNIT_INFLATION,
) -> Placement:
    """
    Map a normalized box onto the canvas.

    x = xmin/1000 * Wc, y = ymin/1000 * Hc,
    w = (xmax - xmin)/1000 * Wc * Kw, h = (ymax - ymin)/1000 * Hc * Kh
    """
    ymin, xmin, ymax, xmax = unpack_box(box)
    kw, kh = inflation
    return Placement(
        x=xmin / NORMALIZED_SCALE * canvas_width,
        y=ymin / NORMALIZED_SCALE * canvas_height,
        w=(xmax - xmin) / NORMALIZED_SCALE * canvas_width * kw,
        h=(ymax - ymin) / NORMALIZED_SCALE * canvas_height * kh,
    )


def to_crop_region(
    box: Sequence[float], preview_width: float, preview_height: float
) -> Optional[CropRegion]:
    """
    Map a normalized box onto the preview raster's pixels.

    Returns None for a degenerate region (under one pixel in either
    direction). Out-of-range boxes are not clamped here.
    """
    ymin, xmin, ymax, xmax = unpack_box(box)
    w = (xmax - xmin) / NORMALIZED_SCALE * preview_width
    h = (ymax - ymin) / NORMALIZED_SCALE * preview_height
    if w < 1 or h < 1:
        return None
    return CropRegion(
        x=xmin / NORMALIZED_SCALE * preview_width,
        y=ymin / NORMALIZED_SCALE * preview_height,
        w=w,
        h=h,
    )


def fit_to_canvas(
    placement: Placement,
    canvas_width: float = SLIDE_WIDTH_IN,
    canvas_height: float = SLIDE_HEIGHT_IN,
) -> Placement:
    """Clip a placement to the canvas; the visible part keeps its position."""
    x0 = min(max(placement.x, 0.0), canvas_width)
    y0 = min(max(placement.y, 0.0), canvas_height)
    x1 = min(max(placement.x + placement.w, 0.0), canvas_width)
    y1 = min(max(placement.y + placement.h, 0.0), canvas_height)
    return Placement(x0, y0, max(0.0, x1 - x0), max(0.0, y1 - y0))
