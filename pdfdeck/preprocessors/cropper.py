"""
Cut visual parts out of a page preview using Pillow.
"""

from io import BytesIO
from typing import Optional, Sequence

from PIL import Image

from pdfdeck.geometry import FULL_BOX, to_crop_region
from pdfdeck.models import PageRaster


class ImageCropper:
    """
    Crop normalized boxes from a page raster.

    The source raster is never modified; each crop is encoded as a new
    image. A degenerate or fully off-page box yields None.
    """

    def __init__(self, output_format: str = "PNG"):
        self.output_format = output_format

    def crop(self, raster: PageRaster, box: Sequence[float]) -> Optional[bytes]:
        """
        Crop a [ymin, xmin, ymax, xmax] box (0-1000 space) from the raster.

        Args:
            raster: Page preview to crop from
            box: Normalized box as emitted by the model

        Returns:
            Encoded image bytes, or None when the region is empty
        """
        region = to_crop_region(box, raster.width_px, raster.height_px)
        if region is None:
            print(f"[Crop] Page {raster.page_number}: skipping degenerate box {list(box)}")
            return None

        left, top, right, bottom = region.to_pixel_box()

        with Image.open(BytesIO(raster.data)) as img:
            # Clip to the raster; the model's boxes are not range-checked
            left, top = max(0, left), max(0, top)
            right, bottom = min(img.width, right), min(img.height, bottom)
            if right - left < 1 or bottom - top < 1:
                print(f"[Crop] Page {raster.page_number}: box {list(box)} lies outside the page")
                return None

            cropped = img.crop((left, top, right, bottom))
            buffer = BytesIO()
            cropped.save(buffer, format=self.output_format)

        return buffer.getvalue()

    def crop_full(self, raster: PageRaster) -> Optional[bytes]:
        """Crop the whole page; the result has the raster's exact size."""
        return self.crop(raster, FULL_BOX)
