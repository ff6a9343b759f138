"""
Image utilities applied to page previews.

Uses Pillow for:
- Cropping visual parts by normalized box
- Re-encoding crops as PNG
"""

from pdfdeck.preprocessors.cropper import ImageCropper

__all__ = ["ImageCropper"]
