"""
PPTX renderer using python-pptx.

Assembles SlideStructures into an editable PowerPoint deck.
"""

from io import BytesIO
from pathlib import Path
from typing import List, Optional, Sequence

from pptx import Presentation
from pptx.dml.color import RGBColor
from pptx.enum.shapes import MSO_SHAPE
from pptx.enum.text import MSO_ANCHOR, MSO_AUTO_SIZE, PP_PARAGRAPH_ALIGNMENT
from pptx.util import Inches, Pt

from pdfdeck.errors import DeckWriteError
from pdfdeck.geometry import SLIDE_HEIGHT_IN, SLIDE_WIDTH_IN
from pdfdeck.models import ImagePart, ShapePart, SlideStructure, TextPart


DEFAULT_FONT = "Meiryo"
LINE_SPACING_PT = 32

ALIGNMENT_MAP = {
    "left": PP_PARAGRAPH_ALIGNMENT.LEFT,
    "center": PP_PARAGRAPH_ALIGNMENT.CENTER,
    "right": PP_PARAGRAPH_ALIGNMENT.RIGHT,
}


def draw_order(images: Sequence[ImagePart]) -> List[ImagePart]:
    """Images in paint order: ascending `order`, ties keep input order."""
    return sorted(images, key=lambda image: image.order)


def resolve_output_path(output_path: Path) -> Path:
    """Append .pptx unless the name already carries it."""
    output_path = Path(output_path)
    if output_path.suffix.lower() != ".pptx":
        output_path = output_path.with_name(output_path.name + ".pptx")
    return output_path


class PPTXRenderer:
    """
    Render SlideStructures into a PowerPoint presentation using python-pptx.

    Paint order per slide:
    - background fill
    - shapes (filled rectangles, no border)
    - images, ascending by order
    - text boxes, always on top
    """

    def __init__(
        self,
        slide_width_inches: float = SLIDE_WIDTH_IN,
        slide_height_inches: float = SLIDE_HEIGHT_IN,
        font_name: str = DEFAULT_FONT,
    ):
        """
        Configure the deck geometry and typeface.

        Args:
            slide_width_inches: Slide width in inches
            slide_height_inches: Slide height in inches
            font_name: Font family for every text box
        """
        self.slide_width_inches = slide_width_inches
        self.slide_height_inches = slide_height_inches
        self.font_name = font_name

    def render(self, slides: Sequence[SlideStructure], output_path: Path) -> Path:
        """
        Build one PPTX slide per structure and save the deck.

        Args:
            slides: One SlideStructure per output slide, in order
            output_path: Where to save; .pptx is appended if missing

        Returns:
            Path to the generated PPTX file

        Raises:
            DeckWriteError: if the deck cannot be built or saved
        """
        output_path = resolve_output_path(output_path)

        prs = Presentation()
        prs.slide_width = Inches(self.slide_width_inches)
        prs.slide_height = Inches(self.slide_height_inches)

        print(f"[PPTX] Rendering {len(slides)} slides")

        try:
            for i, structure in enumerate(slides):
                e = structure.elements
                print(
                    f"[PPTX] Rendering slide {i + 1}/{len(slides)} "
                    f"({len(e.shapes)} shapes, {len(e.images)} images, {len(e.text)} text)"
                )

                slide = prs.slides.add_slide(prs.slide_layouts[6])  # Blank layout
                self._render_background(slide, structure.background_color)

                for shape in e.shapes:
                    self._render_shape(slide, shape)
                for image in draw_order(e.images):
                    self._render_image(slide, image)
                for text in e.text:
                    self._render_text(slide, text)

            output_path.parent.mkdir(parents=True, exist_ok=True)
            prs.save(str(output_path))
        except (OSError, ValueError) as e:
            raise DeckWriteError(f"Could not write {output_path}: {e}") from e

        print(f"[PPTX] Saved presentation to {output_path}")
        return output_path

    def _render_background(self, slide, color: str) -> None:
        fill = slide.background.fill
        fill.solid()
        fill.fore_color.rgb = self._rgb(color) or RGBColor(0xFF, 0xFF, 0xFF)

    def _render_shape(self, slide, element: ShapePart) -> None:
        """Render a filled rectangle with no outline."""
        shape = slide.shapes.add_shape(
            MSO_SHAPE.RECTANGLE,
            Inches(element.x),
            Inches(element.y),
            Inches(element.w),
            Inches(element.h),
        )
        shape.fill.solid()
        shape.fill.fore_color.rgb = self._rgb(element.color) or RGBColor(0xFF, 0xFF, 0xFF)
        shape.line.fill.background()

    def _render_image(self, slide, element: ImagePart) -> None:
        slide.shapes.add_picture(
            BytesIO(element.data),
            Inches(element.x),
            Inches(element.y),
            width=Inches(element.w),
            height=Inches(element.h),
        )

    def _render_text(self, slide, element: TextPart) -> None:
        """Render a text box. The declared font size is authoritative."""
        textbox = slide.shapes.add_textbox(
            Inches(element.x), Inches(element.y), Inches(element.w), Inches(element.h)
        )
        text_frame = textbox.text_frame
        text_frame.word_wrap = True
        text_frame.auto_size = MSO_AUTO_SIZE.NONE
        text_frame.vertical_anchor = MSO_ANCHOR.TOP

        text_frame.margin_top = Pt(2)
        text_frame.margin_bottom = Pt(2)
        text_frame.margin_left = Pt(5)
        text_frame.margin_right = Pt(5)

        color = self._rgb(element.color)
        text_frame.clear()

        for i, line in enumerate(element.text.split("\n")):
            p = text_frame.paragraphs[0] if i == 0 else text_frame.add_paragraph()
            p.alignment = ALIGNMENT_MAP.get(element.align, PP_PARAGRAPH_ALIGNMENT.LEFT)
            p.line_spacing = Pt(LINE_SPACING_PT)

            run = p.add_run()
            run.text = line
            run.font.name = self.font_name
            run.font.size = Pt(element.font_size)
            run.font.bold = element.bold
            if color:
                run.font.color.rgb = color

    @staticmethod
    def _rgb(value: str) -> Optional[RGBColor]:
        """RGBColor from a 6-digit hex string, or None when it is not one."""
        digits = value.lstrip("#")
        if len(digits) != 6:
            return None
        try:
            return RGBColor.from_string(digits.upper())
        except ValueError:
            return None
