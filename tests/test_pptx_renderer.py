"""
Tests for the python-pptx deck renderer.
"""

import io

import pytest
from PIL import Image
from pptx import Presentation
from pptx.dml.color import RGBColor
from pptx.enum.dml import MSO_FILL
from pptx.enum.shapes import MSO_SHAPE_TYPE
from pptx.enum.text import MSO_AUTO_SIZE, PP_PARAGRAPH_ALIGNMENT
from pptx.util import Inches, Pt

from pdfdeck.errors import DeckWriteError
from pdfdeck.models import ImagePart, ShapePart, SlideElements, SlideStructure, TextPart
from pdfdeck.renderers import PPTXRenderer, draw_order, resolve_output_path


def _png(width=10, height=10, color=(0, 128, 255)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


def _image(x, order, description="image"):
    return ImagePart(x=x, y=0, w=1, h=1, data=_png(), order=order, description=description)


def test_draw_order_is_stable():
    """Ascending order, ties keep their input order."""
    images = [_image(0, 20, "a"), _image(1, 10, "b"), _image(2, 30, "c"), _image(3, 10, "d")]

    ordered = draw_order(images)

    assert [i.order for i in ordered] == [10, 10, 20, 30]
    assert [i.description for i in ordered] == ["b", "d", "a", "c"]


@pytest.mark.parametrize(
    "name,expected",
    [("deck", "deck.pptx"), ("deck.pptx", "deck.pptx"), ("deck.PPTX", "deck.PPTX"), ("v1.2", "v1.2.pptx")],
)
def test_resolve_output_path(tmp_path, name, expected):
    """Test .pptx is appended only when missing."""
    assert resolve_output_path(tmp_path / name).name == expected


def test_renders_one_slide_per_structure(tmp_path):
    """Test slide count, size and file naming."""
    slides = [SlideStructure.empty(1), SlideStructure.empty(2), SlideStructure.empty(3)]

    path = PPTXRenderer().render(slides, tmp_path / "out" / "deck")

    assert path == tmp_path / "out" / "deck.pptx"
    prs = Presentation(str(path))
    assert len(prs.slides) == 3
    assert prs.slide_width == Inches(13.33)
    assert prs.slide_height == Inches(7.5)


def test_background_and_shapes(tmp_path):
    """Test background fill and borderless rectangles."""
    slide = SlideStructure(
        background_color="ABCDEF",
        elements=SlideElements(shapes=[ShapePart(x=0, y=0, w=13.33, h=0.75, color="112233")]),
    )

    path = PPTXRenderer().render([slide], tmp_path / "deck.pptx")

    pptx_slide = Presentation(str(path)).slides[0]
    assert pptx_slide.background.fill.fore_color.rgb == RGBColor(0xAB, 0xCD, 0xEF)

    shape = pptx_slide.shapes[0]
    assert shape.fill.type == MSO_FILL.SOLID
    assert shape.fill.fore_color.rgb == RGBColor(0x11, 0x22, 0x33)
    assert shape.line.fill.type == MSO_FILL.BACKGROUND
    assert shape.height == Inches(0.75)


def test_paint_order(tmp_path):
    """Shapes, then images by order, then text on top."""
    slide = SlideStructure(
        elements=SlideElements(
            shapes=[ShapePart(x=0, y=0, w=1, h=1)],
            text=[TextPart(x=0, y=0, w=2, h=1, text="Title")],
            images=[_image(2, 20), _image(1, 10), _image(3, 30)],
        )
    )

    path = PPTXRenderer().render([slide], tmp_path / "deck.pptx")

    shapes = list(Presentation(str(path)).slides[0].shapes)
    assert [s.shape_type for s in shapes] == [
        MSO_SHAPE_TYPE.AUTO_SHAPE,
        MSO_SHAPE_TYPE.PICTURE,
        MSO_SHAPE_TYPE.PICTURE,
        MSO_SHAPE_TYPE.PICTURE,
        MSO_SHAPE_TYPE.TEXT_BOX,
    ]
    assert [s.left for s in shapes[1:4]] == [Inches(1), Inches(2), Inches(3)]


def test_text_box_properties(tmp_path):
    """Test font, size, color, wrapping and one paragraph per line."""
    text = TextPart(
        x=1, y=2, w=5, h=1, text="First line\nSecond line", font_size=24, color="FF0000", bold=True, align="center"
    )
    slide = SlideStructure(elements=SlideElements(text=[text]))

    path = PPTXRenderer().render([slide], tmp_path / "deck.pptx")

    textbox = Presentation(str(path)).slides[0].shapes[0]
    frame = textbox.text_frame
    assert frame.word_wrap is True
    assert frame.auto_size == MSO_AUTO_SIZE.NONE
    assert [p.text for p in frame.paragraphs] == ["First line", "Second line"]

    for paragraph in frame.paragraphs:
        assert paragraph.alignment == PP_PARAGRAPH_ALIGNMENT.CENTER
        assert paragraph.line_spacing == Pt(32)
        run = paragraph.runs[0]
        assert run.font.name == "Meiryo"
        assert run.font.size == Pt(24)
        assert run.font.bold is True
        assert run.font.color.rgb == RGBColor(0xFF, 0x00, 0x00)


def test_custom_font(tmp_path):
    """Test the font family can be overridden."""
    slide = SlideStructure(elements=SlideElements(text=[TextPart(x=0, y=0, w=2, h=1, text="Hi")]))

    path = PPTXRenderer(font_name="Arial").render([slide], tmp_path / "deck.pptx")

    run = Presentation(str(path)).slides[0].shapes[0].text_frame.paragraphs[0].runs[0]
    assert run.font.name == "Arial"


def test_unwritable_destination(tmp_path):
    """Test write failures surface as DeckWriteError."""
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")

    with pytest.raises(DeckWriteError):
        PPTXRenderer().render([SlideStructure.empty(1)], blocker / "deck.pptx")
