"""
Core data models for PDFDeck.

Defines the page raster, the per-page job item, the model's scene
description and the assembler-ready slide structure using Pydantic.
"""

import base64
import re
from enum import Enum
from typing import List, Optional, Literal, Dict, Any
from pydantic import BaseModel, ConfigDict, Field, field_validator


class ExtractionMode(str, Enum):
    """How aggressively a slide is decomposed into editable parts."""

    BALANCED = "BALANCED"
    TEXT_FOCUS = "TEXT_FOCUS"
    COMPONENTS = "COMPONENTS"
    FULL_IMAGE = "FULL_IMAGE"


class JobStatus(str, Enum):
    """Conversion job states."""

    IDLE = "IDLE"
    DECOMPOSING = "DECOMPOSING"
    PREVIEWING = "PREVIEWING"
    ASSEMBLING = "ASSEMBLING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"


_HEX_COLOR = re.compile(r"^[0-9A-F]{6}$")


def clean_color(value: Optional[str], default: str = "FFFFFF") -> str:
    """
    Normalize a model-supplied color to six uppercase hex digits without '#'.

    Accepts "#RRGGBB", "RRGGBB" and the short "#RGB" form. Anything else
    falls back to the default.
    """
    if not value:
        return default
    color = value.strip().lstrip("#").upper()
    if len(color) == 3:
        color = "".join(ch * 2 for ch in color)
    if _HEX_COLOR.match(color):
        return color
    return default


class PageRaster(BaseModel):
    """One rendered PDF page. Immutable once produced."""

    model_config = ConfigDict(frozen=True)

    page_number: int = Field(ge=1, description="1-based source page index")
    data: bytes = Field(repr=False, description="Encoded image bytes")
    mime_type: str = "image/jpeg"
    width_px: int = Field(gt=0)
    height_px: int = Field(gt=0)

    def to_data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


class SlideJobItem(BaseModel):
    """A page's conversion settings, editable until the batch starts."""

    model_config = ConfigDict(validate_assignment=True)

    page_number: int = Field(ge=1)
    preview: PageRaster
    mode: ExtractionMode = ExtractionMode.BALANCED
    enabled: bool = True


# --- Scene description (model output) ---


class _SceneItem(BaseModel):
    box: List[float] = Field(
        ..., min_length=4, max_length=4, description="[ymin, xmin, ymax, xmax] in 0-1000"
    )


class SceneShape(_SceneItem):
    color: Optional[str] = None
    order: Optional[int] = None


class SceneTextBlock(_SceneItem):
    text: str = ""
    font_size: Optional[float] = None
    color: Optional[str] = None
    bold: Optional[bool] = None
    align: Optional[str] = None


class SceneVisualPart(_SceneItem):
    order: Optional[int] = None
    type: Optional[str] = Field(None, description="Short description of the visual")


class SceneDescription(BaseModel):
    """
    The vision model's structured reading of one page.
    All boxes live in the 0-1000 normalized space.
    """

    background_color: Optional[str] = None
    shapes: List[SceneShape] = Field(default_factory=list)
    text_blocks: List[SceneTextBlock] = Field(default_factory=list)
    visual_parts: List[SceneVisualPart] = Field(default_factory=list)

    @field_validator("shapes", "text_blocks", "visual_parts", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v


# --- Slide structure (assembler input, canvas inches) ---


class _PlacedPart(BaseModel):
    x: float = Field(ge=0)
    y: float = Field(ge=0)
    w: float = Field(ge=0)
    h: float = Field(ge=0)
    order: int = 0


class ShapePart(_PlacedPart):
    """A filled rectangle drawn behind everything else."""

    kind: Literal["rect"] = "rect"
    color: str = "FFFFFF"
    order: int = 1


class TextPart(_PlacedPart):
    """An editable text box drawn on top of everything else."""

    text: str
    font_size: float = Field(default=18, gt=0)
    color: str = "000000"
    bold: bool = False
    align: Literal["left", "center", "right"] = "left"


class ImagePart(_PlacedPart):
    """A cropped picture. Painted in ascending `order`."""

    model_config = ConfigDict(ser_json_bytes="base64", val_json_bytes="base64")

    kind: Literal["photo"] = "photo"
    data: bytes = Field(repr=False, description="PNG bytes")
    order: int = 20
    description: str = "image"


class SlideElements(BaseModel):
    shapes: List[ShapePart] = Field(default_factory=list)
    text: List[TextPart] = Field(default_factory=list)
    images: List[ImagePart] = Field(default_factory=list)


class SlideStructure(BaseModel):
    """A finished slide, positioned on the output canvas."""

    page_number: Optional[int] = None
    background_color: str = "FFFFFF"
    elements: SlideElements = Field(default_factory=SlideElements)

    @classmethod
    def empty(cls, page_number: Optional[int] = None) -> "SlideStructure":
        """The placeholder used when a slide cannot be reconstructed."""
        return cls(page_number=page_number, background_color="FFFFFF")

    @property
    def is_empty(self) -> bool:
        e = self.elements
        return not (e.shapes or e.text or e.images)


class SlideOutcome(BaseModel):
    """What happened to one enabled slide during assembling."""

    page_number: int
    mode: ExtractionMode
    status: Literal["ok", "fallback"] = "ok"
    reason: Optional[str] = None


class DeckMeta(BaseModel):
    """Metadata for a saved deck run."""

    source: str = ""
    version: str = "1.0"
    created_at: Optional[str] = None
    total_slides: int = Field(ge=0, default=0)
    canvas_width_in: float = 13.33
    canvas_height_in: float = 7.5


class DeckDocument(BaseModel):
    """
    Serializable form of an assembled deck.
    Lets a run be re-rendered without calling the model again.
    """

    meta: DeckMeta
    slides: List[SlideStructure] = Field(default_factory=list)
    outcomes: List[SlideOutcome] = Field(default_factory=list)

    def to_json(self) -> str:
        return self.model_dump_json(indent=2, exclude_none=True)

    @classmethod
    def from_json(cls, data: str) -> "DeckDocument":
        return cls.model_validate_json(data)

    def to_dict(self) -> Dict[str, Any]:
        """Export to dict for JSON serialization."""
        return self.model_dump(mode="json", exclude_none=True)
