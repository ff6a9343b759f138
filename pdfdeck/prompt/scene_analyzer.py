"""
Vision-model scene analysis.

Sends one page preview to Gemini with a mode-specific instruction set and a
fixed response schema, and parses the answer into a SceneDescription.
"""

import math
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

import httpx
from google import genai
from google.genai import errors, types
from pydantic import BaseModel, ConfigDict, ValidationError

from pdfdeck.errors import (
    ConfigurationRequiredError,
    ModelHTTPError,
    RetryExhaustedError,
    SceneParseError,
    SlideAnalysisError,
)
from pdfdeck.geometry import (
    FULL_BOX,
    SLIDE_HEIGHT_IN,
    SLIDE_WIDTH_IN,
    TEXT_INFLATION,
    UNIT_INFLATION,
    fit_to_canvas,
    to_placement,
)
from pdfdeck.models import (
    ExtractionMode,
    ImagePart,
    PageRaster,
    SceneDescription,
    ShapePart,
    SlideElements,
    SlideStructure,
    TextPart,
    clean_color,
)
from pdfdeck.preprocessors.cropper import ImageCropper


@dataclass(frozen=True)
class ModePolicy:
    """Everything that differs between extraction modes."""

    label: str
    description: str
    instruction: str = ""
    uses_model: bool = True
    extract_shapes: bool = True
    force_full_visual_part: bool = False
    text_inflation: Tuple[float, float] = TEXT_INFLATION


MODE_POLICIES: Dict[ExtractionMode, ModePolicy] = {
    ExtractionMode.BALANCED: ModePolicy(
        label="Balanced (recommended)",
        description="Shapes, cropped parts and text",
        instruction="""Mode: BALANCED
1. Extract only simple shapes such as rectangles and background bands as "shapes".
2. Extract complex illustrations, icons, speech bubbles, logos and photos as "visual_parts",
   one per meaningful unit, so each can be cropped as a separate image.""",
    ),
    ExtractionMode.TEXT_FOCUS: ModePolicy(
        label="Text focus",
        description="Text only over a single background image",
        instruction="""Mode: TEXT_FOCUS
1. Do not extract any shapes. "shapes" must be an empty list.
2. Define exactly one entry in "visual_parts" covering the whole slide (box: [0, 0, 1000, 1000]),
   so every illustration and background becomes one image.
3. Extract the text accurately so it can be placed on top of that image.""",
        extract_shapes=False,
        force_full_visual_part=True,
    ),
    ExtractionMode.COMPONENTS: ModePolicy(
        label="Components",
        description="Every visual element as its own image",
        instruction="""Mode: COMPONENTS
1. Separate every visual element (icons, small decorations, diagrams, UI parts) into its own
   entry in "visual_parts" whenever possible.""",
    ),
    ExtractionMode.FULL_IMAGE: ModePolicy(
        label="Image only",
        description="No model call; the page becomes one picture",
        uses_model=False,
        extract_shapes=False,
    ),
}


def policy_for(mode: ExtractionMode) -> ModePolicy:
    return MODE_POLICIES[ExtractionMode(mode)]


_BOX = {"type": "ARRAY", "items": {"type": "NUMBER"}}

RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "background_color": {"type": "STRING"},
        "shapes": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "box": _BOX,
                    "color": {"type": "STRING"},
                    "order": {"type": "INTEGER"},
                },
                "required": ["box"],
            },
        },
        "text_blocks": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "text": {"type": "STRING"},
                    "box": _BOX,
                    "font_size": {"type": "NUMBER"},
                    "color": {"type": "STRING"},
                    "bold": {"type": "BOOLEAN"},
                    "align": {"type": "STRING", "enum": ["left", "center", "right"]},
                },
                "required": ["text", "box"],
            },
        },
        "visual_parts": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "type": {"type": "STRING"},
                    "box": _BOX,
                    "order": {"type": "INTEGER"},
                },
                "required": ["box"],
            },
        },
    },
    "required": ["background_color", "shapes", "text_blocks", "visual_parts"],
}


class ModelRequest(BaseModel):
    """One call to the vision model."""

    model_config = ConfigDict(frozen=True)

    image: bytes
    mime_type: str
    system_instruction: str
    response_schema: Dict[str, Any]
    prompt: str


class ModelTransport(Protocol):
    """Sends a request and returns the raw JSON text, or raises ModelHTTPError."""

    def send(self, request: ModelRequest) -> str:
        ...


class GeminiTransport:
    """Vision model transport backed by google-genai."""

    DEFAULT_MODEL = "gemini-2.0-flash"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        temperature: float = 0.1,
        client: Optional[genai.Client] = None,
    ):
        self.api_key = api_key or os.getenv("GEMINI_API_KEY")
        if not self.api_key and client is None:
            raise ConfigurationRequiredError(
                "Gemini API key required. Set GEMINI_API_KEY env var or pass api_key parameter."
            )

        self.client = client or genai.Client(api_key=self.api_key)
        self.model = model or os.getenv("GEMINI_MODEL", self.DEFAULT_MODEL)
        self.temperature = temperature

    def send(self, request: ModelRequest) -> str:
        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=[
                    types.Part.from_bytes(data=request.image, mime_type=request.mime_type),
                    request.prompt,
                ],
                config=types.GenerateContentConfig(
                    system_instruction=request.system_instruction,
                    response_mime_type="application/json",
                    response_schema=request.response_schema,
                    temperature=self.temperature,
                ),
            )
        except errors.APIError as e:
            raise ModelHTTPError(
                e.code, message=e.message or "", retry_after=_retry_after_seconds(e)
            ) from e
        except httpx.TransportError as e:
            raise SlideAnalysisError(f"Could not reach the model API: {e}") from e

        return response.text or ""


def _retry_after_seconds(error: errors.APIError) -> Optional[float]:
    """Read a positive Retry-After header off a failed response, if there is one."""
    headers = getattr(error.response, "headers", None)
    if not headers:
        return None
    value = headers.get("Retry-After")
    if value is None:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    if not math.isfinite(seconds) or seconds <= 0:
        return None
    return seconds


class SceneAnalyzer:
    """
    Turn a page preview into a SceneDescription with a vision model.

    Retries (bounded by max_attempts, counting the first call):
    - 429: wait Retry-After seconds if given, else 20 s
    - 503: wait 5 s
    - anything else fails the slide immediately
    """

    RATE_LIMIT_WAIT_MS = 20000
    OVERLOAD_WAIT_MS = 5000
    MAX_ATTEMPTS = 3

    COMMON_INSTRUCTION = """You are an engineer who rebuilds slides as editable PowerPoint.
Analyze the provided slide image and output a PowerPoint reconstruction plan as JSON.

Common rules:
- Merge text into semantically coherent paragraphs. Use "\\n" for line breaks inside a block.
- Make every text box about 25% wider than the text looks, to absorb font rendering differences.
- All boxes use a 0-1000 normalized coordinate space as [ymin, xmin, ymax, xmax],
  regardless of the image's pixel size.
- Colors are hex strings such as "#1A2B3C".
"""

    USER_PROMPT = "Analyze this slide and output the JSON."

    def __init__(
        self,
        transport: ModelTransport,
        max_attempts: int = MAX_ATTEMPTS,
        sleep: Callable[[float], None] = time.sleep,
        debug_dir: Optional[Path] = None,
    ):
        self.transport = transport
        self.max_attempts = max_attempts
        self.sleep = sleep
        self.debug_dir = Path(debug_dir) if debug_dir else None

    def build_instruction(self, mode: ExtractionMode) -> str:
        """System instruction for a mode. Same mode, same text."""
        policy = policy_for(mode)
        return f"{self.COMMON_INSTRUCTION}\n{policy.instruction}\n"

    def build_request(self, raster: PageRaster, mode: ExtractionMode) -> ModelRequest:
        policy = policy_for(mode)
        if not policy.uses_model:
            raise ValueError(f"{ExtractionMode(mode).value} slides are not sent to the model")

        return ModelRequest(
            image=raster.data,
            mime_type=raster.mime_type,
            system_instruction=self.build_instruction(mode),
            response_schema=RESPONSE_SCHEMA,
            prompt=self.USER_PROMPT,
        )

    def analyze(self, raster: PageRaster, mode: ExtractionMode) -> SceneDescription:
        """
        Analyze one page.

        Raises:
            ModelHTTPError: on a non-retryable status
            RetryExhaustedError: when 429/503 persist past max_attempts
            SceneParseError: when the answer is not a valid scene
        """
        request = self.build_request(raster, mode)
        print(f"[Gemini] Analyzing page {raster.page_number} ({ExtractionMode(mode).value})")

        if self.debug_dir:
            self.debug_dir.mkdir(parents=True, exist_ok=True)
            (self.debug_dir / f"prompt_page_{raster.page_number}.txt").write_text(
                f"SYSTEM:\n{request.system_instruction}\n\nUSER:\n{request.prompt}",
                encoding="utf-8",
            )

        response_text = self._send_with_retry(request, raster.page_number)

        if self.debug_dir:
            (self.debug_dir / f"response_page_{raster.page_number}.txt").write_text(
                response_text, encoding="utf-8"
            )

        scene = self.parse_response(response_text)
        print(
            f"[Gemini] Page {raster.page_number}: {len(scene.shapes)} shapes, "
            f"{len(scene.text_blocks)} text blocks, {len(scene.visual_parts)} visual parts"
        )
        return scene

    def _send_with_retry(self, request: ModelRequest, page_number: int) -> str:
        for attempt in range(1, self.max_attempts + 1):
            try:
                return self.transport.send(request)
            except ModelHTTPError as e:
                if e.status == 429:
                    wait_ms = self.RATE_LIMIT_WAIT_MS
                    if e.retry_after is not None and 0 < e.retry_after < math.inf:
                        wait_ms = e.retry_after * 1000
                    reason = "Rate limit hit"
                elif e.status == 503:
                    wait_ms = self.OVERLOAD_WAIT_MS
                    reason = "Model overloaded"
                else:
                    raise

                if attempt == self.max_attempts:
                    raise RetryExhaustedError(attempts=attempt, last_status=e.status) from e

                print(
                    f"[Gemini] {reason} on page {page_number} "
                    f"(attempt {attempt}/{self.max_attempts}), waiting {wait_ms / 1000:.0f}s"
                )
                self.sleep(max(0.0, wait_ms / 1000))

        raise RetryExhaustedError(attempts=self.max_attempts, last_status=0)

    @staticmethod
    def parse_response(response_text: str) -> SceneDescription:
        """Parse the model's JSON answer, tolerating a markdown code fence."""
        text = (response_text or "").strip()
        if text.startswith("```json"):
            text = text[7:]
        if text.startswith("```"):
            text = text[3:]
        if text.endswith("```"):
            text = text[:-3]
        text = text.strip()

        try:
            return SceneDescription.model_validate_json(text)
        except ValidationError as e:
            preview = text[:200].replace("\n", " ")
            raise SceneParseError(f"Could not parse model response: {preview!r}") from e


# --- Scene -> slide structure ---


def _place(box, inflation=UNIT_INFLATION) -> Dict[str, float]:
    placement = fit_to_canvas(
        to_placement(box, SLIDE_WIDTH_IN, SLIDE_HEIGHT_IN, inflation),
        SLIDE_WIDTH_IN,
        SLIDE_HEIGHT_IN,
    )
    return placement._asdict()


def _align(value: Optional[str]) -> str:
    value = (value or "left").lower()
    return value if value in ("left", "center", "right") else "left"


def build_slide(
    scene: SceneDescription,
    raster: PageRaster,
    mode: ExtractionMode,
    cropper: ImageCropper,
) -> SlideStructure:
    """
    Position a scene description on the output canvas.

    Shapes and text go through the placement formula, visual parts are
    cropped out of the preview. Degenerate crops are skipped.
    """
    policy = policy_for(mode)
    elements = SlideElements()

    if policy.extract_shapes:
        for shape in scene.shapes:
            elements.shapes.append(
                ShapePart(
                    **_place(shape.box),
                    color=clean_color(shape.color, "FFFFFF"),
                    order=shape.order if shape.order is not None else 1,
                )
            )

    for block in scene.text_blocks:
        text = block.text.replace("\\n", "\n")
        if not text.strip():
            continue
        elements.text.append(
            TextPart(
                **_place(block.box, policy.text_inflation),
                text=text,
                font_size=block.font_size if block.font_size and block.font_size > 0 else 18,
                color=clean_color(block.color, "000000"),
                bold=bool(block.bold),
                align=_align(block.align),
            )
        )

    if policy.force_full_visual_part:
        visual_parts = [(FULL_BOX, 1, "background")]
    else:
        visual_parts = [
            (part.box, part.order if part.order is not None else 20, part.type or "image")
            for part in scene.visual_parts
        ]

    for box, order, description in visual_parts:
        data = cropper.crop(raster, box)
        if data is None:
            continue
        elements.images.append(
            ImagePart(**_place(box), data=data, order=order, description=description)
        )

    return SlideStructure(
        page_number=raster.page_number,
        background_color=clean_color(scene.background_color, "FFFFFF"),
        elements=elements,
    )


def build_full_image_slide(raster: PageRaster, cropper: ImageCropper) -> SlideStructure:
    """The whole preview as one full-bleed picture; empty if the crop fails."""
    data = cropper.crop_full(raster)
    if data is None:
        return SlideStructure.empty(raster.page_number)

    image = ImagePart(
        x=0, y=0, w=SLIDE_WIDTH_IN, h=SLIDE_HEIGHT_IN, data=data, order=1, description="page"
    )
    return SlideStructure(
        page_number=raster.page_number,
        elements=SlideElements(images=[image]),
    )
