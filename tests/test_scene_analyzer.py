"""
Tests for prompting, retries and scene-to-slide mapping.
"""

import io
from types import SimpleNamespace

import httpx
import pytest
from google.genai import errors
from PIL import Image

from conftest import FakeTransport, make_raster, scene_json
from pdfdeck.errors import (
    ConfigurationRequiredError,
    ModelHTTPError,
    RetryExhaustedError,
    SceneParseError,
    SlideAnalysisError,
)
from pdfdeck.models import ExtractionMode, SceneDescription
from pdfdeck.preprocessors import ImageCropper
from pdfdeck.prompt import GeminiTransport, SceneAnalyzer, build_full_image_slide, build_slide
from pdfdeck.prompt.scene_analyzer import RESPONSE_SCHEMA


def _analyzer(responses, sleep):
    transport = FakeTransport(responses)
    return SceneAnalyzer(transport, sleep=sleep), transport


# --- Prompts ---


def test_instruction_is_deterministic_per_mode():
    """Same mode, same instruction; different modes differ."""
    analyzer = SceneAnalyzer(FakeTransport([scene_json()]))

    for mode in (ExtractionMode.BALANCED, ExtractionMode.TEXT_FOCUS, ExtractionMode.COMPONENTS):
        assert analyzer.build_instruction(mode) == analyzer.build_instruction(mode)

    balanced = analyzer.build_instruction(ExtractionMode.BALANCED)
    text_focus = analyzer.build_instruction(ExtractionMode.TEXT_FOCUS)
    components = analyzer.build_instruction(ExtractionMode.COMPONENTS)
    assert len({balanced, text_focus, components}) == 3
    assert "[ymin, xmin, ymax, xmax]" in balanced
    assert '"shapes" must be an empty list' in text_focus


def test_request_carries_image_and_schema(raster):
    """Test the request sent for a page."""
    analyzer, transport = _analyzer([scene_json()], sleep=lambda s: None)

    analyzer.analyze(raster, ExtractionMode.BALANCED)

    request = transport.requests[0]
    assert request.image == raster.data
    assert request.mime_type == "image/jpeg"
    assert request.response_schema == RESPONSE_SCHEMA
    assert request.system_instruction == analyzer.build_instruction(ExtractionMode.BALANCED)


def test_full_image_is_never_sent(raster):
    """Test FULL_IMAGE pages are refused."""
    analyzer, transport = _analyzer([scene_json()], sleep=lambda s: None)

    with pytest.raises(ValueError):
        analyzer.analyze(raster, ExtractionMode.FULL_IMAGE)
    assert transport.requests == []


# --- Retries ---


def test_three_rate_limits_make_exactly_three_attempts(raster, sleep_recorder):
    """429 three times: three attempts, two waits, then give up."""
    analyzer, transport = _analyzer([ModelHTTPError(429)], sleep_recorder)

    with pytest.raises(RetryExhaustedError) as exc_info:
        analyzer.analyze(raster, ExtractionMode.BALANCED)

    assert len(transport.requests) == 3
    assert exc_info.value.attempts == 3
    assert exc_info.value.last_status == 429
    assert sleep_recorder.calls == [20.0, 20.0]


def test_rate_limit_honors_retry_after(raster, sleep_recorder):
    """Test Retry-After seconds replace the default wait."""
    analyzer, transport = _analyzer(
        [ModelHTTPError(429, retry_after=7), scene_json()], sleep_recorder
    )

    scene = analyzer.analyze(raster, ExtractionMode.BALANCED)

    assert isinstance(scene, SceneDescription)
    assert len(transport.requests) == 2
    assert sleep_recorder.calls == [7.0]


@pytest.mark.parametrize("retry_after", [-1, 0])
def test_non_positive_retry_after_uses_default_wait(raster, sleep_recorder, retry_after):
    """Test a Retry-After that is not positive falls back to 20 s and still retries."""
    analyzer, transport = _analyzer(
        [ModelHTTPError(429, retry_after=retry_after), scene_json()], sleep_recorder
    )

    scene = analyzer.analyze(raster, ExtractionMode.BALANCED)

    assert isinstance(scene, SceneDescription)
    assert len(transport.requests) == 2
    assert sleep_recorder.calls == [20.0]


def test_overload_waits_five_seconds(raster, sleep_recorder):
    """Test 503 retries after 5 s."""
    analyzer, transport = _analyzer([ModelHTTPError(503), scene_json()], sleep_recorder)

    analyzer.analyze(raster, ExtractionMode.COMPONENTS)

    assert len(transport.requests) == 2
    assert sleep_recorder.calls == [5.0]


def test_other_status_fails_immediately(raster, sleep_recorder):
    """Test non-429/503 errors are not retried."""
    analyzer, transport = _analyzer([ModelHTTPError(400, "bad request")], sleep_recorder)

    with pytest.raises(ModelHTTPError) as exc_info:
        analyzer.analyze(raster, ExtractionMode.BALANCED)

    assert exc_info.value.status == 400
    assert len(transport.requests) == 1
    assert sleep_recorder.calls == []


def test_unparseable_response(raster, sleep_recorder):
    """Test parse failures are per-slide errors, not retried."""
    analyzer, transport = _analyzer(["this is not json"], sleep_recorder)

    with pytest.raises(SceneParseError):
        analyzer.analyze(raster, ExtractionMode.BALANCED)
    assert len(transport.requests) == 1


def test_parse_response_strips_code_fence():
    """Test a fenced JSON answer still parses."""
    text = "```json\n" + scene_json(background_color="#123456") + "\n```"

    scene = SceneAnalyzer.parse_response(text)

    assert scene.background_color == "#123456"


def test_debug_dir_saves_prompt_and_response(raster, tmp_path):
    """Test debug mode writes the prompt and raw response."""
    analyzer = SceneAnalyzer(FakeTransport([scene_json()]), debug_dir=tmp_path / "debug")

    analyzer.analyze(raster, ExtractionMode.BALANCED)

    assert (tmp_path / "debug" / "prompt_page_1.txt").exists()
    assert (tmp_path / "debug" / "response_page_1.txt").read_text(encoding="utf-8") == scene_json()


# --- Gemini transport ---


class _FakeModels:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return self.result


def _request(analyzer_mode=ExtractionMode.BALANCED):
    analyzer = SceneAnalyzer(FakeTransport([scene_json()]))
    return analyzer.build_request(make_raster(), analyzer_mode)


def test_gemini_transport_requests_json():
    """Test the Gemini call asks for schema-constrained JSON."""
    models = _FakeModels(result=SimpleNamespace(text=scene_json()))
    transport = GeminiTransport(model="test-model", client=SimpleNamespace(models=models))

    assert transport.send(_request()) == scene_json()

    call = models.calls[0]
    assert call["model"] == "test-model"
    assert call["config"].response_mime_type == "application/json"
    assert "Mode: BALANCED" in str(call["config"].system_instruction)


def test_gemini_transport_translates_api_errors():
    """Test APIError becomes ModelHTTPError with Retry-After."""
    error = errors.APIError(
        429,
        {"error": {"code": 429, "message": "Quota exceeded", "status": "RESOURCE_EXHAUSTED"}},
        response=httpx.Response(429, headers={"Retry-After": "3"}),
    )
    transport = GeminiTransport(client=SimpleNamespace(models=_FakeModels(error=error)))

    with pytest.raises(ModelHTTPError) as exc_info:
        transport.send(_request())

    assert exc_info.value.status == 429
    assert exc_info.value.retry_after == 3.0


def test_gemini_transport_network_failure_is_per_slide():
    """Test connection errors are slide failures."""
    error = httpx.ConnectError("connection refused")
    transport = GeminiTransport(client=SimpleNamespace(models=_FakeModels(error=error)))

    with pytest.raises(SlideAnalysisError):
        transport.send(_request())


def test_gemini_transport_needs_a_key(monkeypatch):
    """Test a missing API key is a configuration error."""
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)

    with pytest.raises(ConfigurationRequiredError):
        GeminiTransport()


# --- Scene -> slide ---


def test_balanced_scene_to_slide():
    """Test shapes, text and visual parts are placed on the canvas."""
    raster = make_raster(width=200, height=100)
    scene = SceneDescription.model_validate_json(
        scene_json(
            background_color="#abcdef",
            shapes=[{"box": [0, 0, 100, 1000], "color": "#112233"}],
            text_blocks=[
                {"text": "Line one\\nLine two", "box": [100, 0, 300, 500], "bold": True, "align": "center"}
            ],
            visual_parts=[
                {"box": [500, 500, 1000, 1000], "type": "logo"},
                {"box": [0, 0, 1, 1], "order": 3},
            ],
        )
    )

    slide = build_slide(scene, raster, ExtractionMode.BALANCED, ImageCropper())

    assert slide.page_number == 1
    assert slide.background_color == "ABCDEF"

    shape = slide.elements.shapes[0]
    assert (shape.x, shape.y) == (0, 0)
    assert shape.w == pytest.approx(13.33)
    assert shape.h == pytest.approx(0.75)
    assert shape.color == "112233"
    assert shape.order == 1

    text = slide.elements.text[0]
    assert text.text == "Line one\nLine two"
    assert text.font_size == 18
    assert text.color == "000000"
    assert text.bold is True
    assert text.align == "center"
    assert text.w == pytest.approx(0.5 * 13.33 * 1.25)

    # The 1x1 box is below one pixel on a 200x100 preview and is dropped
    assert len(slide.elements.images) == 1
    image = slide.elements.images[0]
    assert image.order == 20
    assert image.description == "logo"
    with Image.open(io.BytesIO(image.data)) as img:
        assert img.size == (100, 50)


def test_text_focus_drops_shapes_and_uses_one_background():
    """Test TEXT_FOCUS keeps text over a single full-page picture."""
    raster = make_raster(width=200, height=100)
    scene = SceneDescription.model_validate_json(
        scene_json(
            shapes=[{"box": [0, 0, 100, 1000], "color": "#112233"}],
            text_blocks=[{"text": "Title", "box": [0, 0, 100, 500]}],
            visual_parts=[{"box": [0, 0, 500, 500]}, {"box": [500, 500, 1000, 1000]}],
        )
    )

    slide = build_slide(scene, raster, ExtractionMode.TEXT_FOCUS, ImageCropper())

    assert slide.elements.shapes == []
    assert len(slide.elements.text) == 1
    assert len(slide.elements.images) == 1
    image = slide.elements.images[0]
    assert (image.x, image.y, image.order) == (0, 0, 1)
    assert image.w == pytest.approx(13.33)
    assert image.h == pytest.approx(7.5)


def test_full_image_slide():
    """Test FULL_IMAGE slides are one full-bleed picture."""
    slide = build_full_image_slide(make_raster(page_number=4), ImageCropper())

    assert slide.page_number == 4
    assert slide.elements.shapes == []
    assert slide.elements.text == []
    image = slide.elements.images[0]
    assert (image.x, image.y, image.w, image.h, image.order) == (0, 0, 13.33, 7.5, 1)


@pytest.mark.parametrize("header", ["-5", "0", "soon"])
def test_gemini_transport_ignores_unusable_retry_after(header):
    """Test negative, zero and non-numeric Retry-After headers are dropped."""
    error = errors.APIError(
        429,
        {"error": {"code": 429, "message": "Quota exceeded", "status": "RESOURCE_EXHAUSTED"}},
        response=httpx.Response(429, headers={"Retry-After": header}),
    )
    transport = GeminiTransport(client=SimpleNamespace(models=_FakeModels(error=error)))

    with pytest.raises(ModelHTTPError) as exc_info:
        transport.send(_request())

    assert exc_info.value.retry_after is None
