"""
Vision-model prompting for turning page previews into scene descriptions.

Uses Gemini (google-genai) with a per-mode instruction table and a fixed
JSON response schema.
"""

from pdfdeck.prompt.scene_analyzer import (
    GeminiTransport,
    MODE_POLICIES,
    ModePolicy,
    ModelRequest,
    SceneAnalyzer,
    build_full_image_slide,
    build_slide,
    policy_for,
)

__all__ = [
    "GeminiTransport",
    "MODE_POLICIES",
    "ModePolicy",
    "ModelRequest",
    "SceneAnalyzer",
    "build_full_image_slide",
    "build_slide",
    "policy_for",
]
