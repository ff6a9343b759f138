"""Deck renderers."""

from pdfdeck.renderers.pptx_renderer import PPTXRenderer, draw_order, resolve_output_path

__all__ = ["PPTXRenderer", "draw_order", "resolve_output_path"]
