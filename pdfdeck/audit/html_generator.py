"""
Audit report for a finished conversion.

One self-contained HTML file: every page preview with the outlines of the
shapes, pictures and text boxes placed from it, plus the mode used and
whether the page fell back to an empty slide.
"""

from pathlib import Path
from typing import Dict, List, Optional, Sequence

from jinja2 import Template

from pdfdeck.geometry import SLIDE_HEIGHT_IN, SLIDE_WIDTH_IN
from pdfdeck.models import SlideJobItem, SlideOutcome, SlideStructure

# Outline colours per element kind
OUTLINE_COLORS = {
    "shape": "#E67E22",
    "image": "#2E86DE",
    "text": "#8E44AD",
}


class AuditHTMLGenerator:
    """Writes the audit report. Outlines are SVG rects in slide inches."""

    HTML_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<title>Audit: {{ meta.source or "PDFDeck" }}</title>
<style>
  :root { --ink: #222; --muted: #777; --ok: #2e7d32; --bad: #c0392b; --off: #95a5a6; }
  body { font: 14px/1.4 system-ui, sans-serif; color: var(--ink); margin: 24px auto; max-width: 1100px; }
  table.summary { border-collapse: collapse; margin: 12px 0 20px; }
  table.summary td { padding: 2px 14px 2px 0; }
  table.summary td:first-child { color: var(--muted); }
  .legend span { margin-right: 16px; font-size: 12px; }
  .legend i { display: inline-block; width: 10px; height: 10px; margin-right: 4px; border: 2px solid; }
  section.page { border-top: 1px solid #ddd; padding: 16px 0; }
  section.page h2 { font-size: 16px; margin: 0 0 6px; }
  .stats { color: var(--muted); font-size: 13px; margin-bottom: 8px; }
  .frame { position: relative; display: inline-block; }
  .frame img { display: block; max-width: 100%; }
  .frame svg { position: absolute; inset: 0; width: 100%; height: 100%; }
  .frame rect { fill: none; stroke-width: 2; vector-effect: non-scaling-stroke; }
  #outlines:not(:checked) ~ main svg { display: none; }
  .status { font-weight: 600; text-transform: uppercase; font-size: 11px; }
  .status.ok { color: var(--ok); }
  .status.fallback { color: var(--bad); }
  .status.skipped { color: var(--off); }
  .reason { color: var(--bad); margin-top: 6px; }
</style>
</head>
<body>
<h1>Conversion audit</h1>
<table class="summary">
  <tr><td>Source</td><td>{{ meta.source }}</td></tr>
  <tr><td>Pages</td><td>{{ meta.total_pages }}</td></tr>
  <tr><td>Converted</td><td>{{ meta.converted }}</td></tr>
  <tr><td>Fell back</td><td>{{ meta.failed }}</td></tr>
  <tr><td>Created</td><td>{{ meta.created_at }}</td></tr>
</table>
<input type="checkbox" id="outlines" checked>
<label for="outlines">Outline placed elements</label>
<div class="legend">
  {% for kind, color in colors.items() %}<span><i style="border-color: {{ color }}"></i>{{ kind }}</span>{% endfor %}
</div>
<main>
{% for page in pages %}
<section class="page" id="page-{{ page.item.page_number }}">
  <h2>Page {{ page.item.page_number }} <span class="status {{ page.status }}">{{ page.status }}</span></h2>
  <div class="stats">
    {{ page.item.mode.value }}{% if not page.item.enabled %} (disabled){% endif %} |
    {% if page.slide %}Shapes: {{ page.slide.elements.shapes|length }} |
    Images: {{ page.slide.elements.images|length }} |
    Text: {{ page.slide.elements.text|length }} |{% endif %}
    {{ page.item.preview.width_px }}x{{ page.item.preview.height_px }} px
  </div>
  <div class="frame">
    <img src="{{ page.item.preview.to_data_url() }}" alt="Page {{ page.item.page_number }}">
    {% if page.slide %}
    <svg viewBox="0 0 {{ canvas_width }} {{ canvas_height }}" preserveAspectRatio="none">
      {% for kind, parts in page.boxes %}{% for p in parts %}
      <rect x="{{ p.x }}" y="{{ p.y }}" width="{{ p.w }}" height="{{ p.h }}" stroke="{{ colors[kind] }}"/>
      {% endfor %}{% endfor %}
    </svg>
    {% endif %}
  </div>
  {% if page.reason %}<div class="reason">{{ page.reason }}</div>{% endif %}
</section>
{% endfor %}
</main>
</body>
</html>
"""

    def generate(
        self,
        items: Sequence[SlideJobItem],
        slides: Sequence[SlideStructure],
        outcomes: Sequence[SlideOutcome],
        output_path: Path,
        meta: Optional[Dict] = None,
    ) -> Path:
        """
        Write the report for one conversion run.

        Pages that were never converted (disabled) are listed as skipped.
        `meta` may carry `source` and `created_at` for the header.
        """
        print(f"[Audit] Writing report for {len(items)} pages")

        slide_for = {s.page_number: s for s in slides if s.page_number is not None}
        outcome_for = {o.page_number: o for o in outcomes}

        pages: List[Dict] = []
        for item in items:
            slide = slide_for.get(item.page_number)
            outcome = outcome_for.get(item.page_number)
            boxes = []
            if slide is not None:
                boxes = [
                    ("shape", slide.elements.shapes),
                    ("image", slide.elements.images),
                    ("text", slide.elements.text),
                ]
            pages.append(
                {
                    "item": item,
                    "slide": slide,
                    "boxes": boxes,
                    "status": outcome.status if outcome else "skipped",
                    "reason": outcome.reason if outcome else None,
                }
            )

        summary = {
            "source": "",
            "created_at": "",
            "total_pages": len(items),
            "converted": len(outcomes),
            "failed": len([o for o in outcomes if o.status == "fallback"]),
        }
        summary.update(meta or {})

        html = Template(self.HTML_TEMPLATE).render(
            meta=summary,
            pages=pages,
            colors=OUTLINE_COLORS,
            canvas_width=SLIDE_WIDTH_IN,
            canvas_height=SLIDE_HEIGHT_IN,
        )

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(html, encoding="utf-8")

        print(f"[Audit] Report saved: {output_path}")
        return output_path
