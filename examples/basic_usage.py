"""
Basic usage example for PDFDeck.

This example shows how to convert a slide PDF to PPTX using the Python
API, choosing a mode per page before converting.
"""

from pathlib import Path

from dotenv import load_dotenv

from pdfdeck import ConversionPipeline, ExtractionMode
from pdfdeck.prompt import GeminiTransport, SceneAnalyzer


def main():
    load_dotenv()

    # Reads GEMINI_API_KEY (and optionally GEMINI_MODEL) from the environment
    analyzer = SceneAnalyzer(GeminiTransport())

    pipeline = ConversionPipeline(
        analyzer=analyzer,
        generate_audit=True,  # Generate audit HTML for QA
        save_intermediate=True,  # Save slides JSON for re-rendering
        progress_callback=lambda progress, message: print(f"  {progress:5.1f}% {message}"),
    )

    # Render previews; every page starts enabled in BALANCED mode
    items = pipeline.load(Path("examples/sample_deck.pdf"))
    print(f"Loaded {len(items)} pages")

    # Keep the title page as a picture, drop the last page
    pipeline.set_mode(1, ExtractionMode.FULL_IMAGE)
    pipeline.set_enabled(len(items), False)

    pptx_path = pipeline.convert(Path("output/sample_deck"))

    print("\n✓ Conversion complete!")
    print(f"  PPTX: {pptx_path}")
    for kind, path in pipeline.artifacts.items():
        print(f"  {kind}: {path}")
    if pipeline.failed_pages:
        print(f"  Left empty: {pipeline.failed_pages}")


if __name__ == "__main__":
    main()
