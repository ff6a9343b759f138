"""
Advanced usage examples for PDFDeck.

Shows how to:
- Convert without an API key (FULL_IMAGE only)
- Mix modes per page and save model prompts for debugging
- Re-render from a saved slides JSON
- Customize components
"""

from pathlib import Path

from dotenv import load_dotenv

from pdfdeck import ConversionPipeline, ExtractionMode
from pdfdeck.errors import PDFDeckError
from pdfdeck.extractors import PDFRasterizer
from pdfdeck.prompt import GeminiTransport, SceneAnalyzer
from pdfdeck.renderers import PPTXRenderer


def example_image_only():
    """Every page as one picture. No model calls, no API key."""
    print("\n[Example 1] Image-only deck")

    pipeline = ConversionPipeline(require_credentials=False, generate_audit=True)
    pipeline.load(Path("examples/sample_deck.pdf"))
    pipeline.set_mode_for_enabled(ExtractionMode.FULL_IMAGE)

    print(f"✓ PPTX: {pipeline.convert(Path('output/sample_deck_images'))}")


def example_mixed_modes():
    """Pick a mode per page and keep the model's prompts and answers."""
    print("\n[Example 2] Mixed modes with debug output")

    analyzer = SceneAnalyzer(
        GeminiTransport(model="gemini-2.0-flash"),
        debug_dir=Path("output/debug"),  # prompt_page_N.txt / response_page_N.txt
    )
    pipeline = ConversionPipeline(analyzer=analyzer, save_intermediate=True)
    pipeline.load(Path("examples/sample_deck.pdf"))

    pipeline.set_mode(1, ExtractionMode.TEXT_FOCUS)  # Title over its artwork
    pipeline.set_mode(2, ExtractionMode.COMPONENTS)  # Diagram split into parts

    pipeline.convert(Path("output/sample_deck_mixed"))
    print(f"✓ {pipeline.message}")


def example_rerender_from_slides():
    """Render a saved run again, without calling the model."""
    print("\n[Example 3] Re-render from slides JSON")

    # Useful for trying another font without paying for analysis again
    pptx_path = ConversionPipeline.from_slides_json(
        slides_path=Path("output/sample_deck_mixed.slides.json"),
        output_path=Path("output/sample_deck_arial"),
        renderer=PPTXRenderer(font_name="Arial"),
    )

    print(f"✓ PPTX: {pptx_path}")


def example_batch_processing():
    """Convert multiple PDFs in batch."""
    print("\n[Example 4] Batch processing")

    analyzer = SceneAnalyzer(GeminiTransport())

    for pdf_path in Path("examples").glob("*.pdf"):
        print(f"\nProcessing: {pdf_path.name}")
        pipeline = ConversionPipeline(
            analyzer=analyzer,
            rasterizer=PDFRasterizer(max_pages=20),
            progress_callback=lambda progress, message: print(f"  {progress:5.1f}% {message}"),
        )
        try:
            pipeline.load(pdf_path)
            print(f"  ✓ {pipeline.convert(Path('output') / pdf_path.stem)}")
        except PDFDeckError as e:
            print(f"  ✗ Error: {e}")


if __name__ == "__main__":
    load_dotenv()

    # Run examples
    # example_image_only()
    # example_mixed_modes()
    # example_rerender_from_slides()
    # example_batch_processing()

    print("\nUncomment the example you want to run in advanced_usage.py")
