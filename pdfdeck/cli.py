"""
Command-line interface for PDFDeck.
"""

import os
import sys
import argparse
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv

from pdfdeck import __version__
from pdfdeck.errors import PDFDeckError
from pdfdeck.extractors import PDFRasterizer
from pdfdeck.models import ExtractionMode
from pdfdeck.pipeline import ConversionPipeline
from pdfdeck.prompt import MODE_POLICIES, GeminiTransport, SceneAnalyzer, policy_for

MODE_NAMES = [mode.value for mode in ExtractionMode]


def parse_page_modes(values: Optional[List[str]]) -> Dict[int, ExtractionMode]:
    """Parse repeated PAGE=MODE arguments."""
    page_modes: Dict[int, ExtractionMode] = {}
    for value in values or []:
        page, sep, mode = value.partition("=")
        if not sep:
            raise argparse.ArgumentTypeError(f"Expected PAGE=MODE, got {value!r}")
        try:
            page_modes[int(page)] = ExtractionMode(mode.strip().upper())
        except ValueError as e:
            raise argparse.ArgumentTypeError(
                f"Bad page mode {value!r} (modes: {', '.join(MODE_NAMES)})"
            ) from e
    return page_modes


def describe_modes() -> str:
    """One help line per extraction mode."""
    return "\n".join(
        f"  {mode.value:<12}{policy.label}: {policy.description}"
        for mode, policy in MODE_POLICIES.items()
    )


def page_cap(value: str) -> int:
    """Parse --max-pages; the cap must stay within 1..100."""
    try:
        pages = int(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Expected a page count, got {value!r}") from e
    if not 1 <= pages <= PDFRasterizer.DEFAULT_MAX_PAGES:
        raise argparse.ArgumentTypeError(
            f"--max-pages must be between 1 and {PDFRasterizer.DEFAULT_MAX_PAGES}, got {pages}"
        )
    return pages


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    load_dotenv()  # Load .env file if present

    parser = argparse.ArgumentParser(
        description="PDFDeck: Convert slide PDFs into editable PPTX decks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Modes:
{describe_modes()}

Examples:
  # Convert every page in BALANCED mode
  pdfdeck input.pdf

  # Text over a single background image, page 1 kept as a picture
  pdfdeck input.pdf --mode TEXT_FOCUS --page-mode 1=FULL_IMAGE

  # Leave out pages 2 and 7
  pdfdeck input.pdf --skip 2 --skip 7

  # Re-render from a saved run without calling the model
  pdfdeck --from-slides output/deck.slides.json

Environment Variables:
  GEMINI_API_KEY      API key for Gemini scene analysis
  GEMINI_MODEL        Gemini model name (default: gemini-2.0-flash)
  OUTPUT_DIR          Default output directory
        """,
    )

    parser.add_argument(
        "input",
        nargs="?",
        type=Path,
        help="Input PDF file or slides JSON (with --from-slides)",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"PDFDeck {__version__}",
    )

    parser.add_argument(
        "--output",
        "-o",
        type=Path,
        help="Output directory (default: $OUTPUT_DIR or ./output)",
    )

    parser.add_argument(
        "--name",
        help="Deck file name (default: the PDF's name)",
    )

    parser.add_argument(
        "--mode",
        type=str.upper,
        choices=MODE_NAMES,
        default=ExtractionMode.BALANCED.value,
        help="Extraction mode for every page (default: BALANCED, see Modes below)",
    )

    parser.add_argument(
        "--page-mode",
        action="append",
        metavar="PAGE=MODE",
        help="Override the mode of one page (repeatable)",
    )

    parser.add_argument(
        "--skip",
        action="append",
        type=int,
        metavar="PAGE",
        help="Leave a page out of the deck (repeatable)",
    )

    parser.add_argument(
        "--max-pages",
        type=page_cap,
        default=PDFRasterizer.DEFAULT_MAX_PAGES,
        help=f"Convert at most this many pages (default: {PDFRasterizer.DEFAULT_MAX_PAGES})",
    )

    parser.add_argument(
        "--model",
        help="Gemini model name (overrides GEMINI_MODEL)",
    )

    parser.add_argument(
        "--no-audit",
        action="store_true",
        help="Skip audit HTML generation",
    )

    parser.add_argument(
        "--no-intermediate",
        action="store_true",
        help="Don't save the intermediate slides JSON",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode (save prompts and responses)",
    )

    parser.add_argument(
        "--from-slides",
        action="store_true",
        help="Render from a saved slides JSON instead of a PDF",
    )

    args = parser.parse_args(argv)

    # Validate input
    if not args.input:
        parser.print_help()
        return 1

    if not args.input.exists():
        print(f"Error: Input file not found: {args.input}", file=sys.stderr)
        return 1

    try:
        page_modes = parse_page_modes(args.page_mode)
    except argparse.ArgumentTypeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    output_dir = args.output or Path(os.getenv("OUTPUT_DIR", "output"))

    try:
        if args.from_slides:
            output_path = output_dir / args.name if args.name else None
            ConversionPipeline.from_slides_json(args.input, output_path=output_path)
            return 0

        default_mode = ExtractionMode(args.mode)
        skipped = set(args.skip or [])
        needs_model = policy_for(default_mode).uses_model or any(
            policy_for(mode).uses_model for mode in page_modes.values()
        )

        analyzer = None
        if needs_model:
            analyzer = SceneAnalyzer(
                GeminiTransport(model=args.model),
                debug_dir=output_dir / "debug" if args.debug else None,
            )

        pipeline = ConversionPipeline(
            analyzer=analyzer,
            rasterizer=PDFRasterizer(max_pages=args.max_pages),
            require_credentials=False,
            generate_audit=not args.no_audit,
            save_intermediate=not args.no_intermediate,
        )

        pipeline.load(args.input)
        pipeline.set_mode_for_enabled(default_mode)
        for item in pipeline.items:
            if item.page_number in page_modes:
                pipeline.set_mode(item.page_number, page_modes[item.page_number])
            if item.page_number in skipped:
                pipeline.set_enabled(item.page_number, False)

        pipeline.convert(output_dir / (args.name or args.input.stem))

        if pipeline.failed_pages:
            print(
                f"{len(pipeline.failed_pages)} slide(s) could not be reconstructed "
                f"and were left empty: {', '.join(str(p) for p in pipeline.failed_pages)}",
                file=sys.stderr,
            )
        return 0

    except KeyboardInterrupt:
        print("\n\nInterrupted by user", file=sys.stderr)
        return 130

    except (PDFDeckError, OSError, ValueError) as e:
        print(f"\nError: {e}", file=sys.stderr)
        if args.debug:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
