"""CLI entrypoint for laying out a word cloud and writing it as an HTML page."""
from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Optional, Sequence

from cloudlayout_core import (
    DEFAULT_FONT,
    DEFAULT_PALETTE,
    DEMO_WORDS,
    THEME_PRESETS,
    LayoutConfig,
    LayoutError,
    coerce_words,
    compute_layout,
    load_words_from_file,
    render_html,
)
from cloudlayout_logging import parse_level, setup_logging
from cloudlayout_metrics import FixedWidthMetrics, PillowTextMetrics, TextMetricsProvider

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Lay out weighted words on a canvas and write an HTML page.")
    parser.add_argument(
        "input_path",
        nargs="?",
        default=None,
        help="Path to a JSON word list or a text file to count. Uses a demo list when omitted.",
    )
    parser.add_argument(
        "--output",
        "-o",
        type=Path,
        default=Path("output/wordcloud.html"),
        help="Destination HTML file path.",
    )
    parser.add_argument(
        "--input-type",
        choices=["auto", "json", "text"],
        default="auto",
        help="Force the input to be treated as a JSON word list or plain text.",
    )
    parser.add_argument("--max-items", type=int, default=100, help="Maximum number of words taken from plain text.")
    parser.add_argument("--width", type=int, default=1000, help="Canvas width in pixels.")
    parser.add_argument("--height", type=int, default=1000, help="Canvas height in pixels.")
    parser.add_argument("--padding", type=float, default=20.0, help="Padding around each word in pixels.")
    parser.add_argument("--font", type=str, default=DEFAULT_FONT, help="Font family used for measuring and drawing.")
    parser.add_argument("--base-font-size", type=float, default=5000.0, help="Font size of a word holding the whole weight.")
    parser.add_argument("--min-font-size", type=float, default=8.0, help="Smallest font size a word may shrink to.")
    parser.add_argument("--shrink-factor", type=float, default=0.95, help="Multiplier applied when a word keeps colliding.")
    parser.add_argument("--retry-threshold", type=int, default=1000, help="Collisions tolerated before shrinking.")
    parser.add_argument("--max-attempts", type=int, default=50_000, help="Attempt cap per word before giving up.")
    parser.add_argument("--timeout", type=float, default=None, help="Abort the layout after this many seconds.")
    parser.add_argument("--seed", type=int, default=None, help="Seed for a reproducible layout.")
    parser.add_argument(
        "--palette",
        type=str,
        default=None,
        help="Preset name or comma-delimited list of colour hex codes.",
    )
    parser.add_argument("--background", type=str, default="#1f1f1f", help="Canvas background colour.")
    parser.add_argument("--pixel-ratio", type=float, default=2.0, help="Device pixel ratio the page is drawn for.")
    parser.add_argument("--debug-rects", action="store_true", help="Stroke each word's bounding rectangle.")
    parser.add_argument(
        "--metrics",
        choices=["pillow", "fixed"],
        default="pillow",
        help="Text measurement backend.",
    )
    parser.add_argument("--title", type=str, default="Word Cloud", help="HTML document title.")
    parser.add_argument("--heading", type=str, default=None, help="Heading text displayed above the canvas.")
    parser.add_argument(
        "--dump-json",
        type=Path,
        default=None,
        help="Optional path to dump the computed layout as JSON alongside the HTML output.",
    )
    parser.add_argument("--log-level", type=str, default="INFO", help="Logging level (DEBUG, INFO, ...).")
    return parser.parse_args(argv)


def parse_palette(raw: str | None) -> Sequence[str]:
    if not raw:
        return DEFAULT_PALETTE
    lower = raw.strip().lower()
    if lower in THEME_PRESETS:
        return THEME_PRESETS[lower]
    colours = [colour.strip() for colour in raw.split(",") if colour.strip()]
    return colours or DEFAULT_PALETTE


def build_metrics(name: str) -> TextMetricsProvider:
    if name == "fixed":
        return FixedWidthMetrics()
    return PillowTextMetrics()


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    setup_logging(parse_level(args.log_level))

    if args.input_path is None:
        words = coerce_words(DEMO_WORDS)
    else:
        input_path = Path(args.input_path)
        if not input_path.exists():
            raise SystemExit(f"Input file not found: {input_path}")
        file_type = args.input_type if args.input_type != "auto" else None
        try:
            words = load_words_from_file(input_path, file_type=file_type, max_items=args.max_items)
        except (LayoutError, json.JSONDecodeError) as exc:
            raise SystemExit(f"Could not read words from {input_path}: {exc}") from exc

    config = LayoutConfig(
        width=args.width,
        height=args.height,
        padding=args.padding,
        font=args.font,
        base_font_size=args.base_font_size,
        palette=list(parse_palette(args.palette)),
        show_debug_rects=args.debug_rects,
        background=args.background,
        shrink_factor=args.shrink_factor,
        retry_threshold=args.retry_threshold,
        max_attempts=args.max_attempts,
        min_font_size=args.min_font_size,
        seed=args.seed,
        timeout=args.timeout,
    )

    try:
        result = compute_layout(words, config, metrics=build_metrics(args.metrics))
    except LayoutError as exc:
        raise SystemExit(f"Layout failed: {exc}") from exc

    try:
        html = render_html(
            result,
            font_family=config.font,
            background=config.background,
            show_debug_rects=config.show_debug_rects,
            pixel_ratio=args.pixel_ratio,
            title=args.title,
            heading=args.heading,
        )
    except LayoutError as exc:
        raise SystemExit(f"Rendering failed: {exc}") from exc

    args.output.parent.mkdir(parents=True, exist_ok=True)
    args.output.write_text(html, encoding="utf-8")
    logger.info("Wrote %s", args.output)
    print(args.output)

    if args.dump_json:
        args.dump_json.parent.mkdir(parents=True, exist_ok=True)
        args.dump_json.write_text(json.dumps(result.to_dict(), indent=2), encoding="utf-8")


if __name__ == "__main__":
    main()
