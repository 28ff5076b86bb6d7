"""Flask application exposing word cloud layout and pointer hit-testing over HTTP."""
from __future__ import annotations

import logging
import math
import os
import uuid
from collections import OrderedDict
from typing import Any, Dict, Mapping, Optional, Sequence

from flask import Flask, jsonify, request

from cloudlayout_core import (
    DEFAULT_PALETTE,
    DEMO_WORDS,
    THEME_PRESETS,
    EnvironmentUnavailable,
    InvalidInput,
    LayoutCancelled,
    LayoutConfig,
    LayoutError,
    LayoutResult,
    PlacementUnsatisfiable,
    compute_layout,
    pointer_to_canvas,
    render_html,
    words_from_payload,
)
from cloudlayout_logging import parse_level, setup_logging
from cloudlayout_metrics import FixedWidthMetrics, PillowTextMetrics, TextMetricsProvider

logger = logging.getLogger(__name__)

app = Flask(__name__)

CACHE_ENABLED = os.environ.get("CLOUDLAYOUT_CACHE", "1").lower() not in {"0", "false", "no"}
CACHE_CAPACITY = max(1, int(os.environ.get("CLOUDLAYOUT_CACHE_MAX", "8") or 8))
LAYOUT_TIMEOUT = float(os.environ.get("CLOUDLAYOUT_TIMEOUT", "0") or 0) or None
LAYOUT_CACHE: OrderedDict[str, LayoutResult] = OrderedDict()

ERROR_STATUS = {
    InvalidInput: 400,
    PlacementUnsatisfiable: 422,
    EnvironmentUnavailable: 503,
    LayoutCancelled: 504,
}


def parse_palette(payload: Mapping[str, Any]) -> Sequence[str]:
    palette = payload.get("palette")
    if isinstance(palette, str):
        lower = palette.strip().lower()
        if lower in THEME_PRESETS:
            return list(THEME_PRESETS[lower])
        palette = [colour.strip() for colour in palette.split(",") if colour.strip()]
    if isinstance(palette, (list, tuple)):
        colours = [str(colour) for colour in palette if str(colour).strip()]
        if colours:
            return colours
    return list(DEFAULT_PALETTE)


def _optional_number(payload: Mapping[str, Any], key: str, cast=float) -> Optional[Any]:
    value = payload.get(key)
    if value is None:
        return None
    try:
        return cast(value)
    except (TypeError, ValueError, OverflowError):
        raise InvalidInput(f"{key} must be a number, got {value!r}") from None


def parse_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"", "0", "false", "no", "off"}:
            return False
    if value is None:
        return False
    raise InvalidInput(f"Expected a boolean, got {value!r}")


def parse_pixel_ratio(payload: Mapping[str, Any], default: float) -> float:
    ratio = _optional_number(payload, "devicePixelRatio")
    if ratio is None:
        return default
    if not math.isfinite(ratio) or ratio <= 0:
        raise InvalidInput(f"devicePixelRatio must be positive, got {ratio}")
    return ratio


def build_config(payload: Mapping[str, Any]) -> LayoutConfig:
    defaults = LayoutConfig()
    try:
        config = LayoutConfig(
            width=int(payload.get("width", defaults.width)),
            height=int(payload.get("height", defaults.height)),
            padding=float(payload.get("padding", defaults.padding)),
            font=str(payload.get("font", defaults.font)),
            base_font_size=float(payload.get("baseFontSize", defaults.base_font_size)),
            palette=parse_palette(payload),
            show_debug_rects=parse_flag(payload.get("showDebugRects", False)),
            background=str(payload.get("background", defaults.background)),
            shrink_factor=float(payload.get("shrinkFactor", defaults.shrink_factor)),
            retry_threshold=int(payload.get("retryThreshold", defaults.retry_threshold)),
            max_attempts=int(payload.get("maxAttempts", defaults.max_attempts)),
            min_font_size=float(payload.get("minFontSize", defaults.min_font_size)),
        )
    except (TypeError, ValueError, OverflowError) as exc:
        raise InvalidInput(f"Invalid layout option: {exc}") from None
    config.seed = _optional_number(payload, "seed", int)
    config.timeout = _optional_number(payload, "timeout") or LAYOUT_TIMEOUT
    return config


def build_metrics(payload: Mapping[str, Any]) -> TextMetricsProvider:
    if str(payload.get("metrics", "pillow")).lower() == "fixed":
        return FixedWidthMetrics()
    return PillowTextMetrics()


def store_layout(result: LayoutResult) -> Optional[str]:
    if not CACHE_ENABLED:
        return None
    layout_id = uuid.uuid4().hex
    LAYOUT_CACHE[layout_id] = result
    LAYOUT_CACHE.move_to_end(layout_id)
    while len(LAYOUT_CACHE) > CACHE_CAPACITY:
        LAYOUT_CACHE.popitem(last=False)
    return layout_id


def get_layout(layout_id: str) -> Optional[LayoutResult]:
    result = LAYOUT_CACHE.get(layout_id)
    if result is not None:
        LAYOUT_CACHE.move_to_end(layout_id)
    return result


@app.errorhandler(LayoutError)
def handle_layout_error(exc: LayoutError) -> Any:
    status = next((code for kind, code in ERROR_STATUS.items() if isinstance(exc, kind)), 500)
    logger.warning("Layout request failed (%s): %s", status, exc)
    return jsonify({"error": str(exc)}), status


@app.get("/")
def index() -> str:
    config = LayoutConfig(width=1000, height=1000)
    result = compute_layout(DEMO_WORDS, config, metrics=PillowTextMetrics())
    return render_html(result, font_family=config.font, background=config.background)


@app.post("/api/layout")
def layout() -> Any:
    payload = request.get_json(silent=True)
    if not isinstance(payload, Mapping):
        return jsonify({"error": "Expected a JSON object"}), 400
    if "words" not in payload:
        return jsonify({"error": "words missing"}), 400

    words = words_from_payload(payload["words"])
    config = build_config(payload)
    result = compute_layout(words, config, metrics=build_metrics(payload))

    response: Dict[str, Any] = {"layoutId": store_layout(result), "layout": result.to_dict()}
    if parse_flag(payload.get("returnHtml", False)):
        response["html"] = render_html(
            result,
            font_family=config.font,
            background=config.background,
            show_debug_rects=config.show_debug_rects,
            pixel_ratio=parse_pixel_ratio(payload, 2.0),
            title=str(payload.get("title", "Word Cloud")),
            heading=payload.get("heading"),
        )
    return jsonify(response)


@app.post("/api/hit")
def hit() -> Any:
    payload = request.get_json(silent=True)
    if not isinstance(payload, Mapping):
        return jsonify({"error": "Expected a JSON object"}), 400

    layout_id = str(payload.get("layoutId", ""))
    result = get_layout(layout_id)
    if result is None:
        return jsonify({"error": f"Unknown layout: {layout_id}"}), 404

    x, y = pointer_to_canvas(
        _optional_number(payload, "x") or 0.0,
        _optional_number(payload, "y") or 0.0,
        left=_optional_number(payload, "left") or 0.0,
        top=_optional_number(payload, "top") or 0.0,
        device_pixel_ratio=parse_pixel_ratio(payload, 1.0),
    )
    match = result.hit_test(x, y)
    if match is None:
        return jsonify({"match": None, "x": x, "y": y})
    entry = match.to_dict()
    entry["color"] = result.color_for(match)
    return jsonify({"match": entry, "x": x, "y": y})


if __name__ == "__main__":
    setup_logging(parse_level(os.environ.get("CLOUDLAYOUT_LOG_LEVEL")))
    app.run(debug=True)
