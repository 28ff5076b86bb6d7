"""Core placement engine for weighted canvas word clouds."""
from __future__ import annotations

import collections
import html
import json
import logging
import math
import re
import time
from collections.abc import Mapping as MappingABC
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from cloudlayout_metrics import PillowTextMetrics, TextMetricsProvider

logger = logging.getLogger(__name__)

THEME_PRESETS: Mapping[str, Sequence[str]] = {
    "muted": (
        "#cbd5e1","#94a3b8","#7fb3ad","#c9e3df","#8fa37b","#b7c9a6",
        "#b3a79f","#a3a3c4","#7a7aa0","#2a8c82",
    ),
    "sunrise": (
        "#6d3f9f","#a54bb7","#d855a8","#f26a7f","#ffa86e","#fdd27f",
    ),
    "ocean": (
        "#1c5a8f","#2877b5","#3495db","#3fb3ff","#72c9ff","#a6e0ff",
    ),
    "citrus": (
        "#ba5d21","#f97316","#fbbf24","#fde047","#fef9c3",
    ),
}

DEFAULT_PALETTE: Sequence[str] = tuple(THEME_PRESETS["muted"])
DEFAULT_FONT = "Arial"

DEMO_WORDS: Sequence[Tuple[str, float]] = (
    ("Hello", 1.0), ("World", 0.9), ("Vite", 0.8), ("React", 0.7), ("TypeScript", 0.6),
    ("JavaScript", 0.5), ("CSS", 0.4), ("HTML", 0.3), ("Sass", 0.2), ("Less", 0.1),
)

BASE_STOP = set("""a about above after again against all am an and any are as at be because been before being below
between both but by can did do does doing down during each few for from further had has have having he her here hers
herself him himself his how i if in into is it its itself just me more most my myself no nor not of off on once only
or other our ours ourselves out over own same she should so some such than that the their theirs them themselves then
there these they this those through to too under until up very was we were what when where which while who whom why will
with you your yours yourself yourselves""".split())

DEFAULT_JSON_SCORE_KEYS: Tuple[str, ...] = ("score", "weight", "size", "count")


class LayoutError(Exception):
    """Base class for failures that abort a layout request."""


class InvalidInput(LayoutError, ValueError):
    """Words or configuration cannot produce a meaningful layout."""


class EnvironmentUnavailable(LayoutError, RuntimeError):
    """The text metrics provider could not produce a measurement."""


class PlacementUnsatisfiable(LayoutError):
    """A word could not be placed within the attempt cap."""

    def __init__(self, text: str, font_size: float, attempts: int, reason: str = "") -> None:
        self.text = text
        self.font_size = font_size
        self.attempts = attempts
        detail = f" ({reason})" if reason else ""
        super().__init__(
            f"Could not place {text!r} after {attempts} attempts at {font_size:.1f}px{detail}"
        )


class LayoutCancelled(LayoutError):
    """The caller aborted the layout or its timeout expired."""


@dataclass(frozen=True)
class Word:
    text: str
    score: float


@dataclass(frozen=True)
class NormalizedWord:
    text: str
    score: float
    source: Word
    index: int


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.x, self.y, self.width, self.height)


@dataclass(frozen=True)
class WordLayout:
    word: Word
    rect: Rect
    font_size: float
    opacity: float = 1.0
    color_index: int = 0

    def to_dict(self) -> Dict[str, object]:
        return {
            "text": self.word.text,
            "score": self.word.score,
            "rect": {
                "x": self.rect.x,
                "y": self.rect.y,
                "width": self.rect.width,
                "height": self.rect.height,
            },
            "fontSize": self.font_size,
            "opacity": self.opacity,
            "colorIndex": self.color_index,
        }


@dataclass
class LayoutConfig:
    """Canvas and engine settings for a single layout request."""

    width: int = 1000
    height: int = 1000
    padding: float = 20.0
    font: str = DEFAULT_FONT
    base_font_size: float = 5000.0
    palette: Sequence[str] = field(default_factory=lambda: list(DEFAULT_PALETTE))
    show_debug_rects: bool = False
    background: str = "#1f1f1f"
    shrink_factor: float = 0.95
    retry_threshold: int = 1000
    max_attempts: int = 50_000
    min_font_size: float = 8.0
    seed: Optional[int] = None
    timeout: Optional[float] = None

    def validate(self) -> None:
        numbers = {
            "width": self.width,
            "height": self.height,
            "padding": self.padding,
            "base_font_size": self.base_font_size,
            "min_font_size": self.min_font_size,
            "shrink_factor": self.shrink_factor,
        }
        if self.timeout is not None:
            numbers["timeout"] = self.timeout
        for name, value in numbers.items():
            if not math.isfinite(value):
                raise InvalidInput(f"{name} must be a finite number, got {value}")
        if self.seed is not None and self.seed < 0:
            raise InvalidInput(f"Seed must be non-negative, got {self.seed}")
        if self.width <= 0 or self.height <= 0:
            raise InvalidInput(f"Canvas size must be positive, got {self.width}x{self.height}")
        if self.padding < 0:
            raise InvalidInput(f"Padding must be non-negative, got {self.padding}")
        if self.base_font_size <= 0:
            raise InvalidInput(f"Base font size must be positive, got {self.base_font_size}")
        if self.min_font_size <= 0:
            raise InvalidInput(f"Minimum font size must be positive, got {self.min_font_size}")
        if not 0.0 < self.shrink_factor < 1.0:
            raise InvalidInput(f"Shrink factor must lie in (0, 1), got {self.shrink_factor}")
        if self.retry_threshold <= 0 or self.max_attempts <= 0:
            raise InvalidInput("Retry threshold and attempt cap must be positive")
        if not self.palette:
            raise InvalidInput("Colour palette must not be empty")
        if self.timeout is not None and self.timeout <= 0:
            raise InvalidInput(f"Timeout must be positive, got {self.timeout}")


@dataclass(frozen=True)
class LayoutResult:
    """Committed placements in commit order plus the palette they index into."""

    placements: Tuple[WordLayout, ...]
    palette: Tuple[str, ...]
    width: int
    height: int

    def __iter__(self) -> Iterator[WordLayout]:
        return iter(self.placements)

    def __len__(self) -> int:
        return len(self.placements)

    def __getitem__(self, index: int) -> WordLayout:
        return self.placements[index]

    def color_for(self, placement: WordLayout) -> str:
        return self.palette[placement.color_index]

    def hit_test(self, x: float, y: float) -> Optional[WordLayout]:
        return hit_test(self.placements, x, y)

    def to_dict(self) -> Dict[str, object]:
        placements = []
        for placement in self.placements:
            entry = placement.to_dict()
            entry["color"] = self.color_for(placement)
            placements.append(entry)
        return {
            "width": self.width,
            "height": self.height,
            "palette": list(self.palette),
            "placements": placements,
        }


# Geometry


def intersects(a: Rect, b: Rect) -> bool:
    return (
        a.x < b.x + b.width
        and a.x + a.width > b.x
        and a.y < b.y + b.height
        and a.y + a.height > b.y
    )


def is_in_bounds(rect: Rect, canvas_width: float, canvas_height: float) -> bool:
    return (
        rect.x >= 0
        and rect.y >= 0
        and rect.x + rect.width <= canvas_width
        and rect.y + rect.height <= canvas_height
    )


def intersects_any(rect: Rect, used: np.ndarray) -> bool:
    """Vectorised ``intersects`` of ``rect`` against an (n, 4) array of x, y, width, height rows."""
    if used.shape[0] == 0:
        return False
    xs, ys, ws, hs = used[:, 0], used[:, 1], used[:, 2], used[:, 3]
    hits = (
        (rect.x < xs + ws)
        & (rect.x + rect.width > xs)
        & (rect.y < ys + hs)
        & (rect.y + rect.height > ys)
    )
    return bool(hits.any())


# Words and normalisation


WordLike = Union[Word, Mapping[str, object], Sequence[object]]


def coerce_word(value: WordLike) -> Word:
    if isinstance(value, Word):
        return value
    if isinstance(value, MappingABC):
        text = value.get("text")
        raw_score = None
        for key in DEFAULT_JSON_SCORE_KEYS:
            if key in value:
                raw_score = value[key]
                break
    elif isinstance(value, (list, tuple)) and len(value) == 2:
        text, raw_score = value
    else:
        raise InvalidInput(f"Unrecognised word entry: {value!r}")
    if not isinstance(text, str) or not text.strip():
        raise InvalidInput(f"Word text must be a non-empty string, got {text!r}")
    try:
        score = float(raw_score)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise InvalidInput(f"Score for {text!r} is not a number: {raw_score!r}") from None
    return Word(text=text, score=score)


def coerce_words(values: Iterable[WordLike]) -> List[Word]:
    return [coerce_word(value) for value in values]


def normalize_words(words: Sequence[Word]) -> List[NormalizedWord]:
    """Sort a copy of ``words`` by descending score and scale scores to sum to one.

    Ties keep their input order. The caller's sequence is never reordered.
    """
    items = list(words)
    if not items:
        raise InvalidInput("At least one word is required")

    scores = np.array([word.score for word in items], dtype=float)
    if not np.all(np.isfinite(scores)):
        raise InvalidInput("Scores must be finite numbers")
    if np.any(scores < 0):
        raise InvalidInput("Scores must not be negative")

    total = float(scores.sum())
    if total <= 0:
        raise InvalidInput(f"Total score must be positive, got {total}")

    order = np.argsort(-scores, kind="stable")
    return [
        NormalizedWord(
            text=items[idx].text,
            score=float(scores[idx] / total),
            source=items[idx],
            index=int(idx),
        )
        for idx in order
    ]


# Placement


def _abort_checker(
    cancel: Optional[Callable[[], bool]], timeout: Optional[float]
) -> Callable[[], None]:
    deadline = time.monotonic() + timeout if timeout is not None else None

    def check() -> None:
        if cancel is not None and cancel():
            raise LayoutCancelled("Layout cancelled by caller")
        if deadline is not None and time.monotonic() > deadline:
            raise LayoutCancelled(f"Layout exceeded timeout of {timeout}s")

    return check


def _measure_rect_size(
    metrics: TextMetricsProvider, text: str, font: str, font_size: float, padding: float
) -> Tuple[float, float]:
    try:
        measured = metrics.measure(text, font, font_size)
    except EnvironmentUnavailable:
        raise
    except (OSError, RuntimeError, ValueError) as exc:
        raise EnvironmentUnavailable(f"Could not measure {text!r} at {font_size:.1f}px: {exc}") from exc
    width = measured.width + 2 * padding
    height = measured.ascent + measured.descent + 2 * padding
    return width, height


def place_word(
    word: NormalizedWord,
    used: np.ndarray,
    *,
    config: LayoutConfig,
    metrics: TextMetricsProvider,
    rng: np.random.Generator,
    check_abort: Callable[[], None],
) -> WordLayout:
    canvas_width, canvas_height = config.width, config.height
    current = word.score
    failures = 0
    font_size = max(config.base_font_size * current, config.min_font_size)

    for attempt in range(1, config.max_attempts + 1):
        check_abort()
        font_size = max(config.base_font_size * current, config.min_font_size)
        width, height = _measure_rect_size(metrics, word.text, config.font, font_size, config.padding)

        if width > canvas_width or height > canvas_height:
            if font_size <= config.min_font_size:
                raise PlacementUnsatisfiable(
                    word.text, font_size, attempt, "larger than the canvas at the minimum font size"
                )
            current *= config.shrink_factor
            failures = 0
            logger.debug("%r does not fit the canvas at %.1fpx, shrinking", word.text, font_size)
            continue

        x = float(rng.uniform(0.0, canvas_width - width))
        y = float(rng.uniform(0.0, canvas_height - height))
        candidate = Rect(x, y, width, height)

        if is_in_bounds(candidate, canvas_width, canvas_height) and not intersects_any(candidate, used):
            logger.debug(
                "Placed %r at (%.1f, %.1f) size %.1fpx after %d attempts",
                word.text, x, y, font_size, attempt,
            )
            return WordLayout(word=word.source, rect=candidate, font_size=font_size, opacity=1.0)

        failures += 1
        if failures > config.retry_threshold:
            current *= config.shrink_factor
            failures = 0
            logger.debug("%r collided %d times, shrinking from %.1fpx", word.text, config.retry_threshold, font_size)

    raise PlacementUnsatisfiable(word.text, font_size, config.max_attempts)


def place_words(
    words: Sequence[NormalizedWord],
    *,
    config: LayoutConfig,
    metrics: TextMetricsProvider,
    rng: np.random.Generator,
    cancel: Optional[Callable[[], bool]] = None,
) -> List[WordLayout]:
    """Greedily place ``words`` (already in descending order) without overlap."""
    check_abort = _abort_checker(cancel, config.timeout)
    used = np.empty((0, 4), dtype=float)
    placements: List[WordLayout] = []
    for word in words:
        placement = place_word(
            word, used, config=config, metrics=metrics, rng=rng, check_abort=check_abort
        )
        used = np.vstack([used, np.array(placement.rect.as_tuple(), dtype=float)])
        placements.append(placement)
    return placements


# Colours


def assign_colors(
    placements: Sequence[WordLayout], palette: Sequence[str], rng: np.random.Generator
) -> Tuple[Tuple[str, ...], List[WordLayout]]:
    """Shuffle a copy of ``palette`` and cycle it over ``placements`` in commit order."""
    shuffled = list(palette)
    if not shuffled:
        raise InvalidInput("Colour palette must not be empty")
    for i in range(len(shuffled) - 1, 0, -1):
        j = int(rng.integers(0, i + 1))
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    coloured = [
        replace(placement, color_index=position % len(shuffled))
        for position, placement in enumerate(placements)
    ]
    return tuple(shuffled), coloured


# Hit-testing


def hit_test(placements: Iterable[WordLayout], x: float, y: float) -> Optional[WordLayout]:
    probe = Rect(x, y, 1, 1)
    for placement in placements:
        if intersects(placement.rect, probe):
            return placement
    return None


def pointer_to_canvas(
    client_x: float,
    client_y: float,
    *,
    left: float = 0.0,
    top: float = 0.0,
    device_pixel_ratio: float = 1.0,
) -> Tuple[float, float]:
    return (client_x - left) * device_pixel_ratio, (client_y - top) * device_pixel_ratio


# Entry point


def compute_layout(
    words: Iterable[WordLike],
    config: Optional[LayoutConfig] = None,
    *,
    metrics: Optional[TextMetricsProvider] = None,
    rng: Optional[np.random.Generator] = None,
    cancel: Optional[Callable[[], bool]] = None,
) -> LayoutResult:
    """Lay out ``words`` on the configured canvas.

    Either every word is placed or a ``LayoutError`` is raised; no partial
    layout is returned. The random generator is local to this call unless one
    is passed in.
    """
    config = config or LayoutConfig()
    config.validate()
    items = coerce_words(words)
    if rng is None:
        rng = np.random.default_rng(config.seed)

    if not items:
        return LayoutResult(placements=(), palette=tuple(config.palette), width=config.width, height=config.height)

    if metrics is None:
        metrics = PillowTextMetrics()

    started = time.perf_counter()
    normalized = normalize_words(items)
    placements = place_words(normalized, config=config, metrics=metrics, rng=rng, cancel=cancel)
    palette, coloured = assign_colors(placements, config.palette, rng)
    logger.info(
        "Laid out %d words on %dx%d in %.3fs",
        len(coloured), config.width, config.height, time.perf_counter() - started,
    )
    return LayoutResult(placements=tuple(coloured), palette=palette, width=config.width, height=config.height)


# Word sources


def tokenize_text(body: str, *, stopwords: Iterable[str] = BASE_STOP, min_length: int = 3) -> List[str]:
    stop = set(stopwords)
    text = body.lower()
    text = re.sub(r"https?://\S+|www\.\S+", " ", text)
    text = re.sub(r"[^a-z0-9\s'-]", " ", text)

    cleaned: List[str] = []
    for token in text.split():
        token = token.strip("-'")
        if not token or token in stop:
            continue
        if not re.fullmatch(r"[a-z]+'?[a-z]*", token):
            continue
        if len(token) < min_length:
            continue
        cleaned.append(token)
    return cleaned


def words_from_text(text: str, *, max_items: int = 100, min_length: int = 3) -> List[Word]:
    counts = collections.Counter(tokenize_text(text, min_length=min_length))
    return [Word(text=token, score=float(count)) for token, count in counts.most_common(max_items)]


def words_from_payload(payload: object) -> List[Word]:
    if isinstance(payload, MappingABC):
        if "words" in payload:
            return words_from_payload(payload["words"])
        return coerce_words((str(text), score) for text, score in payload.items())
    if isinstance(payload, (list, tuple)):
        return coerce_words(payload)
    raise InvalidInput(f"Unsupported word payload of type {type(payload).__name__}")


def load_words_from_json_path(json_path: Path | str) -> List[Word]:
    path = Path(json_path)
    with path.open("r", encoding="utf-8") as infile:
        payload = json.load(infile)
    return words_from_payload(payload)


def load_words_from_text_path(text_path: Path | str, *, max_items: int = 100) -> List[Word]:
    path = Path(text_path)
    return words_from_text(path.read_text(encoding="utf-8"), max_items=max_items)


def load_words_from_file(
    path: Path | str, *, file_type: Optional[str] = None, max_items: int = 100
) -> List[Word]:
    target = Path(path)
    kind = (file_type or "auto").lower()
    if kind not in {"auto", "json", "text"}:
        kind = "auto"
    if kind == "auto":
        kind = "json" if target.suffix.lower() == ".json" else "text"
    if kind == "json":
        return load_words_from_json_path(target)
    return load_words_from_text_path(target, max_items=max_items)


# Rendering


HTML_TEMPLATE = """<!DOCTYPE html>
<html lang=\"en\">
<head>
<meta charset=\"utf-8\"/>
<meta name=\"viewport\" content=\"width=device-width, initial-scale=1\"/>
<title>{title}</title>
<style>
  :root {{ --bg:#ffffff; --border:#e6e6ea; --text:#111827; }}
  body {{ margin:0; background:var(--bg); color:var(--text); font-family: ui-sans-serif, system-ui, -apple-system, \"Segoe UI\", Roboto, Helvetica, Arial; }}
  header {{ padding:12px 16px; font-weight:700; letter-spacing:.2px; }}
  #wrap {{ display:flex; flex-direction:column; align-items:center; gap:10px; padding:10px; }}
  canvas {{ border:1px solid var(--border); width:{css_width}px; height:{css_height}px; }}
  .controls {{ display:flex; gap:8px; align-items:center; flex-wrap:wrap; }}
  button {{ padding:8px 12px; border-radius:10px; border:1px solid var(--border); background:#f8fafc; cursor:pointer; font-weight:600; }}
  button:hover {{ background:#eef2f7; }}
  .legend {{ font-size:12px; opacity:.75; }}
</style>
</head>
<body>
  <div id=\"wrap\">
    <header>{heading}</header>
    <div class=\"controls\">
      <button id=\"download\">Download PNG</button>
      <span id=\"status\" class=\"legend\"></span>
    </div>
    <canvas id=\"cloud\" width=\"{width}\" height=\"{height}\"></canvas>
  </div>

  <script>
    const layout = {layout_js};
    const fontFamily = {font_family_js};
    const background = {background_js};
    const showRects = {show_rects_js};
    const pixelRatio = {pixel_ratio};
    const canvas = document.getElementById('cloud');
    const ctx = canvas.getContext('2d');
    const status = document.getElementById('status');

    function draw() {{
      ctx.fillStyle = background;
      ctx.fillRect(0, 0, canvas.width, canvas.height);
      ctx.textAlign = "center";
      ctx.textBaseline = "middle";
      layout.placements.forEach((p) => {{
        const r = p.rect;
        ctx.font = `${{p.fontSize}}px ${{fontFamily}}`;
        ctx.fillStyle = p.color;
        ctx.globalAlpha = p.opacity;
        ctx.fillText(p.text, r.x + r.width / 2, r.y + r.height / 2);
        if (showRects) {{
          ctx.globalAlpha = 1;
          ctx.strokeStyle = "white";
          ctx.strokeRect(r.x, r.y, r.width, r.height);
        }}
      }});
      ctx.globalAlpha = 1;
      status.textContent = "Rendered • " + layout.placements.length + " items";
    }}

    function wordAt(event) {{
      const bounds = canvas.getBoundingClientRect();
      const x = (event.clientX - bounds.left) * pixelRatio;
      const y = (event.clientY - bounds.top) * pixelRatio;
      return layout.placements.find((p) =>
        p.rect.x < x + 1 && p.rect.x + p.rect.width > x &&
        p.rect.y < y + 1 && p.rect.y + p.rect.height > y) || null;
    }}

    canvas.addEventListener('mousemove', (event) => {{
      const hit = wordAt(event);
      status.textContent = hit ? hit.text + " • " + hit.score : "";
    }});

    draw();

    document.getElementById('download').addEventListener('click', () => {{
      const url = canvas.toDataURL("image/png");
      const a = document.createElement('a');
      a.href = url;
      a.download = 'wordcloud.png';
      document.body.appendChild(a);
      a.click();
      document.body.removeChild(a);
    }});
  </script>
</body>
</html>
"""


def _script_json(value: object) -> str:
    # Word text is caller-supplied and must not close the surrounding <script>.
    return (
        json.dumps(value)
        .replace("<", "\\u003c")
        .replace(">", "\\u003e")
        .replace("&", "\\u0026")
    )


def render_html(
    result: LayoutResult,
    *,
    font_family: str = DEFAULT_FONT,
    background: str = "#1f1f1f",
    show_debug_rects: bool = False,
    pixel_ratio: float = 2.0,
    title: str = "Word Cloud",
    heading: str | None = None,
) -> str:
    if not math.isfinite(pixel_ratio) or pixel_ratio <= 0:
        raise InvalidInput(f"Pixel ratio must be positive, got {pixel_ratio}")
    return HTML_TEMPLATE.format(
        layout_js=_script_json(result.to_dict()),
        font_family_js=_script_json(font_family),
        background_js=_script_json(background),
        show_rects_js="true" if show_debug_rects else "false",
        pixel_ratio=json.dumps(float(pixel_ratio)),
        width=result.width,
        height=result.height,
        css_width=int(math.ceil(result.width / pixel_ratio)),
        css_height=int(math.ceil(result.height / pixel_ratio)),
        title=html.escape(title),
        heading=html.escape(heading or title),
    )
