"""Text measurement backends used by the placement engine."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Protocol, Set

from PIL import ImageFont

logger = logging.getLogger(__name__)

_warned_families: Set[str] = set()


@dataclass(frozen=True)
class TextMetrics:
    width: float
    ascent: float
    descent: float


class TextMetricsProvider(Protocol):
    def measure(self, text: str, font: str, pixel_size: float) -> TextMetrics:
        ...


@lru_cache(maxsize=256)
def _load_font(font_family: str, size: int) -> ImageFont.FreeTypeFont:
    """Load a truetype font by family name, falling back to Pillow's bundled font."""
    candidates = [
        font_family,
        font_family + ".ttf",
        font_family.replace(" ", "") + ".ttf",
        font_family.lower().replace(" ", "") + ".ttf",
    ]
    for name in candidates:
        try:
            return ImageFont.truetype(name, size=size)
        except OSError:
            continue
    if font_family not in _warned_families:
        _warned_families.add(font_family)
        logger.warning("Font %r not found; measuring with Pillow's default font", font_family)
    font = ImageFont.load_default(size=size)
    if not isinstance(font, ImageFont.FreeTypeFont):
        # Pillow built without FreeType only ships a fixed-size bitmap font.
        raise OSError("Scalable fonts are unavailable in this Pillow build")
    return font


class PillowTextMetrics:
    """Measure text with Pillow's FreeType bindings.

    Pillow sizes fonts in whole pixels, so the measurement is taken at the
    rounded size and scaled back to the requested fractional size.
    """

    def measure(self, text: str, font: str, pixel_size: float) -> TextMetrics:
        size = max(1, int(round(pixel_size)))
        face = _load_font(font, size)
        ascent, descent = face.getmetrics()
        scale = pixel_size / size
        return TextMetrics(
            width=float(face.getlength(text)) * scale,
            ascent=float(ascent) * scale,
            descent=float(descent) * scale,
        )


@dataclass(frozen=True)
class FixedWidthMetrics:
    """Deterministic metrics for tests and headless runs: every glyph is the same width."""

    char_width: float = 0.6
    ascent_ratio: float = 0.8
    descent_ratio: float = 0.2

    def measure(self, text: str, font: str, pixel_size: float) -> TextMetrics:
        return TextMetrics(
            width=len(text) * pixel_size * self.char_width,
            ascent=pixel_size * self.ascent_ratio,
            descent=pixel_size * self.descent_ratio,
        )
