"""
Text measurement backends.

Run: python -m pytest tests/test_metrics.py -v
"""

import pytest

from cloudlayout_metrics import FixedWidthMetrics, PillowTextMetrics, TextMetrics


class TestFixedWidthMetrics:

    def test_proportional_to_length_and_size(self):
        metrics = FixedWidthMetrics()
        assert metrics.measure("abcd", "Arial", 10) == TextMetrics(width=24.0, ascent=8.0, descent=2.0)

    def test_deterministic(self):
        metrics = FixedWidthMetrics(char_width=0.5)
        assert metrics.measure("word", "x", 33.3) == metrics.measure("word", "x", 33.3)


class TestPillowTextMetrics:

    def test_width_grows_with_size(self):
        metrics = PillowTextMetrics()
        small = metrics.measure("Hello", "Arial", 20)
        large = metrics.measure("Hello", "Arial", 80)
        assert 0 < small.width < large.width
        assert small.ascent > 0
        assert large.ascent + large.descent > small.ascent + small.descent

    def test_longer_text_is_wider(self):
        metrics = PillowTextMetrics()
        assert metrics.measure("Hello World", "Arial", 40).width > metrics.measure("Hello", "Arial", 40).width

    def test_unknown_family_falls_back(self):
        measured = PillowTextMetrics().measure("Hello", "No Such Font Family", 24)
        assert measured.width > 0

    def test_fractional_size_is_scaled(self):
        metrics = PillowTextMetrics()
        whole = metrics.measure("Hello", "Arial", 40)
        fractional = metrics.measure("Hello", "Arial", 40.4)
        assert fractional.width == pytest.approx(whole.width * 40.4 / 40)
