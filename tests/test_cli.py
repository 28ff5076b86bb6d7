"""
Command line entry point.

Run: python -m pytest tests/test_cli.py -v
"""

import json

import pytest

import cloudlayout
from cloudlayout_core import DEFAULT_PALETTE, THEME_PRESETS


def _common_args(tmp_path):
    return [
        "--metrics", "fixed",
        "--seed", "1",
        "--width", "800",
        "--height", "600",
        "--base-font-size", "600",
        "-o", str(tmp_path / "out" / "cloud.html"),
        "--dump-json", str(tmp_path / "out" / "layout.json"),
        "--log-level", "WARNING",
    ]


class TestMain:

    def test_demo_words(self, tmp_path):
        cloudlayout.main(_common_args(tmp_path))
        html = (tmp_path / "out" / "cloud.html").read_text(encoding="utf-8")
        layout = json.loads((tmp_path / "out" / "layout.json").read_text(encoding="utf-8"))
        assert "<canvas" in html
        assert len(layout["placements"]) == 10
        assert layout["placements"][0]["text"] == "Hello"

    def test_json_input(self, tmp_path):
        source = tmp_path / "words.json"
        source.write_text(json.dumps({"alpha": 3, "beta": 1}), encoding="utf-8")
        cloudlayout.main([str(source)] + _common_args(tmp_path))
        layout = json.loads((tmp_path / "out" / "layout.json").read_text(encoding="utf-8"))
        assert [p["text"] for p in layout["placements"]] == ["alpha", "beta"]

    def test_missing_input(self, tmp_path):
        with pytest.raises(SystemExit):
            cloudlayout.main([str(tmp_path / "nope.json")] + _common_args(tmp_path))

    def test_unplaceable_exits(self, tmp_path):
        source = tmp_path / "words.json"
        source.write_text(json.dumps([["VeryLongWordThatCannotFit", 1]]), encoding="utf-8")
        args = [str(source), "--metrics", "fixed", "--width", "10", "--height", "10", "-o", str(tmp_path / "x.html")]
        with pytest.raises(SystemExit):
            cloudlayout.main(args)


class TestParsePalette:

    def test_preset(self):
        assert cloudlayout.parse_palette("Ocean") == THEME_PRESETS["ocean"]

    def test_custom_list(self):
        assert cloudlayout.parse_palette("#111, #222,") == ["#111", "#222"]

    def test_default(self):
        assert cloudlayout.parse_palette(None) == DEFAULT_PALETTE
