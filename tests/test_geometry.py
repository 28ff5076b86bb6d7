"""
Rectangle geometry used by placement and hit-testing.

Covers:
  - open-rectangle intersection (edge contact is not overlap)
  - canvas bounds checks, inclusive of the far edges
  - the vectorised check agrees with the scalar one

Run: python -m pytest tests/test_geometry.py -v
"""

import numpy as np
import pytest

from cloudlayout_core import Rect, intersects, intersects_any, is_in_bounds


def _rows(*rects):
    return np.array([r.as_tuple() for r in rects], dtype=float).reshape(-1, 4)


class TestIntersects:

    def test_overlapping(self):
        assert intersects(Rect(0, 0, 10, 10), Rect(5, 5, 10, 10))

    def test_contained(self):
        assert intersects(Rect(0, 0, 100, 100), Rect(40, 40, 2, 2))

    def test_touching_edges_do_not_intersect(self):
        a = Rect(0, 0, 10, 10)
        assert not intersects(a, Rect(10, 0, 10, 10))
        assert not intersects(a, Rect(0, 10, 10, 10))
        assert not intersects(a, Rect(10, 10, 5, 5))

    def test_disjoint(self):
        assert not intersects(Rect(0, 0, 10, 10), Rect(50, 50, 10, 10))

    def test_symmetric(self):
        a, b = Rect(0, 0, 10, 10), Rect(9, 9, 3, 3)
        assert intersects(a, b) == intersects(b, a)


class TestInBounds:

    def test_exactly_filling_canvas(self):
        assert is_in_bounds(Rect(0, 0, 800, 600), 800, 600)

    def test_negative_origin(self):
        assert not is_in_bounds(Rect(-0.1, 0, 10, 10), 800, 600)
        assert not is_in_bounds(Rect(0, -1, 10, 10), 800, 600)

    def test_overflowing_far_edge(self):
        assert not is_in_bounds(Rect(795, 0, 10, 10), 800, 600)
        assert not is_in_bounds(Rect(0, 595, 10, 10), 800, 600)


class TestIntersectsAny:

    def test_empty_used_space(self):
        assert not intersects_any(Rect(0, 0, 10, 10), np.empty((0, 4)))

    @pytest.mark.parametrize("candidate", [
        Rect(5, 5, 10, 10),
        Rect(10, 0, 10, 10),
        Rect(200, 200, 5, 5),
        Rect(95, 95, 20, 20),
    ])
    def test_matches_scalar_check(self, candidate):
        used = [Rect(0, 0, 10, 10), Rect(100, 100, 50, 50)]
        expected = any(intersects(candidate, r) for r in used)
        assert intersects_any(candidate, _rows(*used)) == expected
