from __future__ import annotations

import numpy as np
import pytest

from checkerloc.api.white_point import estimate_white_point, estimate_white_point_coordinates
from checkerloc.target.checkerboard import CheckerboardSpec


def _grid(spec: CheckerboardSpec, step: float = 10.0, origin: float = 10.0) -> np.ndarray:
    xx, yy = np.meshgrid(origin + step * np.arange(spec.checkers_x), origin + step * np.arange(spec.checkers_y))
    return np.stack([xx.ravel(), yy.ravel()], axis=-1)


def test_brightest_block_wins() -> None:
    spec = CheckerboardSpec(checkers_x=4, checkers_y=6)
    pts = _grid(spec)
    img = np.zeros((80, 60, 3), dtype=np.float64)
    img[35, 25, :] = [0.9, 0.8, 0.7]  # midpoint of block (row 2, col 1)
    img[15, 15, :] = [0.1, 0.1, 0.1]  # block (0, 0), dimmer

    wp = estimate_white_point_coordinates(img, pts, spec)
    assert wp.ok
    assert wp.block == (2, 1)
    assert np.allclose(wp.xy, [25.0, 35.0])

    color = estimate_white_point(img, pts, spec)
    assert color is not None
    assert np.allclose(color, [0.9, 0.8, 0.7])


def test_not_found_cases() -> None:
    spec = CheckerboardSpec(checkers_x=4, checkers_y=6)
    pts = _grid(spec)
    assert estimate_white_point_coordinates(None, pts, spec).status == "not_found"
    assert estimate_white_point_coordinates(np.zeros((0, 0, 3)), pts, spec).status == "not_found"
    assert estimate_white_point_coordinates(np.ones((80, 60, 3)), np.zeros((0, 2)), spec).status == "not_found"
    # All-dark image: no block has a positive sum.
    assert estimate_white_point_coordinates(np.zeros((80, 60, 3)), pts, spec).status == "not_found"
    assert estimate_white_point(np.zeros((80, 60, 3)), pts, spec) is None


def test_midpoints_outside_the_image_are_skipped() -> None:
    spec = CheckerboardSpec(checkers_x=3, checkers_y=3)
    pts = _grid(spec, step=10.0, origin=-10.0)
    img = np.ones((20, 20), dtype=np.float64)
    wp = estimate_white_point_coordinates(img, pts, spec)
    assert wp.ok
    assert wp.block == (1, 1)


def test_fractional_midpoints_sample_the_containing_pixel() -> None:
    spec = CheckerboardSpec(checkers_x=2, checkers_y=2)
    img = np.ones((4, 4, 3), dtype=np.float64)
    # Midpoint (-0.5, 0.5) lies left of column 0.
    left = np.array([[-1.0, 0.0], [0.0, 0.0], [-1.0, 1.0], [0.0, 1.0]])
    assert estimate_white_point_coordinates(img, left, spec).status == "not_found"
    assert estimate_white_point(img, left, spec) is None

    img[1, 2, :] = [0.2, 0.4, 0.6]
    inside = np.array([[2.0, 1.0], [3.0, 1.0], [2.0, 1.4], [3.4, 1.4]])  # midpoint (2.7, 1.2)
    wp = estimate_white_point_coordinates(img, inside, spec)
    assert wp.ok
    assert np.allclose(wp.xy, [2.7, 1.2])
    assert np.allclose(estimate_white_point(img, inside, spec), [0.2, 0.4, 0.6])


def test_too_few_points_is_an_error() -> None:
    with pytest.raises(ValueError):
        estimate_white_point_coordinates(np.ones((10, 10)), np.zeros((3, 2)), CheckerboardSpec())
