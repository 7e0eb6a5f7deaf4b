from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from checkerloc.core.geometry import Similarity2DTransform, as_points, min_pairwise_distance, nearest_neighbor_distances


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckerboardSpec:
    checkers_x: int = 4
    checkers_y: int = 6
    checkers_size: int = 32

    @property
    def n_corners(self) -> int:
        return self.checkers_x * self.checkers_y

    @property
    def size_px(self) -> tuple[int, int]:
        """Pattern image size as (width, height)."""
        return ((self.checkers_x + 1) * self.checkers_size, (self.checkers_y + 1) * self.checkers_size)


class CheckerboardModel:
    """
    Ideal corner set of a checkerboard, row-major (y outer, x inner).

    The point count is fixed at creation; the only allowed mutation is
    `apply`, which moves every point with the same similarity transform.
    """

    def __init__(self, spec: CheckerboardSpec, points: np.ndarray, pattern: np.ndarray):
        pts = as_points(points)
        if pts.shape[0] != spec.n_corners:
            raise ValueError(f"expected {spec.n_corners} model points, got {pts.shape[0]}")
        self.spec = spec
        self.pattern = pattern
        self._points = pts.copy()

    @property
    def points(self) -> np.ndarray:
        """Read-only view of the current corner positions."""
        view = self._points.view()
        view.flags.writeable = False
        return view

    def __len__(self) -> int:
        return int(self._points.shape[0])

    def apply(self, transform: Similarity2DTransform) -> None:
        self._points = transform.apply(self._points)

    def grid_index(self, row: int, col: int) -> int:
        """Index of the (0-based) grid intersection (row, col)."""
        return int(row) * self.spec.checkers_x + int(col)


def is_dark_cell(i: int, j: int, checkers_x: int, checkers_y: int) -> bool:
    """
    Parity rule for the 1-indexed cell anchored at grid intersection (row i, column j).
    The last row/column of intersections never anchors a fully painted run.
    """
    if j < checkers_x and j % 2 == 0 and i % 2 == 0:
        return True
    if i < checkers_y and j % 2 == 1 and i % 2 == 1:
        return True
    return False


def generate_checkerboard_model(spec: CheckerboardSpec) -> CheckerboardModel:
    """
    Render the synthetic pattern image (float64 (H,W), 1 = white, 0 = dark) and its
    grid intersections.
    """
    if spec.checkers_x < 1 or spec.checkers_y < 1 or spec.checkers_size < 1:
        raise ValueError("checkers_x, checkers_y and checkers_size must be >= 1")

    size = int(spec.checkers_size)
    w_px, h_px = spec.size_px
    pattern = np.ones((h_px, w_px), dtype=np.float64)
    points: list[tuple[float, float]] = []

    for i in range(1, spec.checkers_y + 1):
        y = i * size
        for j in range(1, spec.checkers_x + 1):
            x = j * size
            if is_dark_cell(i, j, spec.checkers_x, spec.checkers_y):
                pattern[y : y + size, x : x + size] = 0.0
            points.append((float(x), float(y)))

    return CheckerboardModel(spec, np.asarray(points, dtype=np.float64), pattern)


def estimate_checkerboard_size(points: np.ndarray) -> float | None:
    """
    Grid spacing estimate: median of the per-point nearest-neighbor distances.

    Returns None ("unknown") for fewer than 2 points. For an even count the upper
    median (sorted[n // 2]) is used.
    """
    nn = nearest_neighbor_distances(points)
    if nn.size == 0:
        return None
    nn = np.sort(nn)
    return float(nn[nn.size // 2])


def isolate_corners(points: np.ndarray, spacing: float) -> np.ndarray:
    """
    Keep only candidates with no other candidate strictly closer than `spacing`.
    """
    pts = as_points(points)
    if pts.shape[0] < 2:
        return pts.copy()
    nn = nearest_neighbor_distances(pts)
    keep = nn >= float(spacing)
    return pts[keep].copy()


def scale_model_to_spacing(model: CheckerboardModel, spacing: float) -> Similarity2DTransform | None:
    """
    Rescale `model` in place so its minimum corner distance matches `spacing`.

    Returns the pure-scale transform that was applied, or None (model left
    untouched) if the model has fewer than 2 distinct points or `spacing` is
    not positive.
    """
    if not float(spacing) > 0.0:
        return None
    min_dist = min_pairwise_distance(model.points)
    if min_dist is None or min_dist <= 0.0:
        return None
    t = Similarity2DTransform(scale=float(spacing) / min_dist)
    model.apply(t)
    logger.debug("model scaled by %.6f (spacing %.3f / model %.3f)", t.scale, spacing, min_dist)
    return t


def estimate_checker_length(points: np.ndarray) -> tuple[float, np.ndarray, np.ndarray] | None:
    """
    Length in pixels of one checker: distance from the first corner to its closest
    other corner. Returns (length, p0, p1), or None for fewer than 2 points.
    """
    pts = as_points(points)
    if pts.shape[0] < 2:
        return None
    d = np.linalg.norm(pts[1:] - pts[0], axis=1)
    k = int(np.argmin(d)) + 1
    return float(d[k - 1]), pts[0].copy(), pts[k].copy()
