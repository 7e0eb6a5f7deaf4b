from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Literal

import numpy as np

from checkerloc.core.filters import as_float_image
from checkerloc.core.geometry import as_points
from checkerloc.target.checkerboard import CheckerboardSpec


@dataclass(frozen=True)
class WhitePoint:
    status: Literal["ok", "not_found"]
    xy: np.ndarray | None = None  # (2,) midpoint in pixels
    block: tuple[int, int] | None = None  # (row, col) of the 2x2 corner block

    @property
    def ok(self) -> bool:
        return self.status == "ok"


_NOT_FOUND = WhitePoint(status="not_found")


def estimate_white_point_coordinates(img: np.ndarray | None, points: np.ndarray, spec: CheckerboardSpec | None = None) -> WhitePoint:
    """
    Brightest checker of a registered board.

    For every 2x2 block of grid corners, the image is sampled at the midpoint of
    the block's diagonal (floored to the containing pixel); the midpoint with the
    largest strictly positive channel sum wins.
    """
    spec = spec or CheckerboardSpec()
    if img is None:
        return _NOT_FOUND
    arr = as_float_image(img)
    pts = as_points(points)
    if arr.size == 0 or pts.shape[0] == 0:
        return _NOT_FOUND
    if pts.shape[0] < spec.n_corners:
        raise ValueError(f"expected {spec.n_corners} registered corners, got {pts.shape[0]}")

    h, w = arr.shape[:2]
    best_val = 0.0
    best: WhitePoint = _NOT_FOUND
    for i in range(spec.checkers_y - 1):
        for j in range(spec.checkers_x - 1):
            p0 = pts[i * spec.checkers_x + j]
            p1 = pts[(i + 1) * spec.checkers_x + j + 1]
            mid = (p0 + p1) / 2.0
            x, y = math.floor(mid[0]), math.floor(mid[1])
            if x < 0 or y < 0 or x >= w or y >= h:
                continue
            val = float(np.sum(arr[y, x, :]))
            if val > best_val:
                best_val = val
                best = WhitePoint(status="ok", xy=mid, block=(i, j))
    return best


def estimate_white_point(img: np.ndarray | None, points: np.ndarray, spec: CheckerboardSpec | None = None) -> np.ndarray | None:
    """Pixel color (C,) at the estimated white point, or None if not found."""
    wp = estimate_white_point_coordinates(img, points, spec)
    if not wp.ok or wp.xy is None:
        return None
    arr = as_float_image(img)
    return arr[math.floor(wp.xy[1]), math.floor(wp.xy[0]), :].copy()
