from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import numpy as np

from checkerloc.core.geometry import as_points


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Corners:
    """
    Raw corner detections.

    `strength` is parallel to `points` (higher is a stronger detection).
    """

    points: np.ndarray  # (N,2) x,y
    strength: np.ndarray  # (N,)

    def __len__(self) -> int:
        return int(self.points.shape[0])

    @classmethod
    def empty(cls) -> Corners:
        return cls(points=np.zeros((0, 2), dtype=np.float64), strength=np.zeros((0,), dtype=np.float64))


class CornerDetector(Protocol):
    def detect(self, gray: np.ndarray) -> Corners: ...


@dataclass(frozen=True)
class HarrisCornerDetector:
    """
    Harris corner detector on a single-channel float image.

    The image is smoothed with a Gaussian of `sigma`; the Harris response is
    computed over a (2*radius+1) window and only local maxima of that window
    above `threshold_rel * max(response)` are kept.
    """

    sigma: float = 2.5
    radius: int = 5
    k: float = 0.04
    threshold_rel: float = 0.01

    def detect(self, gray: np.ndarray) -> Corners:
        try:
            import cv2  # type: ignore
        except Exception as e:  # pragma: no cover
            raise RuntimeError("Harris corner detection requires opencv-python (cv2).") from e

        img = np.asarray(gray, dtype=np.float32)
        if img.ndim == 3:
            img = img[:, :, 0]
        if img.size == 0:
            return Corners.empty()

        if self.sigma > 0:
            img = cv2.GaussianBlur(img, ksize=(0, 0), sigmaX=float(self.sigma), borderType=cv2.BORDER_REFLECT)

        win = 2 * int(self.radius) + 1
        response = cv2.cornerHarris(img, blockSize=win, ksize=3, k=float(self.k))
        peak = float(np.max(response))
        if not np.isfinite(peak) or peak <= 0.0:
            return Corners.empty()

        kernel = np.ones((win, win), dtype=np.uint8)
        local_max = cv2.dilate(response, kernel)
        mask = (response >= local_max) & (response > float(self.threshold_rel) * peak)
        ys, xs = np.nonzero(mask)
        pts = np.stack([xs, ys], axis=-1).astype(np.float64)
        strength = response[ys, xs].astype(np.float64)
        logger.debug("Harris: %d raw corners (peak response %.4g)", pts.shape[0], peak)
        return Corners(points=pts, strength=strength)


def remove_closest_corners(corners: Corners, min_separation: float, max_count: int) -> Corners:
    """
    Greedy thinning: strongest detections first, a candidate survives only if it
    lies at least `min_separation` away from every survivor so far; stops at
    `max_count` survivors.

    The output is a subset of the input in strength order.
    """
    pts = as_points(corners.points)
    strength = np.asarray(corners.strength, dtype=np.float64).reshape(-1)
    if strength.shape[0] != pts.shape[0]:
        raise ValueError("points and strength must have the same length")
    if pts.shape[0] == 0 or max_count <= 0:
        return Corners.empty()

    order = np.argsort(-strength, kind="stable")
    min_d2 = float(min_separation) ** 2
    kept: list[int] = []
    for idx in order.tolist():
        if kept:
            d2 = np.sum((pts[kept] - pts[idx]) ** 2, axis=1)
            if np.any(d2 < min_d2):
                continue
        kept.append(idx)
        if len(kept) >= int(max_count):
            break

    sel = np.asarray(kept, dtype=np.int64)
    return Corners(points=pts[sel].copy(), strength=strength[sel].copy())
