from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np


def as_points(points: np.ndarray) -> np.ndarray:
    """Coerce any (N,2)-compatible input to a float64 (N,2) array."""
    pts = np.asarray(points, dtype=np.float64)
    if pts.size == 0:
        return np.zeros((0, 2), dtype=np.float64)
    if pts.ndim != 2 or pts.shape[1] != 2:
        pts = pts.reshape(-1, 2)
    return pts


@dataclass(frozen=True)
class Similarity2DTransform:
    """
    2D similarity transform: apply(p) = s * R(theta) @ p + (tx, ty).

    The default instance is the identity (0, 0, 0, 1).
    """

    tx: float = 0.0
    ty: float = 0.0
    theta: float = 0.0
    scale: float = 1.0

    @classmethod
    def from_params(cls, params: np.ndarray) -> Similarity2DTransform:
        """Build from optimizer parameters (tx, ty, theta[, scale])."""
        p = np.asarray(params, dtype=np.float64).reshape(-1)
        if p.size not in (3, 4):
            raise ValueError("expected 3 or 4 parameters (tx, ty, theta[, scale])")
        scale = float(p[3]) if p.size == 4 else 1.0
        return cls(tx=float(p[0]), ty=float(p[1]), theta=float(p[2]), scale=scale)

    @property
    def translation(self) -> np.ndarray:
        return np.array([self.tx, self.ty], dtype=np.float64)

    def linear(self) -> np.ndarray:
        c = math.cos(self.theta)
        s = math.sin(self.theta)
        return self.scale * np.array([[c, -s], [s, c]], dtype=np.float64)

    def matrix(self) -> np.ndarray:
        """Homogeneous 3x3 matrix."""
        m = np.eye(3, dtype=np.float64)
        m[:2, :2] = self.linear()
        m[:2, 2] = self.translation
        return m

    def apply(self, points: np.ndarray) -> np.ndarray:
        pts = as_points(points)
        if self.is_identity():
            return pts.copy()
        return pts @ self.linear().T + self.translation

    def is_identity(self) -> bool:
        return self.tx == 0.0 and self.ty == 0.0 and self.theta == 0.0 and self.scale == 1.0

    def compose(self, first: Similarity2DTransform) -> Similarity2DTransform:
        """
        Returns the transform equivalent to applying `first`, then `self`.
        """
        theta = math.atan2(math.sin(self.theta + first.theta), math.cos(self.theta + first.theta))
        t = self.linear() @ first.translation + self.translation
        return Similarity2DTransform(tx=float(t[0]), ty=float(t[1]), theta=theta, scale=self.scale * first.scale)

    def inverse(self) -> Similarity2DTransform:
        if self.scale == 0.0:
            raise ValueError("scale must be non-zero to invert")
        inv_lin = np.linalg.inv(self.linear())
        t = -inv_lin @ self.translation
        return Similarity2DTransform(tx=float(t[0]), ty=float(t[1]), theta=-self.theta, scale=1.0 / self.scale)

    def about(self, center: np.ndarray) -> Similarity2DTransform:
        """
        Re-express a transform whose rotation/scale act about `center` as a plain one.

        p -> s R (p - c) + c + t  ==  s R p + (c + t - s R c)
        """
        c = np.asarray(center, dtype=np.float64).reshape(2)
        t = c + self.translation - self.linear() @ c
        return Similarity2DTransform(tx=float(t[0]), ty=float(t[1]), theta=self.theta, scale=self.scale)

    def to_dict(self) -> dict[str, float]:
        return {"tx": self.tx, "ty": self.ty, "theta": self.theta, "scale": self.scale}


def pairwise_distances(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    from scipy.spatial.distance import cdist  # type: ignore

    return cdist(as_points(a), as_points(b))


def nearest_neighbor_distances(points: np.ndarray) -> np.ndarray:
    """
    Distance from every point to its closest other point (itself excluded).
    Returns an empty array for fewer than 2 points.
    """
    pts = as_points(points)
    if pts.shape[0] < 2:
        return np.zeros((0,), dtype=np.float64)
    d = pairwise_distances(pts, pts)
    np.fill_diagonal(d, np.inf)
    return np.min(d, axis=1)


def min_pairwise_distance(points: np.ndarray) -> float | None:
    """Smallest distance between two distinct entries, or None for fewer than 2 points."""
    nn = nearest_neighbor_distances(points)
    if nn.size == 0:
        return None
    return float(np.min(nn))
