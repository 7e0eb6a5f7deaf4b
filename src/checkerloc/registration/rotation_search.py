from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass

import numpy as np

from checkerloc.core.geometry import Similarity2DTransform, as_points, min_pairwise_distance
from checkerloc.registration.icp2d import alignment_residual


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeedResult:
    index: int
    residual: float
    params: np.ndarray  # (tx, ty, theta[, scale]) about the model centroid


@dataclass(frozen=True)
class RotationSearchResult:
    transform: Similarity2DTransform
    residual: float
    best_seed: SeedResult
    seeds: tuple[SeedResult, ...]


class AlignmentCost:
    """
    Residual of the model under a candidate transform (tx, ty, theta[, scale]).

    Rotation and scale act about the centroid of `model` so the translation
    parameters stay small; `to_transform` converts parameters to a plain
    similarity transform on the original coordinates. Scales below `min_scale`
    cost +inf so the model cannot be shrunk onto a single observed point.
    """

    def __init__(self, model: np.ndarray, fixed: np.ndarray, pair_mask: np.ndarray | None = None, min_scale: float = 1e-3):
        self.model = as_points(model).copy()
        self.fixed = as_points(fixed).copy()
        self.pair_mask = None if pair_mask is None else np.asarray(pair_mask, dtype=bool)
        self.center = np.mean(self.model, axis=0) if self.model.shape[0] else np.zeros(2, dtype=np.float64)
        self.min_scale = float(min_scale)
        self.evaluations = 0

    def to_transform(self, params: np.ndarray) -> Similarity2DTransform:
        return Similarity2DTransform.from_params(params).about(self.center)

    def __call__(self, params: np.ndarray) -> float:
        self.evaluations += 1
        if len(params) > 3 and not params[3] >= self.min_scale:
            return math.inf
        moved = self.to_transform(params).apply(self.model)
        r = alignment_residual(moved, self.fixed, self.pair_mask)
        if not math.isfinite(r):
            return math.inf
        return r


def initial_simplex(start: np.ndarray, step_xy: float, step_theta: float = math.pi / 144.0, step_scale: float = 0.05) -> np.ndarray:
    x0 = np.asarray(start, dtype=np.float64).reshape(-1)
    steps = np.array([step_xy, step_xy, step_theta, step_scale], dtype=np.float64)[: x0.size]
    simplex = np.repeat(x0[None, :], x0.size + 1, axis=0)
    for k in range(x0.size):
        simplex[k + 1, k] += steps[k]
    return simplex


def nelder_mead(
    cost: AlignmentCost,
    start: np.ndarray,
    *,
    tolerance: float,
    max_evaluations: int,
    step_xy: float,
) -> tuple[np.ndarray, float]:
    """Derivative-free local refinement; returns (params, residual)."""
    from scipy.optimize import minimize  # type: ignore

    x0 = np.asarray(start, dtype=np.float64).reshape(-1)
    res = minimize(
        cost,
        x0,
        method="Nelder-Mead",
        options={
            "maxfev": int(max_evaluations),
            "xatol": float(tolerance),
            "fatol": float(tolerance),
            "initial_simplex": initial_simplex(x0, step_xy),
        },
    )
    x = np.asarray(res.x, dtype=np.float64).reshape(-1)
    fx = float(res.fun)
    if not math.isfinite(fx):
        fx = math.inf
    return x, fx


def rotation_seeds(n_samples: int = 72) -> np.ndarray:
    """Seed angles i * (pi/2) / n for i = 0..n-1 (one quarter turn)."""
    n = int(n_samples)
    return np.arange(n, dtype=np.float64) * (math.pi / 2.0) / float(n)


def select_best_seed(results: Iterable[SeedResult]) -> SeedResult:
    """
    Minimum residual; exact ties go to the lowest seed index regardless of the
    order results arrive in. NaN residuals rank as +inf.
    """

    def key(r: SeedResult) -> tuple[float, int]:
        res = r.residual if not math.isnan(r.residual) else math.inf
        return res, int(r.index)

    items = list(results)
    if not items:
        raise ValueError("no seed results to select from")
    return min(items, key=key)


def search_rotation(
    model: np.ndarray,
    fixed: np.ndarray,
    pair_mask: np.ndarray | None = None,
    *,
    n_samples: int = 72,
    max_evaluations: int = 1000,
    tolerance: float = 1e-9,
    refine_tolerance: float = 1e-12,
    step_xy: float | None = None,
    min_scale: float = 1e-3,
) -> RotationSearchResult:
    """
    Coarse-to-fine orientation search.

    Every seed angle is refined over (tx, ty, theta) on its own cost object; the
    best seed is refined once more with scale free. The returned transform maps
    `model` onto `fixed`; `model` itself is not modified.
    """
    model = as_points(model)
    fixed = as_points(fixed)
    if step_xy is None:
        step_xy = min_pairwise_distance(model) or 1.0

    def refine(index: int, theta: float) -> SeedResult:
        cost = AlignmentCost(model, fixed, pair_mask)
        x, fx = nelder_mead(cost, np.array([0.0, 0.0, theta]), tolerance=tolerance, max_evaluations=max_evaluations, step_xy=step_xy)
        logger.debug("seed %d theta0=%.4f -> residual %.6g (%d evals)", index, theta, fx, cost.evaluations)
        return SeedResult(index=index, residual=fx, params=x)

    seeds = tuple(refine(i, float(theta)) for i, theta in enumerate(rotation_seeds(n_samples).tolist()))
    best = select_best_seed(seeds)

    cost = AlignmentCost(model, fixed, pair_mask, min_scale=min_scale)
    start = np.array([best.params[0], best.params[1], best.params[2], 1.0], dtype=np.float64)
    x, fx = nelder_mead(cost, start, tolerance=refine_tolerance, max_evaluations=max_evaluations, step_xy=step_xy)
    if not fx <= best.residual:
        # Scale refinement did not help; keep the rigid optimum.
        x, fx = start, best.residual
    transform = cost.to_transform(x)
    logger.info(
        "rotation search: best seed %d (residual %.6g), refined residual %.6g, theta=%.6f scale=%.6f",
        best.index,
        best.residual,
        fx,
        transform.theta,
        transform.scale,
    )
    return RotationSearchResult(transform=transform, residual=fx, best_seed=best, seeds=seeds)
