"""
Descriptor-aware 2D iterative closest point with a similarity model.

Each moving point is paired with the closest fixed point among those whose
descriptor is compatible with its own; points with no compatible partner stay
unmatched instead of being forced onto a neighbor. The compatibility mask is
computed once, since descriptors do not move with the points.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np

from checkerloc.core.geometry import Similarity2DTransform, as_points, pairwise_distances


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Correspondences:
    moving_idx: np.ndarray  # (M,)
    fixed_idx: np.ndarray  # (M,)
    sq_dist: np.ndarray  # (M,)

    def __len__(self) -> int:
        return int(self.moving_idx.shape[0])


@dataclass(frozen=True)
class IcpResult:
    transform: Similarity2DTransform
    residual: float
    iterations: int
    n_matches: int
    converged: bool


def find_correspondences(moving: np.ndarray, fixed: np.ndarray, pair_mask: np.ndarray | None = None) -> Correspondences:
    """
    Closest compatible fixed point for every moving point.

    `pair_mask` is a boolean (N_moving, N_fixed) matrix; False pairs are never matched.
    """
    mov = as_points(moving)
    fix = as_points(fixed)
    if mov.shape[0] == 0 or fix.shape[0] == 0:
        empty_i = np.zeros((0,), dtype=np.int64)
        return Correspondences(moving_idx=empty_i, fixed_idx=empty_i.copy(), sq_dist=np.zeros((0,), dtype=np.float64))

    d2 = pairwise_distances(mov, fix) ** 2
    if pair_mask is not None:
        mask = np.asarray(pair_mask, dtype=bool)
        if mask.shape != d2.shape:
            raise ValueError(f"pair_mask shape {mask.shape} does not match {d2.shape}")
        d2 = np.where(mask, d2, np.inf)

    j = np.argmin(d2, axis=1)
    best = d2[np.arange(d2.shape[0]), j]
    ok = np.isfinite(best)
    return Correspondences(
        moving_idx=np.nonzero(ok)[0].astype(np.int64),
        fixed_idx=j[ok].astype(np.int64),
        sq_dist=best[ok].astype(np.float64),
    )


def alignment_residual(moving: np.ndarray, fixed: np.ndarray, pair_mask: np.ndarray | None = None) -> float:
    """
    Mean squared distance from each matched moving point to its closest compatible
    fixed point; +inf when nothing can be matched.
    """
    corr = find_correspondences(moving, fixed, pair_mask)
    if len(corr) == 0:
        return math.inf
    return float(np.mean(corr.sq_dist))


def estimate_similarity(src: np.ndarray, dst: np.ndarray, with_scale: bool = True) -> Similarity2DTransform | None:
    """
    Closed-form least-squares similarity mapping src onto dst (Umeyama, 2D).

    Returns None for fewer than 2 pairs or a degenerate (single-location) source.
    """
    src = as_points(src)
    dst = as_points(dst)
    if src.shape != dst.shape:
        raise ValueError("src and dst must have the same shape")
    if src.shape[0] < 2:
        return None

    mu_s = np.mean(src, axis=0)
    mu_d = np.mean(dst, axis=0)
    s0 = src - mu_s
    d0 = dst - mu_d
    var_s = float(np.sum(s0 * s0))
    if var_s <= 1e-18:
        return None

    a = float(np.sum(s0[:, 0] * d0[:, 0] + s0[:, 1] * d0[:, 1]))
    b = float(np.sum(s0[:, 0] * d0[:, 1] - s0[:, 1] * d0[:, 0]))
    theta = math.atan2(b, a)
    scale = math.hypot(a, b) / var_s if with_scale else 1.0

    rot = Similarity2DTransform(theta=theta, scale=scale)
    t = mu_d - rot.linear() @ mu_s
    return Similarity2DTransform(tx=float(t[0]), ty=float(t[1]), theta=theta, scale=scale)


def icp_2d(
    moving: np.ndarray,
    fixed: np.ndarray,
    pair_mask: np.ndarray | None = None,
    *,
    max_iterations: int = 1000,
    tolerance: float = 1e-9,
    with_scale: bool = True,
    min_scale: float = 1e-3,
) -> IcpResult:
    """
    Align `moving` onto `fixed`. The input arrays are not modified; the returned
    transform maps the original moving points to their aligned positions.

    Stops when the residual improves by less than `tolerance`, when fewer than
    2 correspondences remain, or after `max_iterations`. A step that would
    bring the accumulated scale below `min_scale` is rejected: when many
    moving points share one fixed partner the least-squares fit shrinks the
    model onto it.
    """
    current = as_points(moving).copy()
    fix = as_points(fixed)
    total = Similarity2DTransform()
    prev = alignment_residual(current, fix, pair_mask)
    converged = False
    it = 0

    for it in range(1, int(max_iterations) + 1):
        corr = find_correspondences(current, fix, pair_mask)
        step = estimate_similarity(current[corr.moving_idx], fix[corr.fixed_idx], with_scale=with_scale)
        if step is None:
            logger.debug("icp: stopping at iteration %d with %d correspondences", it, len(corr))
            it -= 1
            break
        if not step.scale * total.scale >= float(min_scale):
            logger.debug("icp: rejecting collapsing step (scale %.3g) at iteration %d", step.scale, it)
            it -= 1
            break

        candidate = step.apply(current)
        residual = alignment_residual(candidate, fix, pair_mask)
        if not residual < prev:
            # Worse or equal: keep the previous state.
            converged = True
            it -= 1
            break

        current = candidate
        total = step.compose(total)
        improvement = prev - residual
        prev = residual
        logger.debug("icp: iteration %d residual %.6g", it, residual)
        if improvement < float(tolerance):
            converged = True
            break

    n_matches = len(find_correspondences(current, fix, pair_mask))
    return IcpResult(transform=total, residual=float(prev), iterations=max(it, 0), n_matches=n_matches, converged=converged)
