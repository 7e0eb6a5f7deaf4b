from __future__ import annotations

from typing import Literal

import numpy as np


LuminanceMethod = Literal["cie", "ward", "mean"]

_LUMINANCE_WEIGHTS: dict[str, tuple[float, float, float]] = {
    "cie": (0.2126, 0.7152, 0.0722),
    "ward": (0.265, 0.670, 0.065),
}


def as_float_image(img: np.ndarray) -> np.ndarray:
    """
    Returns a float64 (H,W,C) view of `img`; uint8 input is mapped to [0,1].
    """
    arr = np.asarray(img)
    if arr.dtype == np.uint8:
        out = arr.astype(np.float64) / 255.0
    else:
        out = arr.astype(np.float64, copy=False)
    if out.ndim == 2:
        out = out[:, :, None]
    if out.ndim != 3:
        raise ValueError("expected an (H,W) or (H,W,C) image")
    return out


def luminance(img: np.ndarray, method: LuminanceMethod = "cie") -> np.ndarray:
    """
    Single-channel luminance (H,W) float64 image.

    Images with a channel count other than 3 fall back to the channel mean.
    """
    arr = as_float_image(img)
    if method not in ("cie", "ward", "mean"):
        raise ValueError(f"unknown luminance method: {method}")
    if method == "mean" or arr.shape[2] != 3:
        return np.mean(arr, axis=2)
    w = np.asarray(_LUMINANCE_WEIGHTS[method], dtype=np.float64)
    return arr @ w


def white_balance_scaling_factors(channel_means: np.ndarray) -> np.ndarray:
    """Gray-world factors: mean of the channel means over each channel mean."""
    mu = np.asarray(channel_means, dtype=np.float64).reshape(-1)
    ref = float(np.mean(mu)) if mu.size else 0.0
    out = np.ones_like(mu)
    good = mu > 0.0
    out[good] = ref / mu[good]
    return out


def white_balance(img: np.ndarray, scaling: np.ndarray | None = None) -> np.ndarray:
    """
    Returns a white-balanced float64 copy of `img`.
    If `scaling` is None, factors are estimated from the image mean.
    """
    arr = as_float_image(img).copy()
    if scaling is None:
        scaling = white_balance_scaling_factors(np.mean(arr, axis=(0, 1)))
    scaling = np.asarray(scaling, dtype=np.float64).reshape(-1)
    if scaling.size != arr.shape[2]:
        raise ValueError("one scaling factor per channel is required")
    arr *= scaling[None, None, :]
    return arr


def to_u8(img: np.ndarray) -> np.ndarray:
    """Float image in [0,1] (or uint8 passthrough) -> uint8."""
    arr = np.asarray(img)
    if arr.dtype == np.uint8:
        return arr
    return np.clip(arr * 255.0 + 0.5, 0.0, 255.0).astype(np.uint8)
