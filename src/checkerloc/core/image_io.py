from __future__ import annotations

from pathlib import Path

import numpy as np
from PIL import Image


def load_image_f64(path: str | Path) -> np.ndarray:
    """
    Load an image as float64 (H,W,C) in [0,1], RGB channel order.

    Primary backend is OpenCV (if installed). Pillow is used as a fallback
    for formats the OpenCV build cannot decode.
    """
    p = Path(path)
    try:
        import cv2  # type: ignore

        img = cv2.imread(str(p), cv2.IMREAD_UNCHANGED)
        if img is not None:
            if img.ndim == 3 and img.shape[2] == 4:
                img = cv2.cvtColor(img, cv2.COLOR_BGRA2RGB)
            elif img.ndim == 3:
                img = cv2.cvtColor(img, cv2.COLOR_BGR2RGB)
            return _normalize(img)
    except Exception:
        # Fall back to Pillow below.
        pass

    with Image.open(p) as im:
        if im.mode not in ("L", "RGB"):
            im = im.convert("RGB")
        arr = np.asarray(im)
    return _normalize(arr)


def _normalize(arr: np.ndarray) -> np.ndarray:
    if arr.dtype == np.uint8:
        out = arr.astype(np.float64) / 255.0
    elif arr.dtype == np.uint16:
        out = arr.astype(np.float64) / 65535.0
    else:
        out = arr.astype(np.float64)
    if out.ndim == 2:
        out = out[:, :, None]
    return out


def save_image_u8(path: str | Path, img: np.ndarray) -> Path:
    """Write a float [0,1] or uint8 image as 8-bit (grayscale or RGB)."""
    p = Path(path)
    arr = np.asarray(img)
    if arr.dtype != np.uint8:
        arr = np.clip(arr * 255.0 + 0.5, 0.0, 255.0).astype(np.uint8)
    if arr.ndim == 3 and arr.shape[2] == 1:
        arr = arr[:, :, 0]
    p.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(arr).save(p)
    return p
