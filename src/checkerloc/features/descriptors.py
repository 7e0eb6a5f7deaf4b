from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import numpy as np

from checkerloc.core.geometry import as_points


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DescriptorSet:
    """
    Binary descriptors parallel to a point set.

    Row i of `data` belongs to point i. Rows with `valid[i] == False` are the
    empty descriptor: they never match anything.
    """

    data: np.ndarray  # (N,B) uint8
    valid: np.ndarray  # (N,) bool

    def __post_init__(self) -> None:
        if self.data.ndim != 2 or self.valid.ndim != 1 or self.data.shape[0] != self.valid.shape[0]:
            raise ValueError("descriptor data (N,B) and valid (N,) must be parallel")

    def __len__(self) -> int:
        return int(self.data.shape[0])

    @property
    def n_bits(self) -> int:
        return int(self.data.shape[1]) * 8

    @classmethod
    def empty(cls, n: int, n_bytes: int) -> DescriptorSet:
        return cls(data=np.zeros((int(n), int(n_bytes)), dtype=np.uint8), valid=np.zeros((int(n),), dtype=bool))


class DescriptorExtractor(Protocol):
    @property
    def descriptor_bits(self) -> int: ...

    def describe(self, gray: np.ndarray, points: np.ndarray) -> DescriptorSet: ...


def hamming_distances(a: DescriptorSet, b: DescriptorSet) -> np.ndarray:
    """
    (Na,Nb) Hamming distances in bits; pairs involving an empty descriptor are +inf.
    """
    if a.data.shape[1] != b.data.shape[1]:
        raise ValueError("descriptor lengths differ")
    out = np.full((len(a), len(b)), np.inf, dtype=np.float64)
    if len(a) == 0 or len(b) == 0:
        return out
    x = np.bitwise_xor(a.data[:, None, :], b.data[None, :, :])
    bits = np.unpackbits(x, axis=-1).sum(axis=-1).astype(np.float64)
    ok = a.valid[:, None] & b.valid[None, :]
    out[ok] = bits[ok]
    return out


def compatible_pairs(a: DescriptorSet | None, b: DescriptorSet | None, max_distance: float, n_a: int, n_b: int) -> np.ndarray:
    """
    Boolean (n_a,n_b) mask of descriptor-compatible pairs.

    Without descriptors every pair is compatible (pure spatial matching).
    """
    if a is None or b is None:
        return np.ones((int(n_a), int(n_b)), dtype=bool)
    if len(a) != n_a or len(b) != n_b:
        raise ValueError("descriptor sets must be parallel to their point sets")
    return hamming_distances(a, b) <= float(max_distance)


@dataclass(frozen=True)
class OrbDescriptorExtractor:
    """
    Oriented-BRIEF (ORB) patch descriptors computed with OpenCV at given points.

    Patch radius is `patch_size // 2 + 1`; points whose patch leaves the image
    get the empty descriptor instead of being dropped, so the output stays
    index-parallel with the input points.
    """

    patch_size: int = 32
    n_bytes: int = 32

    @property
    def patch_radius(self) -> int:
        return int(self.patch_size) // 2 + 1

    @property
    def descriptor_bits(self) -> int:
        return int(self.n_bytes) * 8

    def inside(self, shape: tuple[int, ...], points: np.ndarray) -> np.ndarray:
        h, w = int(shape[0]), int(shape[1])
        pts = as_points(points)
        r = float(self.patch_radius)
        x = pts[:, 0]
        y = pts[:, 1]
        return (x - r >= 0.0) & (y - r >= 0.0) & (x + r < w) & (y + r < h)

    def describe(self, gray: np.ndarray, points: np.ndarray) -> DescriptorSet:
        try:
            import cv2  # type: ignore
        except Exception as e:  # pragma: no cover
            raise RuntimeError("ORB descriptors require opencv-python (cv2).") from e

        pts = as_points(points)
        out = DescriptorSet.empty(pts.shape[0], self.n_bytes)
        img = np.asarray(gray)
        if img.ndim == 3:
            img = img[:, :, 0]
        if pts.shape[0] == 0 or img.size == 0:
            return out
        if img.dtype != np.uint8:
            img = np.clip(img.astype(np.float64) * 255.0 + 0.5, 0.0, 255.0).astype(np.uint8)

        inside = self.inside(img.shape, pts)
        keypoints = [
            cv2.KeyPoint(float(x), float(y), float(self.patch_size), 0.0, 0.0, 0, int(i))
            for i, (x, y) in enumerate(pts.tolist())
            if inside[i]
        ]
        if not keypoints:
            return out

        orb = cv2.ORB_create(
            nfeatures=max(len(keypoints), 1),
            scaleFactor=1.2,
            nlevels=1,
            edgeThreshold=self.patch_radius,
            firstLevel=0,
            WTA_K=2,
            patchSize=int(self.patch_size),
        )
        kps, desc = orb.compute(img, keypoints)
        if desc is None or not kps:
            return out

        desc = np.asarray(desc, dtype=np.uint8).reshape(len(kps), -1)
        n = min(desc.shape[1], self.n_bytes)
        for kp, row in zip(kps, desc):
            i = int(kp.class_id)
            out.data[i, :n] = row[:n]
            out.valid[i] = True
        logger.debug("ORB: %d/%d descriptors (%d outside patch bounds)", int(np.sum(out.valid)), pts.shape[0], int(np.sum(~inside)))
        return out
