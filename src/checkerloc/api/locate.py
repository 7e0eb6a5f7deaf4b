from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Literal

import numpy as np

from checkerloc.config import LocatorConfig
from checkerloc.core.filters import as_float_image, luminance, to_u8, white_balance
from checkerloc.core.geometry import Similarity2DTransform, min_pairwise_distance
from checkerloc.features.corners import CornerDetector, HarrisCornerDetector, remove_closest_corners
from checkerloc.features.descriptors import DescriptorExtractor, OrbDescriptorExtractor, compatible_pairs
from checkerloc.registration.icp2d import icp_2d
from checkerloc.registration.rotation_search import search_rotation
from checkerloc.target.checkerboard import (
    CheckerboardModel,
    CheckerboardSpec,
    estimate_checkerboard_size,
    generate_checkerboard_model,
    isolate_corners,
    scale_model_to_spacing,
)


logger = logging.getLogger(__name__)

LocateStatus = Literal["ok", "null_input", "insufficient_points", "registration_failed"]

_BLUE = (0, 0, 255)
_GREEN = (0, 255, 0)
_RED = (255, 0, 0)
_YELLOW = (255, 255, 0)


@dataclass
class CheckerboardLocation:
    """
    Outcome of `locate_checkerboard`.

    On failure `model` holds its last valid state (or is None when nothing ran)
    and `transform` covers only the stages that completed.
    """

    status: LocateStatus
    model: CheckerboardModel | None = None
    transform: Similarity2DTransform = field(default_factory=Similarity2DTransform)
    residual: float = float("inf")
    spacing_raw: float | None = None
    spacing: float | None = None
    n_raw_corners: int = 0
    corners: np.ndarray = field(default_factory=lambda: np.zeros((0, 2), dtype=np.float64))
    overlay: np.ndarray | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def points(self) -> np.ndarray:
        if self.model is None:
            return np.zeros((0, 2), dtype=np.float64)
        return np.array(self.model.points, dtype=np.float64)


class _Overlay:
    """White-balanced, darkened copy of the input with corner sets drawn on it."""

    def __init__(self, img: np.ndarray):
        import cv2  # type: ignore

        self._cv2 = cv2
        base = white_balance(img) * 0.125
        if base.shape[2] == 1:
            base = np.repeat(base, 3, axis=2)
        self.image = np.ascontiguousarray(to_u8(base[:, :, :3]))

    def draw(self, points: np.ndarray, color: tuple[int, int, int]) -> None:
        for x, y in np.asarray(points, dtype=np.float64).reshape(-1, 2).tolist():
            self._cv2.circle(self.image, (int(round(x)), int(round(y))), 3, color, thickness=1)


def locate_checkerboard(
    img: np.ndarray | None,
    spec: CheckerboardSpec | None = None,
    config: LocatorConfig | None = None,
    *,
    detector: CornerDetector | None = None,
    extractor: DescriptorExtractor | None = None,
) -> CheckerboardLocation:
    """
    Find a checkerboard of `spec` in `img` and return the registered model corners.

    Every stage checks the previous stage's outcome; on failure the pipeline
    stops and reports the failure kind instead of raising.
    """
    if img is None or np.asarray(img).size == 0:
        logger.warning("locate_checkerboard: no input image")
        return CheckerboardLocation(status="null_input", message="no input image")

    spec = spec or CheckerboardSpec()
    config = config or LocatorConfig()
    detector = detector or HarrisCornerDetector(
        sigma=config.sigma, radius=config.radius, k=config.harris_k, threshold_rel=config.threshold_rel
    )
    extractor = extractor or OrbDescriptorExtractor(patch_size=spec.checkers_size)

    rgb = as_float_image(img)
    lum = luminance(rgb, method=config.luminance)  # type: ignore[arg-type]
    overlay = _Overlay(rgb) if config.debug_overlay else None

    raw = detector.detect(lum)
    deduped = remove_closest_corners(raw, config.min_separation, config.max_corners)
    if overlay is not None:
        overlay.draw(deduped.points, _BLUE)
    logger.info("corners: %d raw, %d after deduplication", len(raw), len(deduped))

    spacing_raw = estimate_checkerboard_size(raw.points)
    if spacing_raw is None or not spacing_raw > 0.0:
        logger.warning("locate_checkerboard: no raw corner spacing (%s), aborting", spacing_raw)
        return CheckerboardLocation(
            status="insufficient_points",
            spacing_raw=spacing_raw,
            n_raw_corners=len(raw),
            overlay=overlay.image if overlay is not None else None,
            message="fewer than 2 distinct raw corners",
        )

    corners = isolate_corners(deduped.points, spacing_raw)
    if overlay is not None:
        overlay.draw(corners, _GREEN)
    spacing = estimate_checkerboard_size(corners)
    logger.info("spacing: %.3f px (raw), %s px (isolated, %d corners)", spacing_raw, spacing, corners.shape[0])
    if spacing is None or not spacing > 0.0:
        logger.warning("locate_checkerboard: no isolated corner spacing (%s), aborting", spacing)
        return CheckerboardLocation(
            status="insufficient_points",
            spacing_raw=spacing_raw,
            n_raw_corners=len(raw),
            corners=corners,
            overlay=overlay.image if overlay is not None else None,
            message="fewer than 2 distinct isolated corners",
        )

    model = generate_checkerboard_model(spec)
    model_desc = extractor.describe(model.pattern, model.points)
    corner_desc = extractor.describe(lum, corners)
    max_bits = config.max_descriptor_distance * extractor.descriptor_bits
    pair_mask = compatible_pairs(model_desc, corner_desc, max_bits, len(model), corners.shape[0])

    result = CheckerboardLocation(
        status="insufficient_points",
        model=model,
        spacing_raw=spacing_raw,
        spacing=spacing,
        n_raw_corners=len(raw),
        corners=corners,
    )

    scale_t = scale_model_to_spacing(model, spacing)
    if scale_t is None:
        result.message = "degenerate model"
        result.overlay = overlay.image if overlay is not None else None
        return result
    total = scale_t

    icp = icp_2d(
        model.points,
        corners,
        pair_mask,
        max_iterations=config.icp_max_iterations,
        tolerance=config.icp_tolerance,
        with_scale=False,
    )
    model.apply(icp.transform)
    total = icp.transform.compose(total)
    logger.info("icp: residual %.6g after %d iterations (%d matches)", icp.residual, icp.iterations, icp.n_matches)
    if overlay is not None:
        overlay.draw(model.points, _RED)

    search = search_rotation(
        model.points,
        corners,
        pair_mask,
        n_samples=config.rotation_samples,
        max_evaluations=config.max_evaluations,
        tolerance=config.rotation_tolerance,
        refine_tolerance=config.refine_tolerance,
        step_xy=spacing,
        min_scale=0.5,
    )
    model.apply(search.transform)
    total = search.transform.compose(total)
    if overlay is not None:
        overlay.draw(model.points, _YELLOW)
    result.transform = total
    result.residual = search.residual
    result.overlay = overlay.image if overlay is not None else None

    # A registered grid keeps its checker spacing; anything much tighter means
    # the model was shrunk onto a few observed corners.
    min_dist = min_pairwise_distance(model.points)
    if min_dist is None or not min_dist >= 0.25 * spacing:
        logger.warning("locate_checkerboard: registered model collapsed (min spacing %s px), rejecting", min_dist)
        result.status = "registration_failed"
        result.message = "registered model collapsed"
        return result

    result.status = "ok"
    return result
