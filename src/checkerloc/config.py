from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from checkerloc.target.checkerboard import CheckerboardSpec


SCHEMA_VERSION = "checkerloc.config.v0"


class ConfigValidationError(ValueError):
    pass


@dataclass(frozen=True)
class LocatorConfig:
    # Corner detector.
    sigma: float = 2.5
    radius: int = 5
    harris_k: float = 0.04
    threshold_rel: float = 0.01
    luminance: str = "cie"
    # Deduplication.
    min_separation: float = 16.0
    max_corners: int = 100
    # Registration.
    icp_max_iterations: int = 1000
    icp_tolerance: float = 1e-9
    max_descriptor_distance: float = 0.4  # fraction of descriptor bits
    rotation_samples: int = 72
    max_evaluations: int = 1000
    rotation_tolerance: float = 1e-9
    refine_tolerance: float = 1e-12
    debug_overlay: bool = False


@dataclass(frozen=True)
class LocatorSettings:
    board: CheckerboardSpec
    locator: LocatorConfig


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise ConfigValidationError(msg)


def load_locator_config(path: Path) -> LocatorSettings:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return parse_locator_config(data)


def parse_locator_config(data: dict[str, Any]) -> LocatorSettings:
    _require(isinstance(data, dict), "config must be a JSON object")
    schema_version = data.get("schema_version", SCHEMA_VERSION)
    _require(schema_version == SCHEMA_VERSION, f"schema_version must be {SCHEMA_VERSION}")

    board = data.get("board", {})
    detector = data.get("detector", {})
    registration = data.get("registration", {})
    for name, section in (("board", board), ("detector", detector), ("registration", registration)):
        _require(isinstance(section, dict), f"{name} must be an object")

    defaults_board = CheckerboardSpec()
    cx = int(board.get("checkers_x", defaults_board.checkers_x))
    cy = int(board.get("checkers_y", defaults_board.checkers_y))
    size = int(board.get("checkers_size", defaults_board.checkers_size))
    _require(cx >= 2 and cy >= 2, "board.checkers_x and board.checkers_y must be >= 2")
    _require(size >= 4, "board.checkers_size must be >= 4 pixels")

    d = LocatorConfig()
    sigma = float(detector.get("sigma", d.sigma))
    radius = int(detector.get("radius", d.radius))
    harris_k = float(detector.get("harris_k", d.harris_k))
    threshold_rel = float(detector.get("threshold_rel", d.threshold_rel))
    lum = str(detector.get("luminance", d.luminance))
    min_sep = float(detector.get("min_separation", d.min_separation))
    max_corners = int(detector.get("max_corners", d.max_corners))
    _require(sigma >= 0.0, "detector.sigma must be >= 0")
    _require(radius >= 1, "detector.radius must be >= 1")
    _require(0.0 < harris_k < 0.25, "detector.harris_k must be in (0, 0.25)")
    _require(0.0 <= threshold_rel < 1.0, "detector.threshold_rel must be in [0, 1)")
    _require(lum in ("cie", "ward", "mean"), "detector.luminance must be cie|ward|mean")
    _require(min_sep >= 0.0, "detector.min_separation must be >= 0")
    _require(max_corners >= 2, "detector.max_corners must be >= 2")

    icp_iters = int(registration.get("icp_max_iterations", d.icp_max_iterations))
    icp_tol = float(registration.get("icp_tolerance", d.icp_tolerance))
    max_desc = float(registration.get("max_descriptor_distance", d.max_descriptor_distance))
    samples = int(registration.get("rotation_samples", d.rotation_samples))
    max_evals = int(registration.get("max_evaluations", d.max_evaluations))
    rot_tol = float(registration.get("rotation_tolerance", d.rotation_tolerance))
    ref_tol = float(registration.get("refine_tolerance", d.refine_tolerance))
    overlay = bool(registration.get("debug_overlay", d.debug_overlay))
    _require(icp_iters >= 0, "registration.icp_max_iterations must be >= 0")
    _require(icp_tol >= 0.0, "registration.icp_tolerance must be >= 0")
    _require(0.0 <= max_desc <= 1.0, "registration.max_descriptor_distance must be a fraction in [0, 1]")
    _require(samples >= 1, "registration.rotation_samples must be >= 1")
    _require(max_evals >= 1, "registration.max_evaluations must be >= 1")
    _require(rot_tol > 0.0 and ref_tol > 0.0, "optimizer tolerances must be > 0")

    return LocatorSettings(
        board=CheckerboardSpec(checkers_x=cx, checkers_y=cy, checkers_size=size),
        locator=LocatorConfig(
            sigma=sigma,
            radius=radius,
            harris_k=harris_k,
            threshold_rel=threshold_rel,
            luminance=lum,
            min_separation=min_sep,
            max_corners=max_corners,
            icp_max_iterations=icp_iters,
            icp_tolerance=icp_tol,
            max_descriptor_distance=max_desc,
            rotation_samples=samples,
            max_evaluations=max_evals,
            rotation_tolerance=rot_tol,
            refine_tolerance=ref_tol,
            debug_overlay=overlay,
        ),
    )
