from __future__ import annotations

import math
from dataclasses import replace

import numpy as np
import pytest

import checkerloc.api.locate as locate_module
from checkerloc.api.locate import locate_checkerboard
from checkerloc.config import LocatorConfig
from checkerloc.core.geometry import Similarity2DTransform, min_pairwise_distance
from checkerloc.features.corners import Corners
from checkerloc.features.descriptors import DescriptorSet
from checkerloc.registration.rotation_search import RotationSearchResult, SeedResult
from checkerloc.target.checkerboard import CheckerboardSpec, generate_checkerboard_model


SPEC = CheckerboardSpec(checkers_x=4, checkers_y=6, checkers_size=32)
TRUTH = Similarity2DTransform(tx=150.0, ty=60.0, theta=math.radians(17.0), scale=1.3)


class StubDetector:
    def __init__(self, points: np.ndarray, strength: np.ndarray):
        self.corners = Corners(points=np.asarray(points, dtype=np.float64), strength=np.asarray(strength, dtype=np.float64))
        self.calls = 0

    def detect(self, gray: np.ndarray) -> Corners:
        self.calls += 1
        assert gray.ndim == 2
        return self.corners


class StubExtractor:
    """Descriptor = id of the nearest known point, looked up per image shape."""

    descriptor_bits = 32

    def __init__(self, tables: dict[tuple[int, int], np.ndarray]):
        self.tables = tables

    def describe(self, gray: np.ndarray, points: np.ndarray) -> DescriptorSet:
        table = self.tables[tuple(gray.shape[:2])]
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        d = np.linalg.norm(pts[:, None, :] - table[None, :, :], axis=-1)
        ids = np.argmin(d, axis=1).astype(">u4")
        data = np.frombuffer(ids.tobytes(), dtype=np.uint8).reshape(-1, 4).copy()
        return DescriptorSet(data=data, valid=np.ones(pts.shape[0], dtype=bool))


def _observed() -> np.ndarray:
    return TRUTH.apply(generate_checkerboard_model(SPEC).points)


def test_null_input_is_a_no_op() -> None:
    assert locate_checkerboard(None).status == "null_input"
    res = locate_checkerboard(np.zeros((0, 0)))
    assert res.status == "null_input"
    assert res.model is None
    assert res.points.shape == (0, 2)


def test_fewer_than_two_corners_aborts() -> None:
    det = StubDetector(np.array([[10.0, 10.0]]), np.array([1.0]))
    res = locate_checkerboard(np.zeros((64, 64)), SPEC, detector=det)
    assert det.calls == 1
    assert res.status == "insufficient_points"
    assert res.model is None
    assert res.spacing_raw is None
    assert not res.ok


def test_isolation_leaving_fewer_than_two_corners_aborts() -> None:
    strong = np.array([[0.0, 0.0], [20.0, 0.0]])
    weak = np.stack([500.0 + 50.0 * np.arange(10), np.full(10, 500.0)], axis=-1)
    det = StubDetector(np.concatenate([strong, weak]), np.concatenate([np.ones(2), np.full(10, 0.1)]))
    cfg = replace(LocatorConfig(), max_corners=2)
    res = locate_checkerboard(np.zeros((64, 64)), SPEC, cfg, detector=det)
    assert res.status == "insufficient_points"
    assert res.spacing_raw == pytest.approx(50.0)
    assert res.spacing is None
    assert res.corners.shape == (0, 2)
    assert res.model is None


def test_pipeline_registers_model_on_stub_corners() -> None:
    observed = _observed()
    # Each true corner plus a weaker near-duplicate one pixel away.
    raw = np.concatenate([observed, observed + np.array([1.0, 0.0])])
    strength = np.concatenate([np.ones(observed.shape[0]), np.full(observed.shape[0], 0.5)])
    img = np.zeros((400, 400))
    pattern_shape = generate_checkerboard_model(SPEC).pattern.shape
    ext = StubExtractor({(400, 400): observed, pattern_shape: generate_checkerboard_model(SPEC).points})
    cfg = replace(LocatorConfig(), max_descriptor_distance=0.0, rotation_samples=4)

    res = locate_checkerboard(img, SPEC, cfg, detector=StubDetector(raw, strength), extractor=ext)

    assert res.ok
    assert res.n_raw_corners == 48
    assert res.corners.shape == (24, 2)
    assert res.spacing_raw == pytest.approx(1.0)
    assert res.spacing == pytest.approx(32.0 * 1.3)
    assert res.model is not None and len(res.model) == 24
    assert np.allclose(res.points, observed, atol=1e-3)
    assert res.transform.theta == pytest.approx(TRUTH.theta, abs=1e-4)
    assert res.transform.scale == pytest.approx(TRUTH.scale, rel=1e-4)
    assert np.allclose(res.transform.apply(generate_checkerboard_model(SPEC).points), observed, atol=1e-3)
    assert res.residual == pytest.approx(0.0, abs=1e-6)
    assert res.overlay is None



class ConstantExtractor:
    """Same descriptor everywhere: every model/corner pair is compatible."""

    descriptor_bits = 32

    def describe(self, gray: np.ndarray, points: np.ndarray) -> DescriptorSet:
        n = np.asarray(points, dtype=np.float64).reshape(-1, 2).shape[0]
        return DescriptorSet(data=np.zeros((n, 4), dtype=np.uint8), valid=np.ones(n, dtype=bool))


def test_duplicate_corners_with_zero_spacing_abort() -> None:
    observed = _observed()
    raw = np.concatenate([observed, observed])
    det = StubDetector(raw, np.ones(raw.shape[0]))
    cfg = replace(LocatorConfig(), min_separation=0.0)

    res = locate_checkerboard(np.zeros((400, 400)), SPEC, cfg, detector=det, extractor=ConstantExtractor())

    assert res.status == "insufficient_points"
    assert res.spacing_raw == 0.0
    assert res.model is None
    assert not res.ok


def test_far_offset_board_is_not_collapsed() -> None:
    model = generate_checkerboard_model(SPEC)
    observed = Similarity2DTransform(tx=600.0, ty=400.0).apply(model.points)
    det = StubDetector(observed, np.ones(observed.shape[0]))
    cfg = replace(LocatorConfig(), rotation_samples=4)

    res = locate_checkerboard(np.zeros((800, 1000)), SPEC, cfg, detector=det, extractor=ConstantExtractor())

    assert res.status in ("ok", "registration_failed")
    assert res.spacing == pytest.approx(32.0)
    assert res.transform.scale >= 0.5
    if res.ok:
        assert min_pairwise_distance(res.points) >= 0.49 * res.spacing


def test_collapsed_registration_is_reported(monkeypatch: pytest.MonkeyPatch) -> None:
    def shrink(model: np.ndarray, fixed: np.ndarray, pair_mask: np.ndarray | None = None, **kwargs: object) -> RotationSearchResult:
        center = np.mean(np.asarray(fixed, dtype=np.float64), axis=0)
        t = Similarity2DTransform(tx=float(center[0]), ty=float(center[1]), scale=0.0)
        seed = SeedResult(index=0, residual=0.0, params=np.zeros(3))
        return RotationSearchResult(transform=t, residual=0.0, best_seed=seed, seeds=(seed,))

    monkeypatch.setattr(locate_module, "search_rotation", shrink)
    observed = _observed()
    det = StubDetector(observed, np.ones(observed.shape[0]))

    res = locate_checkerboard(np.zeros((400, 400)), SPEC, detector=det, extractor=ConstantExtractor())

    assert res.status == "registration_failed"
    assert not res.ok
    assert res.message == "registered model collapsed"
    assert res.model is not None and len(res.model) == 24


@pytest.mark.integration
def test_pipeline_on_rendered_board() -> None:
    cv2 = pytest.importorskip("cv2")

    model = generate_checkerboard_model(SPEC)
    truth = Similarity2DTransform(tx=120.0, ty=40.0, theta=math.radians(10.0), scale=1.2)
    pattern_u8 = (model.pattern * 255.0).astype(np.uint8)
    img = cv2.warpAffine(pattern_u8, truth.matrix()[:2, :], (420, 360), flags=cv2.INTER_LINEAR, borderValue=255)
    img = np.repeat((img.astype(np.float64) / 255.0)[:, :, None], 3, axis=2)

    cfg = replace(LocatorConfig(), rotation_samples=8, debug_overlay=True)
    res = locate_checkerboard(img, SPEC, cfg)

    assert res.ok, res.message
    assert res.n_raw_corners > 0
    assert res.overlay is not None
    assert res.overlay.shape == (360, 420, 3)
    assert res.overlay.dtype == np.uint8
    assert res.points.shape == (24, 2)
    err = np.linalg.norm(res.points - truth.apply(model.points), axis=1)
    assert float(np.max(err)) < 5.0
    assert res.transform.scale == pytest.approx(truth.scale, rel=0.05)
