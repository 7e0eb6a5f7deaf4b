from __future__ import annotations

import json
from pathlib import Path

import pytest

from checkerloc.config import ConfigValidationError, LocatorConfig, load_locator_config, parse_locator_config
from checkerloc.target.checkerboard import CheckerboardSpec


def test_defaults_from_empty_document() -> None:
    s = parse_locator_config({})
    assert s.board == CheckerboardSpec(checkers_x=4, checkers_y=6, checkers_size=32)
    assert s.locator == LocatorConfig()
    assert s.locator.rotation_samples == 72
    assert s.locator.min_separation == 16.0
    assert s.locator.max_corners == 100


def test_overrides() -> None:
    s = parse_locator_config(
        {
            "schema_version": "checkerloc.config.v0",
            "board": {"checkers_x": 5, "checkers_y": 7, "checkers_size": 24},
            "detector": {"sigma": 1.5, "radius": 3, "luminance": "ward"},
            "registration": {"rotation_samples": 12, "max_descriptor_distance": 0.25},
        }
    )
    assert s.board.n_corners == 35
    assert s.locator.sigma == 1.5
    assert s.locator.radius == 3
    assert s.locator.luminance == "ward"
    assert s.locator.rotation_samples == 12
    assert s.locator.max_descriptor_distance == 0.25


@pytest.mark.parametrize(
    "doc",
    [
        {"schema_version": "other"},
        {"board": {"checkers_x": 1}},
        {"detector": {"luminance": "hsv"}},
        {"detector": {"max_corners": 1}},
        {"registration": {"max_descriptor_distance": 2.0}},
        {"registration": {"rotation_tolerance": 0.0}},
        {"registration": []},
    ],
)
def test_rejects_invalid_documents(doc: dict) -> None:
    with pytest.raises(ConfigValidationError):
        parse_locator_config(doc)


def test_load_from_file(tmp_path: Path) -> None:
    p = tmp_path / "cfg.json"
    p.write_text(json.dumps({"board": {"checkers_x": 3, "checkers_y": 3}}), encoding="utf-8")
    s = load_locator_config(p)
    assert s.board.checkers_x == 3
    assert s.board.checkers_size == 32
