from __future__ import annotations

import json
from pathlib import Path

import pytest

from finger.config import EngineOptions


def _write(root: Path, data) -> None:
    (root / "config").mkdir(parents=True, exist_ok=True)
    (root / "config" / "finger.json").write_text(json.dumps(data), encoding="utf-8")


def test_defaults_without_file(tmp_path: Path) -> None:
    opts = EngineOptions.load(tmp_path)
    assert opts == EngineOptions()
    assert opts.default_cooldown_ms == 5000
    assert opts.status_placeholder == "(no status)"


def test_values_from_file(tmp_path: Path) -> None:
    _write(tmp_path, {"rescan_interval_s": 0.5, "default_cooldown_ms": "700", "unknown_key": 1})
    opts = EngineOptions.load(tmp_path)
    assert opts.rescan_interval_s == 0.5
    assert opts.default_cooldown_ms == 700
    assert opts.min_cooldown_ms == 50


@pytest.mark.parametrize(
    "data",
    [
        {"rescan_interval_s": -1},
        {"min_cooldown_ms": 10, "max_cooldown_ms": 5},
        {"sleep_jitter": 1.5},
        {"default_cooldown_ms": "soon"},
        ["not", "a", "dict"],
    ],
)
def test_invalid_file_falls_back_to_defaults(tmp_path: Path, data) -> None:
    _write(tmp_path, data)
    assert EngineOptions.load(tmp_path) == EngineOptions()


def test_corrupt_json(tmp_path: Path) -> None:
    (tmp_path / "config").mkdir()
    (tmp_path / "config" / "finger.json").write_text("{nope", encoding="utf-8")
    assert EngineOptions.load(tmp_path) == EngineOptions()


def test_bots_path(tmp_path: Path) -> None:
    assert EngineOptions().bots_path(tmp_path) == tmp_path / "bots"
    absolute = tmp_path / "elsewhere"
    assert EngineOptions(bots_dir=str(absolute)).bots_path(Path("/ignored")) == absolute


def test_constructor_validates() -> None:
    with pytest.raises(ValueError):
        EngineOptions(callback_timeout_s=-1)
