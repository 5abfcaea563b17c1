from __future__ import annotations

import pytest

from finger.config import EngineOptions
from finger.orchestrator.backends import StubBackend
from finger.orchestrator.registry import Registry, build_default_registry, resolve_backend_name


def test_default_registry_creates_stub() -> None:
    reg = build_default_registry()
    assert reg.names() == ["stub", "win32"]
    backend = reg.create("stub", EngineOptions())
    assert isinstance(backend, StubBackend)
    assert backend.name == "stub"


def test_unknown_backend() -> None:
    with pytest.raises(KeyError):
        build_default_registry().create("x11", EngineOptions())


def test_duplicate_and_empty_names() -> None:
    reg = Registry()
    reg.register("stub", lambda opts: StubBackend())
    with pytest.raises(ValueError):
        reg.register("stub", lambda opts: StubBackend())
    with pytest.raises(ValueError):
        reg.register("", lambda opts: StubBackend())


def test_name_mismatch_is_rejected() -> None:
    reg = Registry()
    reg.register("fake", lambda opts: StubBackend())
    with pytest.raises(ValueError):
        reg.create("fake", EngineOptions())


@pytest.mark.parametrize("platform, expected", [("win32", "win32"), ("linux", "stub"), ("darwin", "stub")])
def test_auto_resolution(monkeypatch, platform: str, expected: str) -> None:
    monkeypatch.setattr("finger.orchestrator.registry.sys.platform", platform)
    assert resolve_backend_name("auto") == expected
    assert resolve_backend_name("stub") == "stub"
