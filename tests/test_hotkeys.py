from __future__ import annotations

import logging
import sys
from types import SimpleNamespace
from typing import Any, Callable, Dict, List

import pytest

from finger.hotkeys import start_toggle_hotkey


class _FakeGlobalHotKeys:
    created: List["_FakeGlobalHotKeys"] = []

    def __init__(self, hotkeys: Dict[str, Callable[[], Any]]) -> None:
        self.hotkeys = hotkeys
        self.daemon = False
        self.started = False
        _FakeGlobalHotKeys.created.append(self)

    def start(self) -> None:
        self.started = True


@pytest.fixture
def fake_pynput(monkeypatch) -> List[_FakeGlobalHotKeys]:
    _FakeGlobalHotKeys.created = []
    module = SimpleNamespace(keyboard=SimpleNamespace(GlobalHotKeys=_FakeGlobalHotKeys))
    monkeypatch.setitem(sys.modules, "pynput", module)
    return _FakeGlobalHotKeys.created


def test_hotkey_invokes_handler(fake_pynput) -> None:
    presses: List[str] = []
    listener = start_toggle_hotkey("<ctrl>+<shift>+k", lambda: presses.append("x"))

    assert listener is fake_pynput[0]
    assert listener.started and listener.daemon
    listener.hotkeys["<ctrl>+<shift>+k"]()
    listener.hotkeys["<ctrl>+<shift>+k"]()
    assert presses == ["x", "x"]


def test_handler_failure_is_logged(fake_pynput, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.ERROR, logger="finger.hotkeys")

    def boom() -> None:
        raise RuntimeError("loop closed")

    listener = start_toggle_hotkey("<f9>", boom)
    listener.hotkeys["<f9>"]()
    assert "hotkey handler failed" in caplog.messages


def test_missing_pynput_returns_none(monkeypatch, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING, logger="finger.hotkeys")
    monkeypatch.setitem(sys.modules, "pynput", None)
    assert start_toggle_hotkey("<f9>", lambda: None) is None
    assert any("pause hotkey not available" in m for m in caplog.messages)
