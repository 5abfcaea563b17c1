from __future__ import annotations

import asyncio
import logging
import textwrap
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional

import pytest

from finger.config import EngineOptions
from finger.orchestrator import Engine, WindowInfo
from finger.orchestrator.backends import StubBackend


def _write_bot(root: Path, name: str, source: str, files: Optional[Dict[str, str]] = None) -> Path:
    bot_dir = root / name
    bot_dir.mkdir(parents=True, exist_ok=True)
    (bot_dir / "main.py").write_text(textwrap.dedent(source), encoding="utf-8")
    for rel, text in (files or {}).items():
        p = bot_dir / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(textwrap.dedent(text), encoding="utf-8")
    return bot_dir


async def _wait_until(cond: Callable[[], bool], timeout_s: float = 3.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_s
    while not cond():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def bots_root(tmp_path: Path) -> Path:
    root = tmp_path / "bots"
    root.mkdir()
    return root


@pytest.fixture
def write_bot(bots_root: Path) -> Callable[..., Path]:
    """``write_bot(name, source, files={"lib/util.py": ...})``."""

    def _w(name: str, source: str, files: Optional[Dict[str, str]] = None) -> Path:
        return _write_bot(bots_root, name, source, files)

    return _w


@pytest.fixture
def wait_until() -> Callable[..., Awaitable[None]]:
    return _wait_until


@pytest.fixture
def fast_options() -> EngineOptions:
    return EngineOptions(
        rescan_interval_s=0.05,
        min_cooldown_ms=1,
        sleep_jitter=0.0,
        activate_settle_ms=0,
        callback_timeout_s=5.0,
    )


@pytest.fixture
def make_engine(tmp_path: Path, fast_options: EngineOptions) -> Callable[..., Engine]:
    def _make(windows: List[WindowInfo], options: Optional[EngineOptions] = None, persist: bool = False) -> Engine:
        backend = StubBackend(windows=list(windows))
        engine = Engine(backend, options or fast_options, root=tmp_path, persist=persist)
        engine.discover()
        return engine

    return _make


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    saved = list(root.handlers), root.level
    yield
    for h in list(root.handlers):
        if h not in saved[0]:
            root.removeHandler(h)
            h.close()
    for h in saved[0]:
        if h not in root.handlers:
            root.addHandler(h)
    root.setLevel(saved[1])
