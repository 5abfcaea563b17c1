from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import Callable, Dict, List

from ..config import EngineOptions
from .interfaces import WindowBackend


Factory = Callable[[EngineOptions], WindowBackend]


@dataclass
class Registry:
    """Window backend registry.

    This exists so the real backend and test doubles can be swapped easily.
    """

    _factories: Dict[str, Factory]

    def __init__(self) -> None:
        self._factories = {}

    def register(self, name: str, factory: Factory) -> None:
        if not name:
            raise ValueError("name must be non-empty")
        if name in self._factories:
            raise ValueError(f"backend already registered: {name}")
        self._factories[name] = factory

    def names(self) -> List[str]:
        return sorted(self._factories)

    def create(self, name: str, options: EngineOptions) -> WindowBackend:
        try:
            factory = self._factories[name]
        except KeyError as exc:
            raise KeyError(f"unknown backend: {name}") from exc
        backend = factory(options)
        if getattr(backend, "name", None) != name:
            raise ValueError(
                f"registry mismatch: requested {name!r} but backend.name is {getattr(backend, 'name', None)!r}"
            )
        return backend


def _stub(options: EngineOptions) -> WindowBackend:
    from .backends.stub import StubBackend

    return StubBackend()


def _win32(options: EngineOptions) -> WindowBackend:
    from ..control import SafetyLimits
    from .backends.win32 import Win32Backend

    return Win32Backend(
        SafetyLimits(
            max_clicks_per_min=options.max_clicks_per_min,
            max_keys_per_min=options.max_keys_per_min,
        )
    )


def build_default_registry() -> Registry:
    reg = Registry()
    reg.register("stub", _stub)
    reg.register("win32", _win32)
    return reg


def resolve_backend_name(name: str) -> str:
    """``auto`` means the real backend where one exists, the stub elsewhere."""

    if name != "auto":
        return name
    return "win32" if sys.platform == "win32" else "stub"
