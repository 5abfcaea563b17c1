from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, List, Optional

from .bbox import BBox


WindowId = int
Callback = Callable[..., Any]

OPTIONAL_CALLBACKS = ("start", "stop", "reset", "get_status")


@dataclass(frozen=True)
class WindowInfo:
    """A top-level OS window as reported by the backend."""

    window_id: WindowId
    title: str


class WindowBackend(ABC):
    """The automation backend every OS-touching call ends up in.

    Implementations are blocking and may be slow; the engine calls them from
    worker threads and serializes input per window, so a backend never sees
    two actuation calls for the same window at once.
    """

    name: str

    @abstractmethod
    def list_windows(self) -> List[WindowInfo]:
        raise NotImplementedError

    @abstractmethod
    def activate(self, window_id: WindowId) -> bool:
        raise NotImplementedError

    def deactivate(self, window_id: WindowId) -> None:
        return None

    @abstractmethod
    def window_rect(self, window_id: WindowId) -> Optional[BBox]:
        raise NotImplementedError

    @abstractmethod
    def click_relative(self, window_id: WindowId, x_ratio: float, y_ratio: float) -> bool:
        raise NotImplementedError

    @abstractmethod
    def tap(self, window_id: WindowId, key: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def type_text(self, window_id: WindowId, text: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def capture(self, window_id: WindowId, rect: BBox) -> Optional[Any]:
        """Return a BGRA pixel array (rows x cols x 4) of a window-relative rect, or None."""

        raise NotImplementedError


@dataclass(frozen=True)
class BotDefinition:
    """Metadata read from a bot's entry unit during discovery.

    Callables are not kept here: discovery discards its environment, and each
    instance binds its own callbacks from its own environment.
    """

    name: str
    path: Path
    window_pattern: str
    description: str = ""
    has_start: bool = False
    has_stop: bool = False
    has_reset: bool = False
    has_status: bool = False


@dataclass(frozen=True)
class BotCallbacks:
    tick: Callback
    start: Optional[Callback] = None
    stop: Optional[Callback] = None
    reset: Optional[Callback] = None
    get_status: Optional[Callback] = None


class InstanceState(Enum):
    CREATED = "created"
    RUNNING = "running"
    FAILED = "failed"
    STOPPED = "stopped"
