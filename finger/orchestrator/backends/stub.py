from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..bbox import BBox
from ..interfaces import WindowBackend, WindowId, WindowInfo


logger = logging.getLogger("finger.backend.stub")

DEFAULT_WINDOWS: Tuple[WindowInfo, ...] = (
    WindowInfo(10001, "World of Warcraft"),
    WindowInfo(10002, "World of Warcraft"),
    WindowInfo(20001, "向僵尸开炮"),
)

STUB_RECT = BBox(left=0, top=0, width=1920, height=1080)


@dataclass
class StubBackend(WindowBackend):
    """Scripted windows that record every call instead of touching the OS.

    Used by the test-suite and by ``--stub`` runs on machines without a
    supported window system.
    """

    windows: List[WindowInfo] = field(default_factory=lambda: list(DEFAULT_WINDOWS))
    captures: Dict[WindowId, Any] = field(default_factory=dict)
    rect: BBox = STUB_RECT
    name: str = "stub"

    def __post_init__(self) -> None:
        self._lock = threading.Lock()
        self.calls: List[Tuple[Any, ...]] = []

    def _record(self, *call: Any) -> None:
        with self._lock:
            self.calls.append(call)
        logger.debug("stub %s", call)

    def calls_of(self, op: str, window_id: Optional[WindowId] = None) -> List[Tuple[Any, ...]]:
        with self._lock:
            return [c for c in self.calls if c[0] == op and (window_id is None or c[1] == window_id)]

    def set_windows(self, windows: Iterable[WindowInfo]) -> None:
        with self._lock:
            self.windows = list(windows)

    def add_window(self, window_id: WindowId, title: str) -> WindowInfo:
        info = WindowInfo(window_id, title)
        with self._lock:
            self.windows.append(info)
        return info

    def remove_window(self, window_id: WindowId) -> None:
        with self._lock:
            self.windows = [w for w in self.windows if w.window_id != window_id]

    def _exists(self, window_id: WindowId) -> bool:
        with self._lock:
            return any(w.window_id == window_id for w in self.windows)

    def list_windows(self) -> List[WindowInfo]:
        with self._lock:
            return list(self.windows)

    def activate(self, window_id: WindowId) -> bool:
        self._record("activate", window_id)
        return self._exists(window_id)

    def deactivate(self, window_id: WindowId) -> None:
        self._record("deactivate", window_id)

    def window_rect(self, window_id: WindowId) -> Optional[BBox]:
        return self.rect if self._exists(window_id) else None

    def click_relative(self, window_id: WindowId, x_ratio: float, y_ratio: float) -> bool:
        self._record("click", window_id, round(x_ratio, 4), round(y_ratio, 4))
        return True

    def tap(self, window_id: WindowId, key: str) -> bool:
        self._record("tap", window_id, key)
        return True

    def type_text(self, window_id: WindowId, text: str) -> bool:
        self._record("type", window_id, text)
        return True

    def capture(self, window_id: WindowId, rect: BBox) -> Optional[Any]:
        self._record("capture", window_id, rect.as_dict())
        pixels = self.captures.get(window_id)
        if pixels is None:
            return None
        return pixels[rect.top : rect.bottom, rect.left : rect.right]
