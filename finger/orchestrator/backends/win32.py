from __future__ import annotations

import logging
import threading
from typing import Any, List, Optional

import numpy as np
from mss import mss

from ...control import InputController, SafetyLimits
from ...windows import WindowsManager
from ..bbox import BBox, capture_rect, ratio_to_point
from ..interfaces import WindowBackend, WindowId, WindowInfo


logger = logging.getLogger("finger.backend.win32")


class Win32Backend(WindowBackend):
    """Real windows: ctypes for enumeration/focus, pyautogui for input, mss for capture."""

    name = "win32"

    def __init__(self, limits: Optional[SafetyLimits] = None) -> None:
        self._wm = WindowsManager()
        self._input = InputController(limits or SafetyLimits())
        # mss handles are per-thread.
        self._local = threading.local()
        if not self._input.available:
            logger.warning("pyautogui unavailable; input actions will be ignored")

    def _sct(self) -> Any:
        sct = getattr(self._local, "sct", None)
        if sct is None:
            sct = mss()
            self._local.sct = sct
        return sct

    def list_windows(self) -> List[WindowInfo]:
        return self._wm.list_windows()

    def activate(self, window_id: WindowId) -> bool:
        return self._wm.focus_hwnd(window_id)

    def window_rect(self, window_id: WindowId) -> Optional[BBox]:
        return self._wm.get_window_rect(window_id)

    def click_relative(self, window_id: WindowId, x_ratio: float, y_ratio: float) -> bool:
        bbox = self.window_rect(window_id)
        if bbox is None or bbox.width <= 0 or bbox.height <= 0:
            logger.warning("click: window %s has no usable rect", window_id)
            return False
        x, y = ratio_to_point(bbox, x_ratio, y_ratio)
        return self._input.click_at(x, y)

    def tap(self, window_id: WindowId, key: str) -> bool:
        if self._wm.get_foreground() != window_id:
            self._wm.focus_hwnd(window_id)
        return self._input.press_key(key)

    def type_text(self, window_id: WindowId, text: str) -> bool:
        if self._wm.get_foreground() != window_id:
            self._wm.focus_hwnd(window_id)
        return self._input.type_text(text)

    def capture(self, window_id: WindowId, rect: BBox) -> Optional[Any]:
        bbox = self.window_rect(window_id)
        if bbox is None or bbox.width <= 0 or bbox.height <= 0:
            return None
        region = capture_rect(bbox, rect.left, rect.top, rect.width, rect.height)
        try:
            shot = self._sct().grab(region.as_dict())
        except Exception as exc:
            logger.warning("capture of window %s failed: %s", window_id, exc)
            return None
        # mss gives BGRA rows.
        return np.array(shot)
