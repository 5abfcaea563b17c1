from __future__ import annotations

import ctypes
from ctypes import wintypes
from typing import Callable, List, Optional

from .orchestrator.bbox import BBox, bbox_from_rect
from .orchestrator.interfaces import WindowInfo

user32 = ctypes.windll.user32

EnumWindowsProc = ctypes.WINFUNCTYPE(wintypes.BOOL, wintypes.HWND, wintypes.LPARAM)


def _get_window_text(hwnd: int) -> str:
    length = user32.GetWindowTextLengthW(hwnd)
    buf = ctypes.create_unicode_buffer(length + 1)
    user32.GetWindowTextW(hwnd, buf, length + 1)
    return buf.value or ""


def _is_window_visible(hwnd: int) -> bool:
    return bool(user32.IsWindowVisible(hwnd))


def _enum_windows(callback: Callable[[int], None]) -> None:
    def _cb(hwnd, lparam):
        try:
            callback(hwnd)
        except Exception:
            return True
        return True

    user32.EnumWindows(EnumWindowsProc(_cb), 0)


class WindowsManager:
    """Top-level window enumeration and focus via Win32 APIs (ctypes).

    - Enumerates visible, titled top-level windows
    - Brings a window to the foreground using the AttachThreadInput trick
    - Reports window rectangles in screen pixels
    """

    SW_RESTORE = 9

    def list_windows(self) -> List[WindowInfo]:
        out: List[WindowInfo] = []

        def _collect(hwnd: int):
            if not _is_window_visible(hwnd):
                return
            title = _get_window_text(hwnd)
            if not title:
                return
            out.append(WindowInfo(window_id=int(hwnd), title=title))

        _enum_windows(_collect)
        return out

    def is_window(self, hwnd: int) -> bool:
        return bool(hwnd) and bool(user32.IsWindow(hwnd))

    def focus_hwnd(self, hwnd: int) -> bool:
        if not self.is_window(hwnd):
            return False
        if user32.IsIconic(hwnd):
            user32.ShowWindowAsync(hwnd, self.SW_RESTORE)

        fg = user32.GetForegroundWindow()
        if fg == hwnd:
            return True
        pid = wintypes.DWORD()
        tid1 = user32.GetWindowThreadProcessId(fg, ctypes.byref(pid))
        tid2 = user32.GetWindowThreadProcessId(hwnd, ctypes.byref(pid))
        attached = False
        if tid1 != tid2 and tid1 and tid2:
            attached = bool(user32.AttachThreadInput(tid1, tid2, True))
        try:
            user32.SetForegroundWindow(hwnd)
            user32.BringWindowToTop(hwnd)
        finally:
            if attached:
                user32.AttachThreadInput(tid1, tid2, False)
        return True

    def get_foreground(self) -> Optional[int]:
        try:
            hwnd = user32.GetForegroundWindow()
            return int(hwnd) if hwnd else None
        except Exception:
            return None

    def get_window_rect(self, hwnd: int) -> Optional[BBox]:
        try:
            rect = wintypes.RECT()
            if not user32.GetWindowRect(hwnd, ctypes.byref(rect)):
                return None
            return bbox_from_rect(
                {"left": rect.left, "top": rect.top, "right": rect.right, "bottom": rect.bottom}
            )
        except Exception:
            return None
