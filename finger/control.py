import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Deque, List

try:
    import pyautogui  # type: ignore
    pyautogui.FAILSAFE = True
    pyautogui.PAUSE = 0.0
except Exception:
    pyautogui = None


logger = logging.getLogger("finger.control")

# Delay between mouse down and up, and after the up.
CLICK_HOLD_S = 0.015


@dataclass
class SafetyLimits:
    max_clicks_per_min: int = 120
    max_keys_per_min: int = 600


class InputController:
    """Process-wide mouse/keyboard injection with per-minute rate limits.

    Every bot instance shares one controller, so the limits bound the whole
    process rather than a single script.
    """

    def __init__(self, limits: SafetyLimits = SafetyLimits(), type_interval: float = 0.01):
        self.limits = limits
        self.type_interval = type_interval
        self._lock = threading.Lock()
        self._clicks: Deque[float] = deque()
        self._keys: Deque[float] = deque()
        self._paused = False

    @property
    def available(self) -> bool:
        return pyautogui is not None

    def pause(self, paused: bool = True) -> None:
        self._paused = paused

    @staticmethod
    def _prune(q: Deque[float], now: float) -> None:
        cutoff = now - 60.0
        while q and q[0] < cutoff:
            q.popleft()

    def _take(self, q: Deque[float], limit: int, n: int = 1) -> bool:
        with self._lock:
            now = time.time()
            self._prune(q, now)
            if len(q) + n > limit:
                return False
            q.extend([now] * n)
            return True

    def _allowed(self) -> bool:
        return pyautogui is not None and not self._paused

    def click_at(self, x: int, y: int, button: str = "left") -> bool:
        """Click at absolute screen coordinates."""
        if not self._allowed():
            return False
        if not self._take(self._clicks, self.limits.max_clicks_per_min):
            logger.warning("click rate limit reached (%d/min)", self.limits.max_clicks_per_min)
            return False
        try:
            pyautogui.moveTo(x, y)
            pyautogui.mouseDown(button=button)
            time.sleep(CLICK_HOLD_S)
            pyautogui.mouseUp(button=button)
            time.sleep(CLICK_HOLD_S)
            return True
        except Exception as exc:
            logger.warning("click at (%d, %d) failed: %s", x, y, exc)
            return False

    def press_key(self, key: str) -> bool:
        """Press a key or a ``+``-joined chord such as ``ctrl+a``."""
        keys: List[str] = [k.strip().lower() for k in key.split("+") if k.strip()]
        if not keys:
            return False
        # A lone uppercase letter means shift+letter.
        if len(key) == 1 and key.isalpha() and key.isupper():
            keys = ["shift", key.lower()]
        if not self._allowed():
            return False
        if not self._take(self._keys, self.limits.max_keys_per_min):
            logger.warning("key rate limit reached (%d/min)", self.limits.max_keys_per_min)
            return False
        try:
            if len(keys) == 1:
                pyautogui.press(keys[0])
            else:
                pyautogui.hotkey(*keys)
            return True
        except Exception as exc:
            logger.warning("key %r failed: %s", key, exc)
            return False

    def type_text(self, text: str) -> bool:
        if not text:
            return True
        if not self._allowed():
            return False
        if not self._take(self._keys, self.limits.max_keys_per_min, len(text)):
            logger.warning("key rate limit reached (%d/min)", self.limits.max_keys_per_min)
            return False
        try:
            pyautogui.write(text, interval=self.type_interval)
            return True
        except Exception as exc:
            logger.warning("typing failed: %s", exc)
            return False
