from __future__ import annotations

import json
import threading
import time
from collections import deque
from pathlib import Path
from typing import Any, Deque, Dict, Optional


def _now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%S", time.localtime()) + f".{int((time.time()%1)*1000):03d}"


class JsonEventLog:
    """Append-only JSON-lines log of instance lifecycle and tick events.

    Also keeps a sliding window of failures per subject (the instance id, else
    the bot name, else the event name) so the status display can show how often
    an instance has been failing lately.
    ``file_path=None`` keeps the counters without writing anything.
    """

    def __init__(self, file_path: Optional[Path] = None, error_window_s: float = 300.0):
        self.file_path = file_path
        if self.file_path is not None:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._error_window_s = error_window_s
        self._errors: Dict[str, Deque[float]] = {}

    def log(self, event: str, **data: Any) -> None:
        rec: Dict[str, Any] = {"ts": _now_iso(), "event": event, **data}
        if self.file_path is not None:
            line = json.dumps(rec, ensure_ascii=False, separators=(",", ":"), default=str)
            try:
                with self._lock:
                    with open(self.file_path, "a", encoding="utf-8") as f:
                        f.write(line + "\n")
            except OSError:
                # The event log is advisory; the engine keeps running without it.
                pass

        if "error" in event or "fail" in event or data.get("ok") is False:
            self._record_error(str(data.get("instance") or data.get("bot") or event))

    def _record_error(self, key: str) -> None:
        with self._lock:
            self._errors.setdefault(key, deque()).append(time.time())

    def _prune(self, key: str) -> None:
        q = self._errors.get(key)
        if q is None:
            return
        cutoff = time.time() - self._error_window_s
        while q and q[0] < cutoff:
            q.popleft()

    def error_rate(self, key: str) -> int:
        """Failures recorded for ``key`` inside the current window."""
        with self._lock:
            self._prune(key)
            return len(self._errors.get(key, ()))

    def all_error_rates(self) -> Dict[str, int]:
        with self._lock:
            out: Dict[str, int] = {}
            for key in list(self._errors):
                self._prune(key)
                if self._errors[key]:
                    out[key] = len(self._errors[key])
            return out

    def total_errors_in_window(self) -> int:
        return sum(self.all_error_rates().values())
