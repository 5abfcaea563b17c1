from __future__ import annotations

import json
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional


CONFIG_FILENAME = "finger.json"


@dataclass
class EngineOptions:
    """Process-level engine settings.

    None of these are part of the per-bot contract; a bot only ever sees the
    cooldown it returns and the jitter applied to its own sleeps.
    """

    bots_dir: str = "bots"
    backend: str = "auto"  # auto|stub|win32
    rescan_interval_s: float = 2.0
    default_cooldown_ms: int = 5000
    min_cooldown_ms: int = 50
    max_cooldown_ms: int = 3_600_000
    sleep_jitter: float = 0.3
    activate_settle_ms: int = 200
    callback_timeout_s: float = 300.0  # 0 disables the watchdog
    status_placeholder: str = "(no status)"
    max_clicks_per_min: int = 120
    max_keys_per_min: int = 600
    pause_hotkey: str = "<ctrl>+<shift>+k"

    def __post_init__(self) -> None:
        if self.rescan_interval_s <= 0:
            raise ValueError("rescan_interval_s must be positive")
        if self.default_cooldown_ms <= 0:
            raise ValueError("default_cooldown_ms must be positive")
        if self.min_cooldown_ms < 0 or self.max_cooldown_ms < self.min_cooldown_ms:
            raise ValueError("cooldown bounds must satisfy 0 <= min <= max")
        if not 0.0 <= self.sleep_jitter < 1.0:
            raise ValueError("sleep_jitter must be in [0, 1)")
        if self.callback_timeout_s < 0:
            raise ValueError("callback_timeout_s cannot be negative")

    def bots_path(self, root: Path) -> Path:
        p = Path(self.bots_dir)
        return p if p.is_absolute() else Path(root) / p

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineOptions":
        defaults = cls()
        kwargs: Dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in data or data[f.name] is None:
                continue
            current = getattr(defaults, f.name)
            kwargs[f.name] = type(current)(data[f.name])
        return cls(**kwargs)

    @classmethod
    def load(cls, root: Optional[Path] = None) -> "EngineOptions":
        base = Path(root) if root is not None else Path.cwd()
        cfg_path = base / "config" / CONFIG_FILENAME
        data: Dict[str, Any] = {}
        try:
            if cfg_path.is_file():
                raw = json.loads(cfg_path.read_text(encoding="utf-8"))
                if isinstance(raw, dict):
                    data = raw
        except Exception:
            data = {}
        try:
            return cls.from_dict(data)
        except (TypeError, ValueError):
            return cls()
