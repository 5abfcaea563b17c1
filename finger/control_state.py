from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List


STATE_FILENAME = "controls_state.json"


def _now() -> float:
	"""Internal helper for time; aids testing."""
	return time.time()


def _state_path(root: Path) -> Path:
	return Path(root) / "config" / STATE_FILENAME


def get_controls_state(root: Path) -> Dict[str, Any]:
	"""Return the persisted controls state, best effort."""
	path = _state_path(root)
	try:
		if path.exists():
			data = json.loads(path.read_text(encoding="utf-8"))
			return data if isinstance(data, dict) else {}
	except (OSError, ValueError):
		return {}
	return {}


def _write_state(root: Path, st: Dict[str, Any]) -> None:
	path = _state_path(root)
	path.parent.mkdir(parents=True, exist_ok=True)
	tmp = path.with_suffix(".tmp")
	tmp.write_text(json.dumps(st, indent=2), encoding="utf-8")
	tmp.replace(path)


def get_enabled_bots(root: Path) -> List[str]:
	"""Bots the user left enabled last time, in saved order."""
	raw = get_controls_state(root).get("enabled_bots") or []
	if not isinstance(raw, list):
		return []
	return [str(x) for x in raw if isinstance(x, str) and x]


def set_enabled_bots(root: Path, names: Iterable[str]) -> None:
	"""Persist the enabled-bot set; other keys in the file are preserved."""
	st = get_controls_state(root)
	st["enabled_bots"] = sorted(set(names))
	st["ts"] = _now()
	_write_state(root, st)
