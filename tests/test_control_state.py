from __future__ import annotations

import json
from pathlib import Path

from finger import control_state


def test_round_trip(tmp_path: Path) -> None:
    assert control_state.get_enabled_bots(tmp_path) == []
    control_state.set_enabled_bots(tmp_path, ["wow-rally-hk", "ftz-farm", "ftz-farm"])
    assert control_state.get_enabled_bots(tmp_path) == ["ftz-farm", "wow-rally-hk"]
    assert not (tmp_path / "config" / "controls_state.tmp").exists()


def test_corrupt_file_reads_as_empty(tmp_path: Path) -> None:
    path = tmp_path / "config" / control_state.STATE_FILENAME
    path.parent.mkdir(parents=True)
    path.write_text("{broken", encoding="utf-8")
    assert control_state.get_controls_state(tmp_path) == {}
    assert control_state.get_enabled_bots(tmp_path) == []


def test_other_keys_are_preserved(tmp_path: Path) -> None:
    path = tmp_path / "config" / control_state.STATE_FILENAME
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps({"paused": True, "enabled_bots": "bad"}), encoding="utf-8")
    assert control_state.get_enabled_bots(tmp_path) == []

    control_state.set_enabled_bots(tmp_path, ["demo"])
    st = control_state.get_controls_state(tmp_path)
    assert st["paused"] is True
    assert st["enabled_bots"] == ["demo"]
    assert "ts" in st
