from __future__ import annotations

import json
from pathlib import Path

from finger.jsonlog import JsonEventLog


def test_writes_json_lines(tmp_path: Path) -> None:
    path = tmp_path / "logs" / "events.jsonl"
    log = JsonEventLog(path)
    log.log("instance_started", instance="demo-1", window="FooBar")
    log.log("tick_error", instance="demo-1", error="boom")

    records = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert [r["event"] for r in records] == ["instance_started", "tick_error"]
    assert records[0]["window"] == "FooBar"
    assert "ts" in records[0]


def test_error_counters_are_kept_per_subject() -> None:
    log = JsonEventLog(None)
    log.log("tick_error", instance="a-1")
    log.log("reset_error", instance="a-1")
    log.log("tick_error", instance="b-2")
    log.log("instance_stopped", instance="a-1")
    log.log("restart_error", bot="a")
    log.log("action", ok=False)
    assert log.error_rate("a-1") == 2
    assert log.error_rate("b-2") == 1
    assert log.error_rate("c-3") == 0
    assert log.all_error_rates() == {"a-1": 2, "b-2": 1, "a": 1, "action": 1}
    assert log.total_errors_in_window() == 5


def test_errors_expire(monkeypatch) -> None:
    log = JsonEventLog(None, error_window_s=10.0)
    clock = [1000.0]
    monkeypatch.setattr("finger.jsonlog.time.time", lambda: clock[0])
    log.log("reset_error")
    clock[0] += 11.0
    assert log.error_rate("reset_error") == 0
    assert log.all_error_rates() == {}
