from __future__ import annotations

import json
from pathlib import Path

import pytest
from rich.console import Console

from finger import control_state
from finger.orchestrator.cli import _bots_table, _instances_table, main
from finger.orchestrator.runner import BotSummary, InstanceSummary


FARM = """
window_pattern = "World of Warcraft"
description = "clicks once"

async def tick():
    await win.click(0.5, 0.5)
    return 60000
"""


@pytest.fixture
def project(tmp_path: Path, restore_logging) -> Path:
    bot = tmp_path / "bots" / "farm"
    bot.mkdir(parents=True)
    (bot / "main.py").write_text(FARM, encoding="utf-8")
    return tmp_path


def test_list_only(project: Path) -> None:
    assert main(["--root", str(project), "--stub", "--list", "--no-hotkey"]) == 0
    assert (project / "logs" / "app.log").exists()


def test_list_reports_load_errors(project: Path) -> None:
    broken = project / "bots" / "broken"
    broken.mkdir()
    (broken / "main.py").write_text("tick = 1\n", encoding="utf-8")
    assert main(["--root", str(project), "--stub", "--list", "--no-hotkey"]) == 2


def test_short_run_with_stub_windows(project: Path) -> None:
    rc = main(
        [
            "--root", str(project),
            "--stub",
            "--enable", "farm",
            "--duration-s", "0.5",
            "--status-interval-s", "0",
            "--no-hotkey",
        ]
    )
    assert rc == 0

    lines = (project / "logs" / "events.jsonl").read_text(encoding="utf-8").splitlines()
    events = [json.loads(line) for line in lines]
    started = sorted(e["instance"] for e in events if e["event"] == "instance_started")
    assert started == ["farm-10001", "farm-10002"]
    assert events[-1]["event"] == "engine_shutdown"
    assert control_state.get_enabled_bots(project) == ["farm"]


def test_tables_show_recent_errors() -> None:
    bots = [BotSummary("farm", "clicks once", "World of Warcraft", True, 1, recent_errors=3)]
    instances = [
        InstanceSummary(
            "farm-7", "farm", 7, "World of Warcraft", "failed", "(no status)",
            "farm.tick: RuntimeError: boom", 4, 0, recent_errors=2,
        )
    ]
    console = Console(record=True, width=200)
    console.print(_bots_table(bots))
    console.print(_instances_table(instances, total_errors=2))
    text = console.export_text()

    assert text.count("Errors (5m)") == 2
    assert "2 error(s) in the last 5 min" in text
    assert "farm-7" in text
