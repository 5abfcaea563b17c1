from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from dataclasses import replace
from pathlib import Path
from typing import List, Optional, Sequence

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ..config import EngineOptions
from ..hotkeys import start_toggle_hotkey
from ..jsonlog import JsonEventLog
from .registry import build_default_registry, resolve_backend_name
from .runner import BotSummary, Engine, InstanceSummary, ThreadSafeControl


console = Console()


def _setup_logging(root: Path, verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    log_dir = root / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_dir / "app.log", mode="w", encoding="utf-8")
    file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False), file_handler],
        force=True,
    )


def _bots_table(bots: Sequence[BotSummary]) -> Table:
    table = Table(title="Bots")
    table.add_column("Bot", style="bold")
    table.add_column("Pattern")
    table.add_column("Description")
    table.add_column("Enabled")
    table.add_column("Instances", justify="right")
    table.add_column("Errors (5m)", justify="right")
    for b in bots:
        if b.error:
            table.add_row(b.name, "", f"[red]{b.error}[/red]", "-", "-", str(b.recent_errors))
            continue
        table.add_row(
            b.name,
            b.window_pattern,
            b.description,
            "yes" if b.enabled else "no",
            str(b.instances),
            str(b.recent_errors),
        )
    return table


def _instances_table(instances: Sequence[InstanceSummary], total_errors: int = 0) -> Table:
    colors = {"running": "green", "failed": "red", "stopped": "dim", "created": "yellow"}
    table = Table(title="Instances", caption=f"{total_errors} error(s) in the last 5 min")
    table.add_column("Instance", style="bold")
    table.add_column("Window")
    table.add_column("State")
    table.add_column("Ticks", justify="right")
    table.add_column("Errors (5m)", justify="right")
    table.add_column("Status")
    for i in instances:
        color = colors.get(i.state, "white")
        status = i.status if not i.error else f"{i.status} [red]{i.error}[/red]".strip()
        table.add_row(i.instance_id, i.window_title, f"[{color}]{i.state}[/{color}]", str(i.ticks), str(i.recent_errors), status)
    return table


async def _status_loop(engine: Engine, interval_s: float) -> None:
    while not engine.closed:
        await asyncio.sleep(interval_s)
        if engine.paused:
            console.print("[yellow]paused[/yellow]")
            continue
        _, instances = engine.snapshot()
        if instances:
            console.print(_instances_table(instances, engine.events.total_errors_in_window()))


async def _run(args: argparse.Namespace, engine: Engine, options: EngineOptions) -> int:
    engine.discover()
    bots, _ = engine.snapshot()
    console.print(_bots_table(bots))
    if args.list:
        return 0 if not engine.load_errors else 2

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, engine.request_stop)
    except (NotImplementedError, RuntimeError):
        # Windows event loops have no signal handlers; KeyboardInterrupt still reaches asyncio.run.
        pass

    control = ThreadSafeControl(engine, loop)
    listener = None
    if not args.no_hotkey:
        listener = start_toggle_hotkey(options.pause_hotkey, control.toggle_pause)

    status_task: Optional[asyncio.Task] = None
    try:
        await engine.start(enable=args.enable or ())
        if args.status_interval_s > 0:
            status_task = asyncio.create_task(_status_loop(engine, args.status_interval_s))
        await engine.run_until(duration_s=args.duration_s)
    finally:
        if status_task is not None:
            status_task.cancel()
        if listener is not None:
            listener.stop()
        if not engine.closed:
            await engine.shutdown()

    _, instances = engine.snapshot()
    console.print(f"stopped; {len(instances)} instance(s) left running")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run window bots against matching windows")
    parser.add_argument("--root", type=str, default=".", help="Project root holding config/ and logs/")
    parser.add_argument("--bots-dir", type=str, default=None, help="Bots folder (default from config)")
    parser.add_argument("--stub", action="store_true", help="Use scripted stub windows instead of the OS")
    parser.add_argument("--enable", action="append", metavar="NAME", help="Enable a bot (repeatable)")
    parser.add_argument("--list", action="store_true", help="List discovered bots and exit")
    parser.add_argument("--duration-s", type=float, default=None, help="Stop after this many seconds")
    parser.add_argument("--status-interval-s", type=float, default=10.0)
    parser.add_argument("--no-hotkey", action="store_true", help="Do not install the global pause/resume hotkey")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args(argv)

    root = Path(args.root).resolve()
    _setup_logging(root, args.verbose)

    options = EngineOptions.load(root)
    if args.bots_dir:
        options = replace(options, bots_dir=args.bots_dir)
    if args.stub:
        options = replace(options, backend="stub")

    registry = build_default_registry()
    backend_name = resolve_backend_name(options.backend)
    try:
        backend = registry.create(backend_name, options)
    except (KeyError, ValueError, OSError, ImportError) as exc:
        raise SystemExit(f"Cannot create backend {backend_name!r}: {exc}")

    events = JsonEventLog(root / "logs" / "events.jsonl")
    engine = Engine(backend, options, root=root, events=events, persist=True)
    try:
        return asyncio.run(_run(args, engine, options))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
