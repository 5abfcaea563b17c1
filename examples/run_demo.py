from __future__ import annotations

import argparse
import asyncio
import json
import logging
from dataclasses import replace
from pathlib import Path

from finger.config import EngineOptions
from finger.hint import encode_hint_v2
from finger.orchestrator import Engine
from finger.orchestrator.backends import StubBackend


REPO_ROOT = Path(__file__).resolve().parents[1]


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def build_demo_backend(hint: str) -> StubBackend:
    backend = StubBackend()
    if hint:
        for w in backend.windows:
            if "Warcraft" in w.title:
                backend.captures[w.window_id] = encode_hint_v2(hint)
    return backend


async def _run(engine: Engine, enable: list, seconds: float) -> dict:
    await engine.start(enable=enable)
    await asyncio.sleep(seconds)
    bots, instances = engine.snapshot()
    await engine.shutdown()
    return {
        "bots": [b.__dict__ for b in bots],
        "instances": [i.__dict__ for i in instances],
    }


def main() -> int:
    parser = argparse.ArgumentParser(description="finger demo: sample bots against scripted stub windows")
    parser.add_argument("--seconds", type=float, default=3.0)
    parser.add_argument("--hint", type=str, default="rally", help="Hint painted into the WoW stub windows")
    parser.add_argument("--enable", action="append", metavar="NAME")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    _setup_logging(args.verbose)

    options = replace(EngineOptions.load(REPO_ROOT), backend="stub", activate_settle_ms=0)
    backend = build_demo_backend(args.hint)
    engine = Engine(backend, options, root=REPO_ROOT)
    engine.discover()
    enable = args.enable or sorted(engine.definitions)

    out = asyncio.run(_run(engine, enable, args.seconds))
    out["calls"] = len(backend.calls)
    print(json.dumps(out, indent=2, sort_keys=True, ensure_ascii=False, default=str))
    return 0 if not engine.load_errors else 2


if __name__ == "__main__":
    raise SystemExit(main())
