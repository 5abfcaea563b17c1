from __future__ import annotations

import re
from pathlib import Path


_ENGINE_IMPORT_RE = re.compile(r"^\s*(from|import)\s+finger\b", re.MULTILINE)


def _iter_python_files(root: Path) -> list[Path]:
    if not root.exists():
        return []
    return [p for p in root.rglob("*.py") if p.is_file()]


def test_bots_do_not_import_the_engine() -> None:
    """Bots reach the host only through the injected ``F`` and ``win``.

    Anything else would tie a bot script to engine internals that are free to
    change between releases.
    """

    repo_root = Path(__file__).resolve().parents[1]
    offenders: list[tuple[Path, int, str]] = []

    for path in _iter_python_files(repo_root / "bots"):
        text = path.read_text(encoding="utf-8", errors="replace")
        for match in _ENGINE_IMPORT_RE.finditer(text):
            line_no = text.count("\n", 0, match.start()) + 1
            line = text.splitlines()[line_no - 1]
            offenders.append((path.relative_to(repo_root), line_no, line.strip()))

    if offenders:
        formatted = "\n".join(f"- {p.as_posix()}:{line_no}: {line}" for p, line_no, line in offenders)
        raise AssertionError("Bot scripts must not import 'finger':\n" + formatted)


def test_every_sample_bot_declares_its_contract() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    entries = sorted((repo_root / "bots").glob("*/main.py"))
    assert entries
    for entry in entries:
        text = entry.read_text(encoding="utf-8")
        assert re.search(r"^window_pattern\s*=", text, re.MULTILINE), entry
        assert re.search(r"^(async\s+)?def tick\(", text, re.MULTILINE), entry
