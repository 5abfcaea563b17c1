from __future__ import annotations

import importlib
import importlib.util
import itertools
import logging
import re
import sys
from pathlib import Path
from types import ModuleType
from typing import Any, Dict, List, Optional, Tuple

from .errors import BotError, LoadError
from .interfaces import OPTIONAL_CALLBACKS, BotCallbacks, BotDefinition
from .matcher import compile_pattern
from .sandbox import HostFunctions, WindowProxy


logger = logging.getLogger("finger.loader")

ENTRY_NAME = "main.py"
PACKAGE_PREFIX = "_finger_bot"

_SKIP_DIRS = {"__pycache__", "node_modules"}
_env_ids = itertools.count(1)


def find_bot_dirs(root: Path) -> List[Path]:
    """Every folder under ``root`` that holds an entry unit, depth first.

    A bot folder may itself contain nested bot folders; those are separate
    bots, not part of the enclosing one.
    """

    results: List[Path] = []
    try:
        entries = sorted(p for p in Path(root).iterdir() if p.is_dir())
    except OSError:
        return results
    for path in entries:
        if path.name.startswith(".") or path.name in _SKIP_DIRS:
            continue
        if (path / ENTRY_NAME).is_file():
            results.append(path)
        results.extend(find_bot_dirs(path))
    return results


def derive_bot_name(bot_dir: Path, root: Path) -> str:
    """``bots/wow/rally`` -> ``wow/rally``."""

    try:
        rel = Path(bot_dir).resolve().relative_to(Path(root).resolve())
    except ValueError:
        rel = Path(Path(bot_dir).name)
    return rel.as_posix()


def _package_name(bot_name: str) -> str:
    slug = re.sub(r"\W", "_", bot_name) or "bot"
    return f"{PACKAGE_PREFIX}_{slug}_{next(_env_ids)}"


class ScriptEnvironment:
    """One isolated namespace a bot script runs in.

    The entry unit is executed as the ``__init__`` of a synthetic package
    whose search path is the bot folder, so relative imports reach the bot's
    own modules (and nested folders as sub-packages) but nothing beside it.
    """

    def __init__(self, bot_name: str, bot_dir: Path, package: str, module: ModuleType) -> None:
        self.bot_name = bot_name
        self.bot_dir = bot_dir
        self.package = package
        self.module = module
        self.disposed = False

    @property
    def namespace(self) -> Dict[str, Any]:
        return self.module.__dict__

    def dispose(self) -> None:
        """Forget the package and every submodule it imported."""
        if self.disposed:
            return
        prefix = self.package + "."
        for key in [k for k in sys.modules if k == self.package or k.startswith(prefix)]:
            sys.modules.pop(key, None)
        self.disposed = True

    def __repr__(self) -> str:
        return f"<ScriptEnvironment {self.bot_name} as {self.package}>"


def create_environment(bot_name: str, bot_dir: Path, F: Any, win: Any) -> ScriptEnvironment:
    """Execute a bot's entry unit into a fresh namespace with ``F``/``win`` injected."""

    bot_dir = Path(bot_dir).resolve()
    entry = bot_dir / ENTRY_NAME
    if not entry.is_file():
        raise LoadError(bot_name, code="missing_entry", message=f"no {ENTRY_NAME} in {bot_dir}")
    try:
        source = entry.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise LoadError(bot_name, code="unreadable", message=str(exc)) from exc

    package = _package_name(bot_name)
    spec = importlib.util.spec_from_file_location(
        package, entry, submodule_search_locations=[str(bot_dir)]
    )
    if spec is None:
        raise LoadError(bot_name, code="missing_entry", message=f"cannot build a module spec for {entry}")
    module = importlib.util.module_from_spec(spec)
    module.F = F
    module.win = win

    env = ScriptEnvironment(bot_name, bot_dir, package, module)
    sys.modules[package] = module
    importlib.invalidate_caches()
    try:
        code = compile(source, str(entry), "exec")
        exec(code, module.__dict__)
    except Exception as exc:
        env.dispose()
        raise LoadError(
            bot_name,
            code="import_failed",
            message=f"{type(exc).__name__}: {exc}",
        ) from exc
    return env


def read_callbacks(env: ScriptEnvironment) -> Tuple[str, str, BotCallbacks]:
    """Validate the descriptor globals; returns (pattern, description, callbacks)."""

    ns = env.namespace
    name = env.bot_name

    pattern = ns.get("window_pattern")
    if pattern is None:
        raise LoadError(name, code="missing_pattern", message="window_pattern is not defined")
    if not isinstance(pattern, str):
        raise LoadError(name, code="bad_descriptor", message="window_pattern must be a string")

    description = ns.get("description", "")
    if description is None:
        description = ""
    if not isinstance(description, str):
        raise LoadError(name, code="bad_descriptor", message="description must be a string")

    tick = ns.get("tick")
    if tick is None:
        raise LoadError(name, code="missing_tick", message="tick is not defined")
    if not callable(tick):
        raise LoadError(name, code="bad_descriptor", message="tick is not callable")

    optional: Dict[str, Optional[Any]] = {}
    for cb in OPTIONAL_CALLBACKS:
        fn = ns.get(cb)
        if fn is not None and not callable(fn):
            raise LoadError(name, code="bad_descriptor", message=f"{cb} is defined but not callable")
        optional[cb] = fn

    return pattern, description, BotCallbacks(tick=tick, **optional)


def load_definition(bot_dir: Path, root: Path, jitter: float = 0.3) -> BotDefinition:
    """Load a bot for discovery only.

    Top-level code runs (it has to, to produce the descriptor) but no
    callback is invoked and ``win`` rejects every call. The environment is
    thrown away before returning.
    """

    name = derive_bot_name(bot_dir, root)
    env = create_environment(name, bot_dir, HostFunctions(name, jitter), WindowProxy.unbound(name))
    try:
        pattern, description, callbacks = read_callbacks(env)
    finally:
        env.dispose()

    compile_pattern(pattern, bot=name)

    return BotDefinition(
        name=name,
        path=Path(bot_dir).resolve(),
        window_pattern=pattern,
        description=description,
        has_start=callbacks.start is not None,
        has_stop=callbacks.stop is not None,
        has_reset=callbacks.reset is not None,
        has_status=callbacks.get_status is not None,
    )


def discover(root: Path, jitter: float = 0.3) -> Tuple[List[BotDefinition], Dict[str, BotError]]:
    """Load every bot under ``root``; a broken bot never hides the others."""

    definitions: List[BotDefinition] = []
    errors: Dict[str, BotError] = {}
    for bot_dir in find_bot_dirs(root):
        name = derive_bot_name(bot_dir, root)
        try:
            definitions.append(load_definition(bot_dir, root, jitter))
        except BotError as exc:
            logger.error("failed to load bot %s: %s", name, exc)
            errors[name] = exc
    logger.info("discovered %d bot(s), %d failed", len(definitions), len(errors))
    return definitions, errors
