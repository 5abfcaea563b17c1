from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Pattern, Set, Tuple, Union

from .errors import PatternError
from .interfaces import BotDefinition, WindowId, WindowInfo


logger = logging.getLogger("finger.matcher")

ALTERNATIVE_SEPARATOR = "|"


def compile_pattern(pattern: str, bot: str = "") -> Tuple[Pattern[str], ...]:
    """Compile a ``|``-separated window pattern, one regex per alternative.

    The split is purely textual: every ``|`` separates alternatives, including
    one written inside a group. Such an alternative usually fails to compile
    and is reported rather than reinterpreted.
    """

    compiled: List[Pattern[str]] = []
    for alt in pattern.split(ALTERNATIVE_SEPARATOR):
        if not alt.strip():
            raise PatternError(bot, code="empty_alternative", message=f"empty alternative in {pattern!r}")
        try:
            compiled.append(re.compile(alt, re.IGNORECASE))
        except re.error as exc:
            raise PatternError(
                bot,
                message=f"invalid alternative {alt!r}: {exc}",
                details={"pattern": pattern, "alternative": alt},
            ) from exc
    return tuple(compiled)


def title_matches(title: str, alternatives: Iterable[Pattern[str]]) -> bool:
    return bool(title) and any(p.search(title) for p in alternatives)


@dataclass(frozen=True)
class WindowFound:
    bot: str
    window: WindowInfo


@dataclass(frozen=True)
class WindowLost:
    bot: str
    window: WindowInfo


MatchEvent = Union[WindowFound, WindowLost]


class WindowMatcher:
    """Diffs enumerated windows against the windows each armed bot is bound to."""

    def __init__(self) -> None:
        self._patterns: Dict[str, Tuple[Pattern[str], ...]] = {}
        self._bound: Dict[str, Dict[WindowId, WindowInfo]] = {}

    def arm(self, defn: BotDefinition) -> None:
        if defn.name in self._patterns:
            return
        self._patterns[defn.name] = compile_pattern(defn.window_pattern, bot=defn.name)
        self._bound[defn.name] = {}
        logger.debug("armed %s with pattern %r", defn.name, defn.window_pattern)

    def disarm(self, name: str) -> List[WindowInfo]:
        """Stop matching for ``name``; returns the windows it was bound to."""
        self._patterns.pop(name, None)
        bound = self._bound.pop(name, {})
        return list(bound.values())

    def is_armed(self, name: str) -> bool:
        return name in self._patterns

    def bound_windows(self, name: str) -> Set[WindowId]:
        return set(self._bound.get(name, {}))

    def scan(self, windows: Iterable[WindowInfo]) -> List[MatchEvent]:
        current: Dict[WindowId, WindowInfo] = {}
        for w in windows:
            current.setdefault(w.window_id, w)

        events: List[MatchEvent] = []
        for name, alternatives in self._patterns.items():
            bound = self._bound[name]
            matched = {wid for wid, w in current.items() if title_matches(w.title, alternatives)}

            for wid in sorted(set(bound) - matched):
                events.append(WindowLost(name, bound.pop(wid)))
            for wid in sorted(matched - set(bound)):
                bound[wid] = current[wid]
                events.append(WindowFound(name, current[wid]))

        for ev in events:
            logger.info(
                "%s %s: %r (id %s)",
                "found" if isinstance(ev, WindowFound) else "lost",
                ev.bot,
                ev.window.title,
                ev.window.window_id,
            )
        return events
