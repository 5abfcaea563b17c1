from __future__ import annotations

from pathlib import Path

import pytest

from finger.orchestrator.errors import PatternError
from finger.orchestrator.interfaces import BotDefinition, WindowInfo
from finger.orchestrator.matcher import WindowFound, WindowLost, WindowMatcher, compile_pattern, title_matches


def _defn(name: str, pattern: str) -> BotDefinition:
    return BotDefinition(name=name, path=Path(name), window_pattern=pattern)


def test_any_alternative_matches_case_insensitively() -> None:
    alts = compile_pattern("Foo|foo")
    assert len(alts) == 2
    assert title_matches("FooBar", alts)
    assert title_matches("xxFOOxx", alts)
    assert not title_matches("Bar", alts)
    assert not title_matches("", alts)


def test_unicode_alternatives() -> None:
    alts = compile_pattern("僵尸|zombie")
    assert title_matches("向僵尸开炮", alts)
    assert title_matches("Fire the Zombies", alts)


@pytest.mark.parametrize("pattern", ["", "a||b", "a|", "|a", "a|(b", "a|[z-a]"])
def test_bad_alternatives_are_reported(pattern: str) -> None:
    with pytest.raises(PatternError):
        compile_pattern(pattern, bot="demo")


def test_group_with_pipe_is_split_textually() -> None:
    # "(a|b)" splits into "(a" and "b)", neither of which compiles.
    with pytest.raises(PatternError):
        compile_pattern("(a|b)")


def test_scan_emits_found_once_then_lost() -> None:
    m = WindowMatcher()
    m.arm(_defn("demo", "Foo|foo"))
    foo = WindowInfo(1, "FooBar")
    other = WindowInfo(2, "Notepad")

    events = m.scan([foo, other])
    assert events == [WindowFound("demo", foo)]
    assert m.bound_windows("demo") == {1}

    # Already bound: not matched again.
    assert m.scan([foo, other]) == []

    assert m.scan([other]) == [WindowLost("demo", foo)]
    assert m.bound_windows("demo") == set()


def test_same_window_matches_several_bots() -> None:
    m = WindowMatcher()
    m.arm(_defn("alpha", "Bar"))
    m.arm(_defn("beta", "bar"))
    bar = WindowInfo(7, "Bar")

    events = m.scan([bar])
    assert sorted((e.bot, e.window.window_id) for e in events) == [("alpha", 7), ("beta", 7)]
    assert all(isinstance(e, WindowFound) for e in events)


def test_multiple_windows_for_one_bot() -> None:
    m = WindowMatcher()
    m.arm(_defn("wow", "World of Warcraft|wow"))
    wins = [WindowInfo(10001, "World of Warcraft"), WindowInfo(10002, "World of Warcraft")]
    events = m.scan(wins)
    assert [e.window.window_id for e in events] == [10001, 10002]


def test_disarm_forgets_bound_windows() -> None:
    m = WindowMatcher()
    m.arm(_defn("demo", "Foo"))
    foo = WindowInfo(1, "Foo")
    m.scan([foo])

    assert m.disarm("demo") == [foo]
    assert not m.is_armed("demo")
    assert m.scan([foo]) == []

    # Re-arming binds the window afresh.
    m.arm(_defn("demo", "Foo"))
    assert m.scan([foo]) == [WindowFound("demo", foo)]
