from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Mapping, Optional


@dataclass(eq=False)
class BotError(Exception):
    """Base for every failure attributed to a single bot.

    Carries the bot name so callers can isolate the failure to that bot
    without inspecting the message.
    """

    bot: str
    code: str = "error"
    message: str = ""
    details: Optional[Mapping[str, Any]] = None

    def __str__(self) -> str:
        base = f"{self.bot}:{self.code}"
        if self.message:
            base += f": {self.message}"
        return base


@dataclass(eq=False)
class LoadError(BotError):
    """The entry unit is missing, raised at import time, or is malformed."""

    code: str = "load_failed"


@dataclass(eq=False)
class PatternError(BotError):
    """One alternative of a window pattern is empty or not a valid regex."""

    code: str = "bad_pattern"


@dataclass(eq=False)
class CallbackError(BotError):
    """A script callback raised (or exceeded the watchdog)."""

    code: str = "callback_failed"
    callback: str = ""

    @classmethod
    def wrap(cls, bot: str, callback: str, exc: BaseException, timeout_s: float = 0.0) -> "CallbackError":
        if isinstance(exc, asyncio.TimeoutError) and timeout_s > 0:
            err = cls(bot, code="timeout", message=f"{callback}() exceeded {timeout_s:g}s", callback=callback)
        else:
            err = cls(bot, message=f"{type(exc).__name__}: {exc}", callback=callback)
        err.__cause__ = exc
        return err

    def __str__(self) -> str:
        where = f"{self.bot}.{self.callback}" if self.callback else self.bot
        if self.message:
            return f"{where}: {self.message}"
        return f"{where}: {self.code}"


class ScriptCancelled(Exception):
    """A callback raised CancelledError while the engine had not cancelled it.

    Typically a script awaiting a task it cancelled itself. Raised in place of
    the CancelledError so it is handled like any other script failure.
    """

    def __init__(self, callback: str) -> None:
        super().__init__(f"{callback}() raised CancelledError")
        self.callback = callback


class HandleMisuseWarning(UserWarning):
    """A window capability was used outside the call frame that owns it."""

    def __init__(self, instance_id: str, operation: str, reason: str) -> None:
        super().__init__(f"{instance_id}: win.{operation} rejected ({reason})")
        self.instance_id = instance_id
        self.operation = operation
        self.reason = reason
