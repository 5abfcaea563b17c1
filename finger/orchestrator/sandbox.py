"""Capability objects injected into bot scripts.

A script sees exactly two host names:

- ``F``: ``await F.sleep(seconds)`` and ``F.log(message)``
- ``win``: ``await win.click(x, y)``, ``await win.tap(key)``,
  ``await win.type(text)``, ``await win.decodev2()`` and ``win.title``

Every ``win`` action returns a coroutine and does nothing until awaited, so a
plain ``def tick()`` cannot actuate anything directly; write ``async def
tick()`` instead. A ``win`` call left un-awaited when its callback returns is
logged as a warning.

``win`` is only honoured while the instance's own ``start``/``tick``/
``reset``/``stop`` call is running. Each such call opens a :class:`CallFrame`
stored in a context variable; asyncio copies context into tasks created from
inside the call, so a detached task still *carries* the frame, but the frame
is closed once the call returns and the proxy rejects it from then on.
Threads do not inherit the context at all and are rejected outright.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import random
from collections import deque
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Coroutine, Deque, Dict, Iterator, List, Optional, Tuple

from ..hint import decode_hint_v2
from .bbox import BBox, check_ratio
from .errors import HandleMisuseWarning, ScriptCancelled
from .interfaces import WindowBackend, WindowId, WindowInfo


logger = logging.getLogger("finger.sandbox")
bot_logger = logging.getLogger("finger.bot")

# Window-relative strip the hint overlay is painted into.
HINT_RECT = BBox(left=0, top=0, width=150, height=80)

MIN_SLEEP_S = 0.01

_current_frame: ContextVar[Optional["CallFrame"]] = ContextVar("finger_call_frame", default=None)


@dataclass(eq=False)
class CallFrame:
    instance_id: str
    callback: str
    open: bool = True
    issued: List[Tuple[str, Coroutine[Any, Any, Any]]] = field(default_factory=list)


class FrameGuard:
    """Tracks the single call frame an instance's ``win`` is valid in."""

    def __init__(self, instance_id: str, history: int = 50) -> None:
        self.instance_id = instance_id
        self._active: Optional[CallFrame] = None
        self.misuse_count = 0
        self.misuses: Deque[HandleMisuseWarning] = deque(maxlen=history)
        self.unawaited_count = 0

    @property
    def active(self) -> Optional[CallFrame]:
        return self._active

    @contextlib.contextmanager
    def frame(self, callback: str) -> Iterator[CallFrame]:
        frame = CallFrame(self.instance_id, callback)
        token = _current_frame.set(frame)
        self._active = frame
        try:
            yield frame
        finally:
            frame.open = False
            if self._active is frame:
                self._active = None
            _current_frame.reset(token)
            self._report_unawaited(frame)

    def track(self, operation: str, coro: Coroutine[Any, Any, Any]) -> Coroutine[Any, Any, Any]:
        """Remember a ``win`` coroutine created inside the open frame."""
        frame = _current_frame.get()
        if frame is not None and frame.open and frame is self._active:
            frame.issued.append((operation, coro))
        return coro

    def _report_unawaited(self, frame: CallFrame) -> None:
        for operation, coro in frame.issued:
            if inspect.getcoroutinestate(coro) == inspect.CORO_CREATED:
                self.unawaited_count += 1
                logger.warning(
                    "%s: win.%s() was not awaited before %s() returned; it has no effect",
                    self.instance_id,
                    operation,
                    frame.callback,
                )
        frame.issued.clear()

    def permit(self, operation: str) -> bool:
        frame = _current_frame.get()
        if frame is None:
            reason = "no active call frame"
        elif not frame.open:
            reason = f"{frame.callback}() already returned"
        elif frame is not self._active:
            reason = "frame belongs to another call"
        else:
            return True

        warning = HandleMisuseWarning(self.instance_id, operation, reason)
        self.misuse_count += 1
        self.misuses.append(warning)
        logger.warning("%s", warning)
        return False


def _cancelled_by_engine() -> bool:
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0


async def call_in_frame(
    guard: FrameGuard,
    callback: str,
    fn: Callable[..., Any],
    *args: Any,
    timeout_s: float = 0.0,
) -> Any:
    """Invoke a script callback inside a fresh call frame.

    Plain functions run inline on the event loop; coroutine results are
    awaited, bounded by ``timeout_s`` when it is positive. A CancelledError
    the script raises on its own is turned into :class:`ScriptCancelled`;
    cancellation of the calling task still propagates.
    """

    with guard.frame(callback):
        return await call_script(callback, fn, *args, timeout_s=timeout_s)


async def call_script(name: str, fn: Callable[..., Any], *args: Any, timeout_s: float = 0.0) -> Any:
    """Call a script function and await its result if it is awaitable."""

    try:
        result = fn(*args)
        if inspect.isawaitable(result):
            if timeout_s > 0:
                result = await asyncio.wait_for(result, timeout_s)
            else:
                result = await result
    except asyncio.CancelledError as exc:
        if _cancelled_by_engine():
            raise
        raise ScriptCancelled(name) from exc
    return result


def jittered(seconds: float, jitter: float, rng: Optional[random.Random] = None) -> float:
    secs = max(0.0, float(seconds))
    spread = secs * max(0.0, jitter)
    if spread > 0:
        secs += (rng or random).uniform(-spread, spread)
    return max(MIN_SLEEP_S, secs)


class ActuationLocks:
    """One lock per physical window, shared by every instance bound to it."""

    def __init__(self) -> None:
        self._locks: Dict[WindowId, asyncio.Lock] = {}

    def get(self, window_id: WindowId) -> asyncio.Lock:
        lock = self._locks.get(window_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[window_id] = lock
        return lock

    def discard(self, window_id: WindowId) -> None:
        lock = self._locks.get(window_id)
        if lock is not None and not lock.locked():
            del self._locks[window_id]


class HostFunctions:
    """The ``F`` object."""

    def __init__(self, tag: str, jitter: float = 0.3, rng: Optional[random.Random] = None) -> None:
        self._tag = tag
        self._jitter = jitter
        self._rng = rng

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(jittered(seconds, self._jitter, self._rng))

    def log(self, message: Any) -> None:
        bot_logger.info("[%s] %s", self._tag, message)

    def __repr__(self) -> str:
        return f"<F {self._tag}>"


class WindowProxy:
    """The ``win`` object: one per instance, bound to one window."""

    def __init__(
        self,
        instance_id: str,
        window: Optional[WindowInfo],
        backend: Optional[WindowBackend],
        guard: FrameGuard,
        locks: Optional[ActuationLocks],
    ) -> None:
        self._instance_id = instance_id
        self._window = window
        self._backend = backend
        self._guard = guard
        self._locks = locks

    @classmethod
    def unbound(cls, label: str) -> "WindowProxy":
        """A proxy that rejects every call; used while reading metadata."""

        return cls(label, None, None, FrameGuard(label), None)

    @property
    def title(self) -> str:
        return self._window.title if self._window is not None else ""

    @property
    def window_id(self) -> Optional[WindowId]:
        return self._window.window_id if self._window is not None else None

    def _bound(self, operation: str) -> Optional[Tuple[WindowId, WindowBackend, ActuationLocks]]:
        if not self._guard.permit(operation):
            return None
        if self._window is None or self._backend is None or self._locks is None:
            logger.warning("%s: win.%s has no bound window", self._instance_id, operation)
            return None
        return self._window.window_id, self._backend, self._locks

    @staticmethod
    async def _actuate(locks: ActuationLocks, wid: WindowId, fn: Callable[..., Any], *args: Any) -> bool:
        async with locks.get(wid):
            return bool(await asyncio.to_thread(fn, wid, *args))

    def click(self, x_ratio: float, y_ratio: float) -> Awaitable[bool]:
        return self._guard.track("click", self._click(x_ratio, y_ratio))

    async def _click(self, x_ratio: float, y_ratio: float) -> bool:
        bound = self._bound("click")
        if bound is None:
            return False
        wid, backend, locks = bound
        xr = check_ratio(x_ratio, "x")
        yr = check_ratio(y_ratio, "y")
        return await self._actuate(locks, wid, backend.click_relative, xr, yr)

    def tap(self, key: str) -> Awaitable[bool]:
        return self._guard.track("tap", self._tap(key))

    async def _tap(self, key: str) -> bool:
        bound = self._bound("tap")
        if bound is None:
            return False
        wid, backend, locks = bound
        return await self._actuate(locks, wid, backend.tap, str(key))

    def type(self, text: str) -> Awaitable[bool]:
        return self._guard.track("type", self._type(text))

    async def _type(self, text: str) -> bool:
        bound = self._bound("type")
        if bound is None:
            return False
        wid, backend, locks = bound
        return await self._actuate(locks, wid, backend.type_text, str(text))

    def decodev2(self) -> Awaitable[Optional[str]]:
        return self._guard.track("decodev2", self._decodev2())

    async def _decodev2(self) -> Optional[str]:
        bound = self._bound("decodev2")
        if bound is None:
            return None
        wid, backend, _ = bound
        pixels = await asyncio.to_thread(backend.capture, wid, HINT_RECT)
        if pixels is None:
            return None
        return decode_hint_v2(pixels)

    def __repr__(self) -> str:
        return f"<win {self._instance_id} {self.title!r}>"
