from __future__ import annotations

import asyncio
import concurrent.futures
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Dict, Iterable, List, Optional, Set, Tuple

from .. import control_state
from ..config import EngineOptions
from ..jsonlog import JsonEventLog
from .errors import BotError
from .instances import InstanceManager
from .interfaces import BotDefinition, WindowBackend
from .loader import discover, load_definition
from .matcher import MatchEvent, WindowFound, WindowLost, WindowMatcher
from .sandbox import ActuationLocks
from .scheduler import Scheduler


logger = logging.getLogger("finger.engine")


@dataclass
class BotSummary:
    name: str
    description: str
    window_pattern: str
    enabled: bool
    instances: int
    error: Optional[str] = None
    recent_errors: int = 0


@dataclass
class InstanceSummary:
    instance_id: str
    bot: str
    window_id: int
    window_title: str
    state: str
    status: str
    error: Optional[str]
    ticks: int
    misuses: int
    recent_errors: int = 0


class Engine:
    """The control surface: discovery, enable/disable, reset, status and drain.

    Every command runs on the event loop and is serialized by one command
    lock, so a rescan never races an enable or a shutdown. Use
    :class:`ThreadSafeControl` to issue commands from another thread.
    """

    def __init__(
        self,
        backend: WindowBackend,
        options: Optional[EngineOptions] = None,
        root: Optional[Path] = None,
        events: Optional[JsonEventLog] = None,
        persist: bool = False,
    ) -> None:
        self.root = Path(root) if root is not None else Path.cwd()
        self.options = options or EngineOptions()
        self.backend = backend
        self.events = events or JsonEventLog(None)
        self.locks = ActuationLocks()
        self.scheduler = Scheduler(backend, self.options, self.locks, self.events)
        self.instances = InstanceManager(backend, self.scheduler, self.options, self.locks, self.events)
        self.matcher = WindowMatcher()
        self.definitions: Dict[str, BotDefinition] = {}
        self.load_errors: Dict[str, BotError] = {}
        self.enabled: Set[str] = set()
        self._persist = persist
        self._command_lock = asyncio.Lock()
        self._rescan_task: Optional["asyncio.Task[None]"] = None
        self._closed = False
        self._paused = False
        self._wake = asyncio.Event()
        self._stop_requested = asyncio.Event()
        self.loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def bots_root(self) -> Path:
        return self.options.bots_path(self.root)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def paused(self) -> bool:
        return self._paused

    def discover(self) -> List[BotDefinition]:
        defs, errors = discover(self.bots_root, self.options.sleep_jitter)
        self.definitions = {d.name: d for d in defs}
        self.load_errors = dict(errors)
        for name, err in errors.items():
            self.events.log("load_error", bot=name, error=str(err))
        return defs

    async def start(self, enable: Iterable[str] = ()) -> None:
        """Begin periodic window re-scans and enable the given bots.

        With ``persist`` set, bots left enabled by the previous run are
        enabled as well.
        """

        self.loop = asyncio.get_running_loop()
        if not self.definitions and not self.load_errors:
            self.discover()

        names = list(enable)
        if self._persist:
            names.extend(control_state.get_enabled_bots(self.root))
        for name in dict.fromkeys(names):
            if name not in self.definitions:
                logger.warning("cannot enable %s: no such bot (or it failed to load)", name)
                continue
            await self.enable(name)

        if self._rescan_task is None:
            self._rescan_task = asyncio.create_task(self._rescan_loop(), name="finger-rescan")
        logger.info("engine started with %d bot(s) enabled", len(self.enabled))

    def _save_enabled(self) -> None:
        if not self._persist:
            return
        try:
            control_state.set_enabled_bots(self.root, self.enabled)
        except OSError as exc:
            logger.warning("could not persist enabled bots: %s", exc)

    async def enable(self, name: str) -> None:
        """Re-arm matching for ``name``; instances appear for windows that match now."""

        defn = self.definitions.get(name)
        if defn is None:
            raise KeyError(f"unknown bot: {name}")
        async with self._command_lock:
            if self._closed:
                return
            self.enabled.add(name)
            self._save_enabled()
            logger.info("enabled %s", name)
            self.events.log("bot_enabled", bot=name)
            if self._paused:
                return
            self.matcher.arm(defn)
            await self._rescan_locked()

    async def disable(self, name: str) -> int:
        """Destroy every instance of ``name``; returns how many were stopped."""

        async with self._command_lock:
            self.matcher.disarm(name)
            was_enabled = name in self.enabled
            self.enabled.discard(name)
            if was_enabled:
                self._save_enabled()
            count = await self.instances.destroy_bot(name, reason="disabled")
            logger.info("disabled %s (%d instance(s) stopped)", name, count)
            self.events.log("bot_disabled", bot=name, instances=count)
            return count

    async def restart(self, name: str) -> int:
        """Recreate the instances of an enabled bot with fresh environments.

        The descriptor is reloaded from disk first; if it no longer loads the
        bot is left disabled.
        """

        if name not in self.definitions:
            raise KeyError(f"unknown bot: {name}")
        async with self._command_lock:
            if name not in self.enabled or self._closed or self._paused:
                return 0
            logger.info("restarting %s", name)
            self.matcher.disarm(name)
            await self.instances.destroy_bot(name, reason="restart")
            try:
                defn = load_definition(self.definitions[name].path, self.bots_root, self.options.sleep_jitter)
            except BotError as exc:
                logger.error("restart of %s failed, bot disabled: %s", name, exc)
                self.load_errors[name] = exc
                self.enabled.discard(name)
                self._save_enabled()
                self.events.log("restart_error", bot=name, error=str(exc))
                return 0
            self.load_errors.pop(name, None)
            self.definitions[name] = defn
            self.matcher.arm(defn)
            await self._rescan_locked()
            return len(self.instances.for_bot(name))

    async def reset_instance(self, instance_id: str) -> bool:
        return await self.instances.reset(instance_id)

    async def pause(self) -> int:
        """Stop every live instance (``stop()`` included) but keep the enabled set.

        Nothing is matched again until :meth:`resume`. Returns how many
        instances were stopped.
        """

        async with self._command_lock:
            if self._closed or self._paused:
                return 0
            self._paused = True
            for name in self.enabled:
                self.matcher.disarm(name)
            count = len(self.instances)
            await self.instances.shutdown(reason="paused")
            logger.info("paused (%d instance(s) stopped)", count)
            self.events.log("engine_paused", instances=count)
            return count

    async def resume(self) -> int:
        """Re-arm every enabled bot; instances get fresh environments."""

        async with self._command_lock:
            if self._closed or not self._paused:
                return 0
            self._paused = False
            for name in sorted(self.enabled):
                defn = self.definitions.get(name)
                if defn is not None:
                    self.matcher.arm(defn)
            await self._rescan_locked()
            count = len(self.instances)
            logger.info("resumed (%d instance(s) created)", count)
            self.events.log("engine_resumed", instances=count)
            return count

    async def toggle_pause(self) -> bool:
        """Pause if running, resume if paused; returns the new paused flag."""

        if self._paused:
            await self.resume()
        else:
            await self.pause()
        return self._paused

    def status_query(self, instance_id: str) -> str:
        return self.instances.status_query(instance_id)

    async def rescan(self) -> List[MatchEvent]:
        async with self._command_lock:
            if self._closed:
                return []
            return await self._rescan_locked()

    async def _rescan_locked(self) -> List[MatchEvent]:
        try:
            windows = await asyncio.to_thread(self.backend.list_windows)
        except Exception as exc:
            logger.warning("window enumeration failed: %s", exc)
            return []
        events = self.matcher.scan(windows)

        lost = [ev for ev in events if isinstance(ev, WindowLost)]
        found = [ev for ev in events if isinstance(ev, WindowFound)]
        destroy: List[Awaitable[None]] = []
        for ev in lost:
            inst = self.instances.find(ev.bot, ev.window.window_id)
            if inst is not None:
                destroy.append(self.instances.destroy(inst, reason="window lost"))
        await asyncio.gather(*destroy)

        create = [
            self.instances.create(self.definitions[ev.bot], ev.window)
            for ev in found
            if ev.bot in self.definitions
        ]
        await asyncio.gather(*create)
        return events

    async def _rescan_loop(self) -> None:
        interval = self.options.rescan_interval_s
        while not self._closed:
            try:
                await asyncio.wait_for(self._wake.wait(), interval)
            except asyncio.TimeoutError:
                pass
            if self._closed:
                break
            try:
                await self.rescan()
            except Exception:
                logger.exception("rescan failed")

    async def shutdown(self) -> None:
        """Stop every live instance (``stop()`` included) before returning."""

        if self._closed:
            return
        # A rescan already in progress is allowed to finish.
        self._closed = True
        self._wake.set()
        if self._rescan_task is not None:
            await asyncio.wait({self._rescan_task})
            self._rescan_task = None
        async with self._command_lock:
            for name in list(self.enabled):
                self.matcher.disarm(name)
            count = len(self.instances)
            await self.instances.shutdown()
            await self.scheduler.drain()
        logger.info("engine shut down (%d instance(s) stopped)", count)
        self.events.log("engine_shutdown", instances=count)

    def request_stop(self) -> None:
        """Make :meth:`run_until` return; safe to call more than once."""
        self._stop_requested.set()

    async def run_until(self, duration_s: Optional[float] = None) -> None:
        """Run until :meth:`request_stop` is called or ``duration_s`` elapses, then drain."""

        try:
            if duration_s is not None and duration_s > 0:
                try:
                    await asyncio.wait_for(self._stop_requested.wait(), duration_s)
                except asyncio.TimeoutError:
                    pass
            else:
                await self._stop_requested.wait()
        finally:
            await self.shutdown()

    def snapshot(self) -> Tuple[List[BotSummary], List[InstanceSummary]]:
        bots: List[BotSummary] = []
        for name in sorted(set(self.definitions) | set(self.load_errors)):
            defn = self.definitions.get(name)
            err = self.load_errors.get(name)
            bots.append(
                BotSummary(
                    name=name,
                    description=defn.description if defn else "",
                    window_pattern=defn.window_pattern if defn else "",
                    enabled=name in self.enabled,
                    instances=len(self.instances.for_bot(name)),
                    error=str(err) if err is not None else None,
                    recent_errors=self.events.error_rate(name),
                )
            )
        instances: List[InstanceSummary] = []
        for inst in sorted(self.instances.all(), key=lambda i: i.instance_id):
            s = inst.summary()
            s["status"] = self.instances.status_query(inst.instance_id)
            s["recent_errors"] = self.events.error_rate(inst.instance_id)
            instances.append(InstanceSummary(**s))
        return bots, instances


class ThreadSafeControl:
    """Issue engine commands from threads other than the event loop's.

    The hotkey listener runs on its own thread; everything it does goes
    through here.
    """

    def __init__(self, engine: Engine, loop: asyncio.AbstractEventLoop) -> None:
        self._engine = engine
        self._loop = loop

    def _submit(self, coro: Any) -> "concurrent.futures.Future[Any]":
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def enable(self, name: str) -> "concurrent.futures.Future[Any]":
        return self._submit(self._engine.enable(name))

    def disable(self, name: str) -> "concurrent.futures.Future[Any]":
        return self._submit(self._engine.disable(name))

    def restart(self, name: str) -> "concurrent.futures.Future[Any]":
        return self._submit(self._engine.restart(name))

    def reset_instance(self, instance_id: str) -> "concurrent.futures.Future[Any]":
        return self._submit(self._engine.reset_instance(instance_id))

    def pause(self) -> "concurrent.futures.Future[Any]":
        return self._submit(self._engine.pause())

    def resume(self) -> "concurrent.futures.Future[Any]":
        return self._submit(self._engine.resume())

    def toggle_pause(self) -> "concurrent.futures.Future[Any]":
        return self._submit(self._engine.toggle_pause())

    def shutdown(self) -> "concurrent.futures.Future[Any]":
        return self._submit(self._engine.shutdown())

    def request_stop(self) -> None:
        self._loop.call_soon_threadsafe(self._engine.request_stop)

    def status_query(self, instance_id: str, timeout_s: float = 5.0) -> str:
        async def _query() -> str:
            return self._engine.status_query(instance_id)

        return self._submit(_query()).result(timeout_s)
