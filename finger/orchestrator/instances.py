from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ..config import EngineOptions
from ..jsonlog import JsonEventLog
from .errors import BotError, CallbackError, LoadError
from .interfaces import BotCallbacks, BotDefinition, InstanceState, WindowBackend, WindowId, WindowInfo
from .loader import ScriptEnvironment, create_environment, read_callbacks
from .sandbox import ActuationLocks, FrameGuard, HostFunctions, WindowProxy, call_in_frame, call_script

if TYPE_CHECKING:
    from .scheduler import Scheduler


logger = logging.getLogger("finger.instances")


def instance_id_for(bot_name: str, window_id: WindowId) -> str:
    return f"{bot_name}-{window_id}"


@dataclass(eq=False)
class BotInstance:
    """One bot bound to one window, with its own script environment."""

    instance_id: str
    bot: BotDefinition
    window: WindowInfo
    guard: FrameGuard
    win: WindowProxy
    env: Optional[ScriptEnvironment] = None
    callbacks: Optional[BotCallbacks] = None
    state: InstanceState = InstanceState.CREATED
    started: bool = False
    next_due: float = 0.0
    status: str = ""
    last_error: Optional[str] = None
    tick_count: int = 0
    last_cooldown_ms: Optional[int] = None
    start_task: Optional["asyncio.Task[None]"] = None
    # Serializes start/tick/reset/stop for this instance.
    call_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def bot_name(self) -> str:
        return self.bot.name

    @property
    def window_id(self) -> WindowId:
        return self.window.window_id

    def mark_failed(self, error: BotError) -> None:
        self.state = InstanceState.FAILED
        self.last_error = str(error)

    def mark_ok(self) -> None:
        if self.state == InstanceState.FAILED and self.started:
            self.state = InstanceState.RUNNING
        self.last_error = None

    def summary(self) -> Dict[str, Any]:
        return {
            "instance_id": self.instance_id,
            "bot": self.bot.name,
            "window_id": self.window.window_id,
            "window_title": self.window.title,
            "state": self.state.value,
            "status": self.status,
            "error": self.last_error,
            "ticks": self.tick_count,
            "misuses": self.guard.misuse_count,
        }


async def refresh_status(inst: BotInstance, timeout_s: float = 0.0) -> None:
    """Cache the script's get_status() result; failures keep the old value."""

    cb = inst.callbacks.get_status if inst.callbacks is not None else None
    if cb is None:
        return
    try:
        value = await call_script("get_status", cb, timeout_s=timeout_s)
    except Exception as exc:
        logger.warning("%s: get_status failed: %s: %s", inst.instance_id, type(exc).__name__, exc)
        return
    inst.status = "" if value is None else str(value)


class InstanceManager:
    """Owns the live (bot, window) pairings."""

    def __init__(
        self,
        backend: WindowBackend,
        scheduler: "Scheduler",
        options: EngineOptions,
        locks: ActuationLocks,
        events: Optional[JsonEventLog] = None,
    ) -> None:
        self._backend = backend
        self._scheduler = scheduler
        self._options = options
        self._locks = locks
        self._events = events or JsonEventLog(None)
        self._instances: Dict[str, BotInstance] = {}

    def get(self, instance_id: str) -> Optional[BotInstance]:
        return self._instances.get(instance_id)

    def all(self) -> List[BotInstance]:
        return list(self._instances.values())

    def for_bot(self, bot_name: str) -> List[BotInstance]:
        return [i for i in self._instances.values() if i.bot.name == bot_name]

    def find(self, bot_name: str, window_id: WindowId) -> Optional[BotInstance]:
        return self._instances.get(instance_id_for(bot_name, window_id))

    def __len__(self) -> int:
        return len(self._instances)

    async def create(self, defn: BotDefinition, window: WindowInfo) -> BotInstance:
        """Bind ``defn`` to ``window`` and launch its ``start()`` in the background.

        The instance is registered immediately in ``CREATED`` state; it turns
        ``RUNNING`` (and is scheduled) once ``start()`` returns, or ``FAILED``.
        Use :meth:`wait_started` to wait for that.
        """

        iid = instance_id_for(defn.name, window.window_id)
        existing = self._instances.get(iid)
        if existing is not None:
            return existing

        guard = FrameGuard(iid)
        win = WindowProxy(iid, window, self._backend, guard, self._locks)
        inst = BotInstance(instance_id=iid, bot=defn, window=window, guard=guard, win=win)
        self._instances[iid] = inst

        env: Optional[ScriptEnvironment] = None
        try:
            env = create_environment(defn.name, defn.path, HostFunctions(iid, self._options.sleep_jitter), win)
            _, _, callbacks = read_callbacks(env)
        except LoadError as exc:
            if env is not None:
                env.dispose()
            inst.mark_failed(exc)
            logger.error("%s: failed to load: %s", iid, exc)
            self._events.log("instance_error", instance=iid, stage="load", error=str(exc))
            return inst

        inst.env = env
        inst.callbacks = callbacks
        inst.start_task = asyncio.create_task(self._start(inst), name=f"finger-start:{iid}")
        return inst

    async def _start(self, inst: BotInstance) -> None:
        callbacks = inst.callbacks
        if callbacks is None:
            return
        start = callbacks.start
        iid = inst.instance_id
        timeout_s = self._options.callback_timeout_s

        async with inst.call_lock:
            if start is not None:
                try:
                    await call_in_frame(inst.guard, "start", start, inst.win, timeout_s=timeout_s)
                except Exception as exc:
                    err = CallbackError.wrap(inst.bot.name, "start", exc, timeout_s)
                    inst.mark_failed(err)
                    logger.error("%s: start failed, not scheduling: %s", iid, err)
                    self._events.log("instance_error", instance=iid, stage="start", error=str(err))
                    return

            inst.started = True
            if self._instances.get(iid) is not inst:
                # Destroyed while start() ran; destroy() calls stop() next.
                return
            inst.state = InstanceState.RUNNING
            await refresh_status(inst, timeout_s)
            self._scheduler.register(inst)
        logger.info("%s: started on %r", iid, inst.window.title)
        self._events.log("instance_started", instance=iid, window=inst.window.title)

    async def wait_started(self, inst: BotInstance) -> None:
        if inst.start_task is not None:
            await asyncio.wait({inst.start_task})

    async def destroy(self, inst: BotInstance, reason: str = "") -> None:
        if self._instances.get(inst.instance_id) is not inst:
            return
        del self._instances[inst.instance_id]

        # A pending start() and an in-flight tick are both allowed to return.
        await self.wait_started(inst)
        await self._scheduler.unregister(inst)

        async with inst.call_lock:
            stop = inst.callbacks.stop if inst.callbacks is not None else None
            if inst.started and stop is not None:
                timeout_s = self._options.callback_timeout_s
                try:
                    await call_in_frame(inst.guard, "stop", stop, timeout_s=timeout_s)
                except Exception as exc:
                    err = CallbackError.wrap(inst.bot.name, "stop", exc, timeout_s)
                    logger.error("%s: stop failed (ignored): %s", inst.instance_id, err)
                    self._events.log("instance_error", instance=inst.instance_id, stage="stop", error=str(err))
            inst.state = InstanceState.STOPPED
            if inst.env is not None:
                inst.env.dispose()

        if not any(i.window_id == inst.window_id for i in self._instances.values()):
            self._locks.discard(inst.window_id)
        logger.info("%s: stopped%s", inst.instance_id, f" ({reason})" if reason else "")
        self._events.log("instance_stopped", instance=inst.instance_id, reason=reason)

    async def destroy_bot(self, bot_name: str, reason: str = "") -> int:
        victims = self.for_bot(bot_name)
        await asyncio.gather(*(self.destroy(i, reason) for i in victims))
        return len(victims)

    async def shutdown(self, reason: str = "shutdown") -> None:
        victims = self.all()
        await asyncio.gather(*(self.destroy(i, reason) for i in victims))

    async def reset(self, instance_id: str) -> bool:
        """Run the script's reset(); the environment and window binding are kept.

        Returns False when reset failed or the instance never started.
        """

        inst = self._instances.get(instance_id)
        if inst is None:
            raise KeyError(f"unknown instance: {instance_id}")
        if not inst.started or inst.callbacks is None:
            logger.warning("%s: reset ignored, instance never started", instance_id)
            return False

        cb = inst.callbacks.reset
        timeout_s = self._options.callback_timeout_s
        async with inst.call_lock:
            if cb is None:
                return True
            try:
                await call_in_frame(inst.guard, "reset", cb, timeout_s=timeout_s)
            except Exception as exc:
                err = CallbackError.wrap(inst.bot.name, "reset", exc, timeout_s)
                inst.mark_failed(err)
                logger.error("%s: reset failed: %s", instance_id, err)
                self._events.log("reset_error", instance=instance_id, error=str(err))
                return False
            inst.mark_ok()
            await refresh_status(inst, timeout_s)
        logger.info("%s: reset", instance_id)
        self._events.log("instance_reset", instance=instance_id)
        return True

    def status_query(self, instance_id: str) -> str:
        inst = self._instances.get(instance_id)
        if inst is None:
            raise KeyError(f"unknown instance: {instance_id}")
        has_status = (
            inst.callbacks.get_status is not None if inst.callbacks is not None else inst.bot.has_status
        )
        if not has_status:
            return self._options.status_placeholder
        return inst.status
