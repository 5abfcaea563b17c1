from __future__ import annotations

import asyncio
import logging
import math
import numbers
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..config import EngineOptions
from ..jsonlog import JsonEventLog
from .errors import CallbackError
from .instances import BotInstance, refresh_status
from .interfaces import WindowBackend, WindowId
from .sandbox import ActuationLocks, call_in_frame


logger = logging.getLogger("finger.scheduler")


@dataclass(eq=False)
class _Slot:
    inst: BotInstance
    task: Optional["asyncio.Task[None]"] = None
    busy: bool = False
    cancelled: bool = False


class Scheduler:
    """Drives one independent tick loop per registered instance.

    Each instance gets a single asyncio task, so its ticks are strictly
    sequential. Unregistering lets a running tick finish and only stops the
    next one from being armed.
    """

    def __init__(
        self,
        backend: WindowBackend,
        options: EngineOptions,
        locks: ActuationLocks,
        events: Optional[JsonEventLog] = None,
    ) -> None:
        self._backend = backend
        self._options = options
        self._locks = locks
        self._events = events or JsonEventLog(None)
        self._slots: Dict[str, _Slot] = {}

    def compute_cooldown(self, value: Any) -> int:
        """Milliseconds until the next tick for a tick() return value."""

        opts = self._options
        if isinstance(value, bool) or not isinstance(value, numbers.Real):
            return opts.default_cooldown_ms
        value = float(value)
        if math.isnan(value) or value <= 0:
            return opts.default_cooldown_ms
        if math.isinf(value):
            return opts.max_cooldown_ms
        return int(min(max(round(value), opts.min_cooldown_ms), opts.max_cooldown_ms))

    def register(self, inst: BotInstance) -> None:
        if inst.instance_id in self._slots:
            return
        slot = _Slot(inst)
        inst.next_due = asyncio.get_running_loop().time()
        slot.task = asyncio.create_task(self._drive(slot), name=f"finger-tick:{inst.instance_id}")
        self._slots[inst.instance_id] = slot
        logger.debug("%s: registered", inst.instance_id)

    async def unregister(self, inst: BotInstance) -> None:
        slot = self._slots.pop(inst.instance_id, None)
        if slot is None or slot.task is None:
            return
        slot.cancelled = True
        if not slot.busy:
            slot.task.cancel()
        await asyncio.wait({slot.task})
        logger.debug("%s: unregistered", inst.instance_id)

    def is_registered(self, inst: BotInstance) -> bool:
        return inst.instance_id in self._slots

    def __len__(self) -> int:
        return len(self._slots)

    async def _drive(self, slot: _Slot) -> None:
        loop = asyncio.get_running_loop()
        inst = slot.inst
        while not slot.cancelled:
            delay = inst.next_due - loop.time()
            if delay > 0:
                await asyncio.sleep(delay)
                continue
            slot.busy = True
            try:
                await self.run_tick(inst)
            except Exception:
                # run_tick already contains script failures; this is an engine bug.
                logger.exception("%s: scheduler error", inst.instance_id)
                inst.next_due = loop.time() + self._options.default_cooldown_ms / 1000.0
            finally:
                slot.busy = False

    async def _activate(self, wid: WindowId) -> None:
        try:
            async with self._locks.get(wid):
                ok = await asyncio.to_thread(self._backend.activate, wid)
        except Exception as exc:
            logger.warning("activate(%s) failed: %s", wid, exc)
            return
        if not ok:
            logger.debug("activate(%s) returned False", wid)

    async def _deactivate(self, wid: WindowId) -> None:
        try:
            async with self._locks.get(wid):
                await asyncio.to_thread(self._backend.deactivate, wid)
        except Exception as exc:
            logger.warning("deactivate(%s) failed: %s", wid, exc)

    async def run_tick(self, inst: BotInstance) -> int:
        """Run one tick now and arm the next one; returns the cooldown applied."""

        loop = asyncio.get_running_loop()
        opts = self._options
        timeout_s = opts.callback_timeout_s
        wid = inst.window_id
        callbacks = inst.callbacks
        if callbacks is None:
            raise RuntimeError(f"{inst.instance_id}: scheduled without callbacks")

        async with inst.call_lock:
            await self._activate(wid)
            if opts.activate_settle_ms > 0:
                await asyncio.sleep(opts.activate_settle_ms / 1000.0)
            try:
                value = await call_in_frame(inst.guard, "tick", callbacks.tick, timeout_s=timeout_s)
            except Exception as exc:
                err = CallbackError.wrap(inst.bot.name, "tick", exc, timeout_s)
                inst.mark_failed(err)
                cooldown = opts.default_cooldown_ms
                logger.error("%s: tick failed: %s", inst.instance_id, err)
                self._events.log("tick_error", instance=inst.instance_id, error=str(err))
            else:
                cooldown = self.compute_cooldown(value)
                inst.mark_ok()
            finally:
                await self._deactivate(wid)

            inst.tick_count += 1
            inst.last_cooldown_ms = cooldown
            await refresh_status(inst, timeout_s)

        inst.next_due = loop.time() + cooldown / 1000.0
        logger.debug("%s: tick #%d done, next in %d ms", inst.instance_id, inst.tick_count, cooldown)
        return cooldown

    async def drain(self) -> None:
        """Unregister every instance, letting in-flight ticks finish."""

        for slot in list(self._slots.values()):
            await self.unregister(slot.inst)
