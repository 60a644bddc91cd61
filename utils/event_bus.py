# --------------------------------------------------------------------
# utils/event_bus.py
# --------------------------------------------------------------------
"""A super-light, asyncio-based pub/sub owned by the engine.

Inside a running loop, events go through a queue drained by a background
worker so publishers never wait on listeners. Without a running loop
(plain synchronous callers, tests) handlers are invoked inline."""
from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

_Handler = Callable[[Any], Union[Awaitable[None], None]]

logger = logging.getLogger(__name__)


class Topics:
    INITIALIZED = "initialized"
    POSITION_OPENED = "position_opened"
    POSITION_CLOSED = "position_closed"
    READY_FOR_LIVE = "ready_for_live"
    MODE_CHANGED = "mode_changed"
    RUNNING_CHANGED = "running_changed"


class EventBus:
    def __init__(self) -> None:
        self._subs: Dict[str, List[_Handler]] = defaultdict(list)
        self._q: Optional[asyncio.Queue] = None
        # background task started lazily on first publish inside a loop
        self._task: Optional[asyncio.Task] = None

    # -------------------------------------------------------------- #
    def subscribe(self, topic: str, fn: _Handler) -> None:
        self._subs[topic].append(fn)

    def unsubscribe(self, topic: str, fn: _Handler) -> None:
        try:
            self._subs[topic].remove(fn)
        except ValueError:
            pass

    def publish(self, topic: str, payload: object = None) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._dispatch_inline(topic, payload)
            return
        if self._task is None or self._task.done() or self._task.get_loop() is not loop:
            self._q = asyncio.Queue()
            self._task = loop.create_task(self._worker(self._q))
        self._q.put_nowait((topic, payload))

    async def drain(self) -> None:
        """Wait until every queued event has been delivered."""
        if self._q is not None and self._task is not None and not self._task.done():
            await self._q.join()

    async def close(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._q = None

    # -------------------------------------------------------------- #
    def _dispatch_inline(self, topic: str, payload: object) -> None:
        for fn in list(self._subs.get(topic, [])):
            try:
                res = fn(payload)
                if asyncio.iscoroutine(res):
                    asyncio.run(res)
            except Exception:  # keep publisher alive
                logger.exception("[event_bus] handler error on %s", topic)

    async def _worker(self, q: asyncio.Queue) -> None:
        while True:
            topic, payload = await q.get()
            try:
                for fn in list(self._subs.get(topic, [])):
                    try:
                        res = fn(payload)
                        if asyncio.iscoroutine(res):
                            await res
                    except Exception:  # keep bus alive
                        logger.exception("[event_bus] handler error on %s", topic)
            finally:
                q.task_done()
