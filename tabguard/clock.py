"""
Timer abstraction — one-shot delayed callbacks plus the wall clock they run on.

Focus auto-stop and the schedule tick never touch asyncio directly; they go
through a Scheduler so tests can swap in a simulated clock.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Protocol, Set, Union

logger = logging.getLogger(__name__)

Callback = Callable[[], Union[None, Awaitable[None]]]


class Scheduler(Protocol):
    def now(self) -> datetime: ...

    def after(self, delay_seconds: float, callback: Callback) -> Any: ...

    def cancel(self, handle: Any) -> None: ...


class AsyncioScheduler:
    """
    Production scheduler on the running event loop. Coroutine callbacks are
    spawned as tasks; references are held until they finish.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._tasks: Set[asyncio.Task] = set()

    def now(self) -> datetime:
        # schedule windows are local wall-clock times
        return datetime.now()

    def after(self, delay_seconds: float, callback: Callback) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(max(delay_seconds, 0.0), self._fire, callback)

    def cancel(self, handle: Optional[asyncio.TimerHandle]) -> None:
        if handle is not None:
            handle.cancel()

    def _fire(self, callback: Callback) -> None:
        try:
            result = callback()
        except Exception:
            logger.exception("Timer callback failed")
            return
        if inspect.isawaitable(result):
            loop = self._loop or asyncio.get_running_loop()
            task = asyncio.ensure_future(result, loop=loop)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def close(self) -> None:
        """Cancel callbacks still running as tasks and wait for them to unwind."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("Timer callback failed during shutdown")
        self._tasks.clear()
