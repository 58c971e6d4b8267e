# app/frontdesk/scheduling.py
"""
Timer and request plumbing for station views.

Views never sleep or block: they ask a Scheduler for one-shot timers and
for background requests whose outcome comes back through a callback on
the event loop. Every call returns a handle with cancel(), so a view can
tear down everything it started.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

logger = logging.getLogger(__name__)

# on_done(result, error): exactly one of the two is set
DoneCallback = Callable[[Any, BaseException | None], None]


class Handle(Protocol):
    def cancel(self) -> Any: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> Handle: ...

    def submit(self, job: Callable[[], Awaitable[Any]], on_done: DoneCallback) -> Handle: ...


class AsyncioScheduler:
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop or asyncio.get_running_loop()

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self._loop.call_later(delay, callback)

    def submit(self, job: Callable[[], Awaitable[Any]], on_done: DoneCallback) -> asyncio.Task:
        task = self._loop.create_task(job())

        def _finished(t: asyncio.Task) -> None:
            if t.cancelled():
                return
            error = t.exception()
            if error is not None:
                on_done(None, error)
            else:
                on_done(t.result(), None)

        task.add_done_callback(_finished)
        return task


def cancel_quietly(handle: Handle | None) -> None:
    if handle is not None:
        handle.cancel()
