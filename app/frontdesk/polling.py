# app/frontdesk/polling.py
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from app.frontdesk.scheduling import Handle, Scheduler, cancel_quietly

logger = logging.getLogger(__name__)


class PollingTask:
    """
    Periodic fetch with an explicit cancel handle.

    The next tick is scheduled before the fetch starts, so a slow or
    failing fetch never delays the cadence. A tick that finds the previous
    fetch still running is skipped.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        interval: float,
        fetch: Callable[[], Awaitable[Any]],
        on_result: Callable[[Any], None],
        on_error: Callable[[BaseException], None] | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._interval = interval
        self._fetch = fetch
        self._on_result = on_result
        self._on_error = on_error
        self._timer: Handle | None = None
        self._request: Handle | None = None
        self._in_flight = False
        self.cancelled = False

    def start(self) -> None:
        """Fetch immediately, then every `interval` seconds."""
        self.cancelled = False
        self._tick()

    def poll_now(self) -> None:
        if not self.cancelled and not self._in_flight:
            self._run_fetch()

    def cancel(self) -> None:
        self.cancelled = True
        cancel_quietly(self._timer)
        cancel_quietly(self._request)
        self._timer = self._request = None
        self._in_flight = False

    def _tick(self) -> None:
        if self.cancelled:
            return
        self._timer = self._scheduler.call_later(self._interval, self._tick)
        if self._in_flight:
            logger.debug("Previous poll still running; skipping this tick")
            return
        self._run_fetch()

    def _run_fetch(self) -> None:
        self._in_flight = True
        self._request = self._scheduler.submit(self._fetch, self._done)

    def _done(self, result: Any, error: BaseException | None) -> None:
        self._in_flight = False
        self._request = None
        if self.cancelled:
            return
        if error is not None:
            logger.warning("Poll failed: %s", error)
            if self._on_error:
                self._on_error(error)
            return
        self._on_result(result)
