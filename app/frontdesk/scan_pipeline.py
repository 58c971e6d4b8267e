# app/frontdesk/scan_pipeline.py
"""
Scan / manual-entry input pipeline for the check-in station.

Two channels feed one check-in call:

- scanner: a complete code per event; a code equal to the last accepted
  scan is dropped until that scan's key is cleared
- keyboard: debounced; the code is submitted once input has been idle
  for the debounce period

After every attempt that reached the check-in call (any outcome, including
transport errors) the pipeline cools down for a few seconds, counted in
whole seconds. While cooling down, or while a request is in flight, new
input is ignored.

All mutable state lives in AdmissionSession so the station view, tests and
the pipeline share one object instead of scattered flags.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from app.core.config import get_settings
from app.core.exceptions import FrontDeskError, TransportFailure
from app.frontdesk.scheduling import Handle, Scheduler, cancel_quietly
from app.schemas.admission import AdmissionResult
from app.utils.id_generators import normalize_appointment_code

logger = logging.getLogger(__name__)

CheckIn = Callable[[str], Awaitable[AdmissionResult]]


@dataclass
class AdmissionSession:
    last_scanned: str | None = None
    manual_buffer: str = ""
    cooldown_remaining: int = 0
    in_flight: bool = False
    last_result: AdmissionResult | None = None
    last_error: FrontDeskError | None = None
    closed: bool = False

    @property
    def cooling_down(self) -> bool:
        return self.cooldown_remaining > 0

    @property
    def busy(self) -> bool:
        return self.in_flight or self.cooling_down


class ScanInputPipeline:
    def __init__(
        self,
        check_in: CheckIn,
        scheduler: Scheduler,
        *,
        session: AdmissionSession | None = None,
        cooldown_seconds: int | None = None,
        debounce_seconds: float | None = None,
        dedup_clear_seconds: float | None = None,
        on_result: Callable[[AdmissionResult], None] | None = None,
        on_error: Callable[[FrontDeskError], None] | None = None,
        on_cooldown: Callable[[int], None] | None = None,
    ) -> None:
        settings = get_settings()
        self.session = session or AdmissionSession()
        self._check_in = check_in
        self._scheduler = scheduler
        self._cooldown_seconds = (
            settings.scan_cooldown_seconds if cooldown_seconds is None else cooldown_seconds
        )
        self._debounce_seconds = (
            settings.manual_entry_debounce_seconds if debounce_seconds is None else debounce_seconds
        )
        self._dedup_clear_seconds = (
            settings.scan_dedup_clear_seconds if dedup_clear_seconds is None else dedup_clear_seconds
        )
        self._on_result = on_result
        self._on_error = on_error
        self._on_cooldown = on_cooldown

        self._debounce: Handle | None = None
        self._cooldown_tick: Handle | None = None
        self._dedup_clear: Handle | None = None
        self._request: Handle | None = None

    # -------------------------
    # Input channels
    # -------------------------

    def on_scan(self, raw: str) -> bool:
        """Handle one scanner event. Returns True if a check-in was started."""
        code = normalize_appointment_code(raw)
        if not code or not self._can_accept():
            return False
        if code == self.session.last_scanned:
            logger.debug("Dropping repeated scan of %s", code)
            return False

        self.session.last_scanned = code
        self._dispatch(code)
        return True

    def on_manual_input(self, text: str) -> None:
        """Handle a keystroke; (re)starts the debounce timer."""
        if self.session.closed:
            return
        self.session.manual_buffer = text
        cancel_quietly(self._debounce)
        self._debounce = self._scheduler.call_later(self._debounce_seconds, self.flush_manual)

    def flush_manual(self) -> bool:
        """Submit the manual buffer now. Returns True if a check-in was started."""
        cancel_quietly(self._debounce)
        self._debounce = None

        code = normalize_appointment_code(self.session.manual_buffer)
        if not code or not self._can_accept():
            return False
        self._dispatch(code)
        return True

    def clear_result(self) -> None:
        """Operator dismissed the result; the same code may be scanned again."""
        cancel_quietly(self._dedup_clear)
        self._dedup_clear = None
        self.session.last_result = None
        self.session.last_error = None
        self.session.last_scanned = None

    def close(self) -> None:
        """Cancel every timer and drop any response still in flight."""
        self.session.closed = True
        for handle in (self._debounce, self._cooldown_tick, self._dedup_clear, self._request):
            cancel_quietly(handle)
        self._debounce = self._cooldown_tick = self._dedup_clear = self._request = None

    # -------------------------
    # Internals
    # -------------------------

    def _can_accept(self) -> bool:
        if self.session.closed:
            return False
        if self.session.busy:
            logger.debug(
                "Input ignored (in_flight=%s, cooldown=%s)",
                self.session.in_flight,
                self.session.cooldown_remaining,
            )
            return False
        return True

    def _dispatch(self, code: str) -> None:
        self.session.in_flight = True
        self.session.last_error = None
        logger.info("Checking in appointment %s", code)
        self._request = self._scheduler.submit(lambda: self._check_in(code), self._on_response)

    def _on_response(self, result: AdmissionResult | None, error: BaseException | None) -> None:
        self._request = None
        if self.session.closed:
            logger.debug("Discarding check-in response after close")
            return

        self.session.in_flight = False
        if error is not None:
            if not isinstance(error, FrontDeskError):
                logger.error("Check-in failed", exc_info=error)
                error = TransportFailure(str(error) or type(error).__name__)
            self.session.last_result = None
            self.session.last_error = error
        else:
            self.session.last_result = result
            self.session.last_error = None

        self._start_cooldown()
        self._schedule_dedup_clear()

        if error is not None:
            if self._on_error:
                self._on_error(error)
        elif self._on_result:
            self._on_result(result)

    def _start_cooldown(self) -> None:
        cancel_quietly(self._cooldown_tick)
        self.session.cooldown_remaining = self._cooldown_seconds
        self._notify_cooldown()
        if self.session.cooldown_remaining > 0:
            self._cooldown_tick = self._scheduler.call_later(1.0, self._tick)

    def _tick(self) -> None:
        self._cooldown_tick = None
        if self.session.closed:
            return
        self.session.cooldown_remaining = max(0, self.session.cooldown_remaining - 1)
        self._notify_cooldown()
        if self.session.cooldown_remaining > 0:
            self._cooldown_tick = self._scheduler.call_later(1.0, self._tick)

    def _notify_cooldown(self) -> None:
        if self._on_cooldown:
            self._on_cooldown(self.session.cooldown_remaining)

    def _schedule_dedup_clear(self) -> None:
        cancel_quietly(self._dedup_clear)
        self._dedup_clear = self._scheduler.call_later(self._dedup_clear_seconds, self._clear_last_scanned)

    def _clear_last_scanned(self) -> None:
        self._dedup_clear = None
        if not self.session.closed:
            self.session.last_scanned = None
