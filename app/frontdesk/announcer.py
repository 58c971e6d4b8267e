# app/frontdesk/announcer.py
"""
"Now serving" announcements for queue screens.

decide_announcement() is the whole rule and is pure: announce when the
first Current visit of a snapshot differs from the last one announced. A
snapshot with nobody Current keeps the retained identity, so the same
patient reappearing later is not announced twice.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from app.models.visit import VisitStatus
from app.notifications.speech.base import play_announcement
from app.schemas.visit import VisitEntry

logger = logging.getLogger(__name__)

Player = Callable[[str], None]


@dataclass(frozen=True)
class Announcement:
    record_no: int
    text: str


def format_announcement(entry: VisitEntry) -> str:
    return (
        f"Now serving patient {entry.appointment_code}. "
        f"{entry.patient_name}. "
        f"For doctor {entry.doctor_name}."
    )


def first_current(snapshot: Iterable[VisitEntry]) -> VisitEntry | None:
    current = [e for e in snapshot if e.visit_status == VisitStatus.CURRENT]
    if not current:
        return None
    return min(current, key=lambda e: (e.date_scheduled, e.time_scheduled, e.record_no))


def decide_announcement(last_record_no: int | None, snapshot: Iterable[VisitEntry]) -> Announcement | None:
    entry = first_current(snapshot)
    if entry is None or entry.record_no == last_record_no:
        return None
    return Announcement(record_no=entry.record_no, text=format_announcement(entry))


def _default_player(text: str) -> None:
    play_announcement(text, reason="NOW_SERVING")


class LiveQueueAnnouncer:
    """Keeps the last announced record_no across polls."""

    def __init__(self, player: Player | None = None) -> None:
        self._player = player or _default_player
        self.last_record_no: int | None = None

    def observe(self, snapshot: Iterable[VisitEntry]) -> Announcement | None:
        announcement = decide_announcement(self.last_record_no, snapshot)
        if announcement is None:
            return None

        self.last_record_no = announcement.record_no
        try:
            self._player(announcement.text)
        except Exception:
            # Audio output is best effort; the poll loop keeps running
            logger.warning("Announcement playback failed for visit %s", announcement.record_no, exc_info=True)
        return announcement
