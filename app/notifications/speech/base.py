# app/notifications/speech/base.py
import logging
from typing import Optional

from app.core.config import get_settings

logger = logging.getLogger(__name__)


def play_announcement(
    text: str,
    *,
    reason: Optional[str] = None,
) -> None:
    """
    Queue-screen announcement sink (chime + speech).

    - If settings.speech_enabled is False:
        just log that the announcement would have been played.
    - Otherwise the text is handed to the screen's audio output, which
      is an external collaborator; this process only logs the hand-off.

    `reason` is a free-text label like:
      - "NOW_SERVING"
    """
    settings = get_settings()
    debug_reason = f" [{reason}]" if reason else ""

    if not settings.speech_enabled:
        logger.info(f"[SPEECH DISABLED{debug_reason}] {text}")
        return

    logger.info(f"[SPEECH PLAYED{debug_reason}] {text}")
