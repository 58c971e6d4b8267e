import random
import re
import time

from sqlalchemy.orm import Session

from app.models.visit import VisitRecord

_WHITESPACE_RE = re.compile(r"\s+")

APPOINTMENT_CODE_PREFIX = "APT"


def normalize_appointment_code(raw: str | None) -> str:
    """
    Canonical form of a scanned or typed appointment code.

    - byte-order marks are stripped (some scanners prepend U+FEFF)
    - surrounding and internal whitespace is removed
    - letters are upper-cased (codes are case-insensitive)

    Example: "\ufeff apt-2024- 001 " -> "APT-2024-001"
    """
    if not raw:
        return ""
    cleaned = raw.replace("\ufeff", "").strip()
    cleaned = _WHITESPACE_RE.sub("", cleaned)
    return cleaned.upper()


def generate_appointment_code(db: Session, *, max_attempts: int = 10) -> str:
    """
    Generate a unique appointment code in format: APT-{timestamp}-{random}

    Where:
    - {timestamp} = last 6 digits of the current epoch milliseconds
    - {random} = 3 random digits (zero-padded)

    Example: APT-482913-057
    """
    for _ in range(max_attempts):
        timestamp = str(int(time.time() * 1000))[-6:]
        suffix = f"{random.randint(0, 999):03d}"
        code = f"{APPOINTMENT_CODE_PREFIX}-{timestamp}-{suffix}"

        exists = db.query(VisitRecord.record_no).filter(VisitRecord.appointment_code == code).first()
        if not exists:
            return code

    raise ValueError("Could not generate a unique appointment code")
