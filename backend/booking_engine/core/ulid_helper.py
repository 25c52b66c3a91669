"""ULID and booking-number generation helpers."""

from datetime import datetime, timezone
import secrets
import string
from typing import Optional

from ulid import ULID

_BOOKING_NUMBER_ALPHABET = string.ascii_uppercase + string.digits


def generate_ulid() -> str:
    """Generate a new ULID string."""
    return str(ULID())


def parse_ulid(ulid_str: str) -> Optional[ULID]:
    """Parse and validate a ULID string."""
    try:
        return ULID.from_str(ulid_str)
    except (ValueError, TypeError):
        return None


def is_valid_ulid(ulid_str: str) -> bool:
    """Check if a string is a valid ULID."""
    return parse_ulid(ulid_str) is not None


def generate_booking_number(now: Optional[datetime] = None) -> str:
    """Human-facing booking number, e.g. BOOK-1718000000000-X7K2Q."""
    moment = now or datetime.now(timezone.utc)
    millis = int(moment.timestamp() * 1000)
    suffix = "".join(secrets.choice(_BOOKING_NUMBER_ALPHABET) for _ in range(5))
    return f"BOOK-{millis}-{suffix}"
