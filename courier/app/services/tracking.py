"""
Tracking ID generation.

Tracking IDs look like TRK-20240115-483920: a fixed prefix, the UTC date
the parcel was created and six random digits. Uniqueness is enforced by the
parcels.tracking_id unique index; callers regenerate on collision.
"""

import re
import secrets
from datetime import date, datetime, timezone
from typing import Optional

TRACKING_ID_PREFIX = "TRK"
TRACKING_ID_PATTERN = re.compile(r"TRK-[0-9]{8}-[0-9]{6}")


def generate_tracking_id(today: Optional[date] = None) -> str:
    """Return a fresh tracking ID for the given (default: current UTC) date."""
    today = today or datetime.now(timezone.utc).date()
    number = secrets.randbelow(900000) + 100000
    return f"{TRACKING_ID_PREFIX}-{today:%Y%m%d}-{number}"


def is_valid_tracking_id(value: str) -> bool:
    if not isinstance(value, str):
        return False
    return TRACKING_ID_PATTERN.fullmatch(value) is not None
