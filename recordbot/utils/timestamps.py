"""Fixed-width timestamp codec used for every persisted time column.

Values are stored as ``YYYYMMDDHHMMSS`` strings of an absolute UTC instant.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Final, Optional

TIMESTAMP_PATTERN: Final[re.Pattern[str]] = re.compile(r"^\d{14}$")


def utcnow() -> datetime:
    """Current UTC time truncated to the precision the codec keeps."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def encode_timestamp(value: datetime) -> str:
    """Encode *value* as ``YYYYMMDDHHMMSS`` in UTC.

    Naive datetimes are taken to already be UTC. Sub-second precision is dropped.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return (
        f"{value.year:04d}{value.month:02d}{value.day:02d}"
        f"{value.hour:02d}{value.minute:02d}{value.second:02d}"
    )


def decode_timestamp(value: str) -> datetime:
    """Decode a ``YYYYMMDDHHMMSS`` string into an aware UTC datetime."""
    if not isinstance(value, str) or not TIMESTAMP_PATTERN.match(value):
        raise ValueError(f"Invalid timestamp encoding: {value!r}")
    return datetime(
        int(value[0:4]),
        int(value[4:6]),
        int(value[6:8]),
        int(value[8:10]),
        int(value[10:12]),
        int(value[12:14]),
        tzinfo=timezone.utc,
    )


def encode_optional(value: Optional[datetime]) -> Optional[str]:
    return encode_timestamp(value) if value is not None else None


def decode_optional(value: Optional[str]) -> Optional[datetime]:
    return decode_timestamp(value) if value else None
