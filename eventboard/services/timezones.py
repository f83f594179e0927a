"""Parse user-entered date/time strings in one of the supported zones."""

from __future__ import annotations

import re
from datetime import datetime, timezone, tzinfo

from dateutil import tz

from eventboard.domain import errors

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_RE = re.compile(r"^\d{2}:\d{2}$")

# Labels users pick from. BST and CET name the civil time of the region,
# so the offset follows daylight saving (GMT/BST, CET/CEST).
SUPPORTED_TIMEZONES: dict[str, tzinfo] = {
    "UTC": tz.UTC,
    "BST": tz.gettz("Europe/London"),
    "CET": tz.gettz("Europe/Paris"),
}


def parse_event_datetime(date_str: str, time_str: str, timezone_name: str) -> datetime:
    """Combine ``YYYY-MM-DD`` and ``HH:MM`` in *timezone_name* into a UTC instant.

    Raises ``ValidationError`` for malformed input, an unknown zone, or a
    date that does not exist on the calendar. Wall-clock times skipped by a
    DST transition are moved forward past the gap.
    """
    date_str = date_str.strip()
    time_str = time_str.strip()

    if not _DATE_RE.match(date_str):
        raise errors.ValidationError("Invalid date format. Use: YYYY-MM-DD")
    if not _TIME_RE.match(time_str):
        raise errors.ValidationError("Invalid time format. Use: HH:MM")

    zone = SUPPORTED_TIMEZONES.get(timezone_name.strip().upper())
    if zone is None:
        raise errors.ValidationError(
            f"Invalid timezone. Use one of: {', '.join(SUPPORTED_TIMEZONES)}"
        )

    year, month, day = (int(part) for part in date_str.split("-"))
    hour, minute = (int(part) for part in time_str.split(":"))
    try:
        local = datetime(year, month, day, hour, minute, tzinfo=zone)
    except ValueError:
        raise errors.ValidationError("Invalid date or time.") from None

    return tz.resolve_imaginary(local).astimezone(timezone.utc)
