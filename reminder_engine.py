"""Reminder offset parsing and due-detection.

A reminder carries a relative offset such as "30 minutes" or "2 days". Its
trigger instant is the event instant minus that offset, and a sweep tick
running at `now` considers the reminder due when `now` lies within the
tolerance window around the trigger instant, on either side.

Everything in this module is pure: no I/O, no clock reads, no hidden state.
"""

import re
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

DEFAULT_TOLERANCE = timedelta(seconds=60)

# Case-sensitive; anything else degrades to a zero offset
OFFSET_UNITS = {
    "minutes": timedelta(minutes=1),
    "hours": timedelta(hours=1),
    "days": timedelta(days=1),
}

_MAGNITUDE_RE = re.compile(r"^[+-]?\d+$")


class OffsetParseError(ValueError):
    """Raised when the magnitude of a reminder offset is not an integer."""


def _split_offset(text: str):
    magnitude, _, unit = text.partition(" ")
    if not _MAGNITUDE_RE.match(magnitude):
        raise OffsetParseError(f"Invalid reminder offset magnitude: {text!r}")
    return int(magnitude), unit


def parse_offset(text: str) -> timedelta:
    """Convert "<integer> <unit>" into how long before the event to fire.

    Args:
        text: Offset string, e.g. "30 minutes", "1 hours", "-5 minutes"

    Returns:
        timedelta: Signed duration. An unrecognised unit yields timedelta(0).

    Raises:
        OffsetParseError: If the magnitude is not an integer
    """
    magnitude, unit = _split_offset(text)
    step = OFFSET_UNITS.get(unit)
    if step is None:
        return timedelta(0)
    return magnitude * step


def is_recognized_unit(text: str) -> bool:
    """True when the offset names one of the known units.

    Raises OffsetParseError for a malformed magnitude, like parse_offset.
    """
    _, unit = _split_offset(text)
    return unit in OFFSET_UNITS


def event_instant(event_date: date, event_time: time, tz_name: str = "UTC") -> datetime:
    """Combine a local date and time-of-day into an aware datetime."""
    return datetime.combine(event_date, event_time, tzinfo=ZoneInfo(tz_name))


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def trigger_instant(instant: datetime, offset: str) -> datetime:
    """Moment a reminder ideally fires: the event instant minus its offset.

    The offset is elapsed time, so the subtraction happens in UTC; local
    wall-clock arithmetic would be an hour off across a DST change.
    """
    return _aware(instant).astimezone(timezone.utc) - parse_offset(offset)


def is_due(
    instant: datetime,
    offset: str,
    now: datetime,
    tolerance: timedelta = DEFAULT_TOLERANCE,
) -> bool:
    """Decide whether a reminder should fire during the tick running at `now`.

    Args:
        instant: Event instant
        offset: Reminder offset string
        now: Time of the current sweep tick
        tolerance: Inclusive window around the trigger instant

    Returns:
        bool: True when |now - trigger| <= tolerance
    """
    delta = abs(_aware(now) - trigger_instant(instant, offset))
    return delta <= tolerance
