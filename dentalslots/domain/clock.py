"""
Clock-time and duration parsing.

Working hours and appointment times arrive as free-form human input
("9", "9:30 am", "5 PM", "17.30", "1730"). They are parsed once into minutes
since midnight; all scheduling arithmetic runs on those integers and strings
are only produced again for display.
"""

from __future__ import annotations

import logging
import re
from datetime import time

logger = logging.getLogger(__name__)

MINUTES_PER_HOUR = 60
MINUTES_PER_DAY = 24 * MINUTES_PER_HOUR
DEFAULT_DURATION_MINUTES = 30

_PM_RE = re.compile(r"p\.?\s*m\.?", re.IGNORECASE)
_AM_RE = re.compile(r"a\.?\s*m\.?", re.IGNORECASE)
_NON_CLOCK_RE = re.compile(r"[^\d:]")
_DIGITS_RE = re.compile(r"\d+")
_HOUR_UNIT_RE = re.compile(r"hour|hr", re.IGNORECASE)


def parse_clock_time(value: object) -> int | None:
    """
    Parse a free-form clock time into minutes since midnight.

    AM/PM markers are detected case-insensitively and converted to 24-hour
    form (12 AM -> 0, 12 PM -> 12, PM adds 12 to hours 1-11). Everything that
    is not a digit or a colon is stripped before splitting on ``:``. Missing
    minutes mean ``:00``. Hours are clamped to [0, 23] and minutes to [0, 59].

    Args:
        value: Clock string, ``datetime.time`` or anything else

    Returns:
        Minutes since midnight, or None if the value cannot be parsed
    """
    if isinstance(value, time):
        return value.hour * MINUTES_PER_HOUR + value.minute

    if not isinstance(value, str) or not value.strip():
        logger.debug("Unparseable clock time: %r", value)
        return None

    text = value.strip()
    is_pm = bool(_PM_RE.search(text))
    is_am = not is_pm and bool(_AM_RE.search(text))
    text = _PM_RE.sub("", _AM_RE.sub("", text))

    cleaned = _NON_CLOCK_RE.sub("", text.replace(".", ":"))

    if ":" in cleaned:
        hours_text, _, rest = cleaned.partition(":")
        minutes_text = rest.split(":")[0]
    elif len(cleaned) in (3, 4):
        # "930" / "1730"
        hours_text, minutes_text = cleaned[:-2], cleaned[-2:]
    else:
        hours_text, minutes_text = cleaned, ""

    if not hours_text:
        logger.debug("Unparseable clock time: %r", value)
        return None

    hours = int(hours_text)
    minutes = int(minutes_text) if minutes_text else 0

    if is_pm and 1 <= hours <= 11:
        hours += 12
    elif is_am and hours == 12:
        hours = 0

    hours = min(max(hours, 0), 23)
    minutes = min(max(minutes, 0), 59)

    return hours * MINUTES_PER_HOUR + minutes


def parse_duration(value: object, default: int = DEFAULT_DURATION_MINUTES) -> int:
    """
    Normalize a service duration to whole minutes.

    Integers pass through untouched. Descriptive strings such as
    ``"45 minutes"`` or ``"1 hour"`` take their first integer, multiplied by
    60 when the text is in hours. Anything else yields ``default``.
    """
    if isinstance(value, bool):
        return default

    if isinstance(value, int):
        return value

    if isinstance(value, float):
        return int(value)

    if isinstance(value, str):
        match = _DIGITS_RE.search(value)
        if not match:
            return default

        minutes = int(match.group())
        if _HOUR_UNIT_RE.search(value):
            minutes *= MINUTES_PER_HOUR
        return minutes

    return default


def format_minutes(minutes: int) -> str:
    """Format minutes since midnight as ``HH:MM``, wrapping past midnight."""
    minutes %= MINUTES_PER_DAY
    return f"{minutes // MINUTES_PER_HOUR:02d}:{minutes % MINUTES_PER_HOUR:02d}"
