"""
Date and timestamp utilities.

Timestamps are timezone-aware UTC datetimes in memory and ISO 8601 strings
on the wire and in snapshots. Checklist completion dates are plain
``YYYY-MM-DD`` days.
"""

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Serialise a datetime to ISO 8601, or None."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def parse_iso(value) -> Optional[datetime]:
    """
    Parse an ISO 8601 timestamp into an aware UTC datetime.

    Accepts datetime instances unchanged (naive ones are taken as UTC),
    a trailing "Z", and bare dates. Returns None for empty input.

    Raises:
        ValueError: if the value is not a recognisable timestamp
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Not a timestamp: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_day(value: datetime) -> str:
    """Render the calendar day of a timestamp as YYYY-MM-DD."""
    return value.date().isoformat()


def parse_day(day_str: str) -> Optional[datetime]:
    """Parse a YYYY-MM-DD string into a UTC midnight datetime, or None."""
    try:
        day = datetime.strptime(day_str.strip(), "%Y-%m-%d").date()
    except (ValueError, AttributeError):
        return None
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


_WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
_IMMEDIATE = frozenset({"asap", "immediately", "urgent", "now", "today"})
_PROSE_PREFIX_RE = re.compile(r"^(?:before|by|due|on)\s+", re.IGNORECASE)
_RELATIVE_RE = re.compile(r"^in\s+(\d+)\s+(day|week)s?$")
_MONTH_DAY_FORMATS = ("%B %d", "%b %d", "%m/%d")
_FULL_DATE_FORMATS = ("%B %d, %Y", "%b %d, %Y")


def _midnight(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def _next_weekday(text: str, today: date) -> Optional[date]:
    explicit_next = text.startswith("next ")
    name = text[5:].strip() if explicit_next else text
    if name not in _WEEKDAYS:
        return None
    offset = (_WEEKDAYS.index(name) - today.weekday()) % 7
    if offset == 0 or explicit_next:
        offset += 7
    return today + timedelta(days=offset)


def _calendar_day(text: str, today: date) -> Optional[date]:
    for fmt in _FULL_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            pass
    # Month/day without a year: this year, or next year once it has passed.
    for fmt in _MONTH_DAY_FORMATS:
        try:
            parsed = datetime.strptime(f"{text} {today.year}", f"{fmt} %Y").date()
        except ValueError:
            continue
        return parsed if parsed >= today else parsed.replace(year=today.year + 1)
    return None


def parse_due_date(date_str: str, today: Optional[date] = None) -> Optional[datetime]:
    """
    Turn a user-supplied due date into a UTC midnight datetime.

    Understands ISO days ("2026-02-15"), month names ("March 15"),
    weekdays ("Friday", "next Monday"), offsets ("in 3 days", "in 2 weeks")
    and urgency words ("ASAP"). Leading "before", "by", "due" or "on" is
    ignored. Returns None when nothing matches.
    """
    if not date_str:
        return None
    today = today or utcnow().date()

    text = date_str.strip().lower()
    if text in _IMMEDIATE:
        return _midnight(today)
    if text == "tomorrow":
        return _midnight(today + timedelta(days=1))

    text = _PROSE_PREFIX_RE.sub("", text).strip()
    iso = parse_day(text)
    if iso:
        return iso

    day = _next_weekday(text, today) or _calendar_day(text, today)
    if day:
        return _midnight(day)

    relative = _RELATIVE_RE.match(text)
    if relative:
        amount = int(relative.group(1))
        step = timedelta(weeks=1) if relative.group(2) == "week" else timedelta(days=1)
        return _midnight(today + step * amount)

    return None
