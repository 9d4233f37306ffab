"""Date-range presets used when filtering and exporting request logs."""

from __future__ import annotations

import re
from datetime import UTC, date, datetime, time, timedelta

DATE_FORMAT = "%Y-%m-%d"

_LAST_N_DAYS = re.compile(r"^(\d{1,4})days$")


def parse_date(value: str | None) -> date | None:
    """Parse a strict ``YYYY-MM-DD`` string, returning None when invalid."""
    if not value:
        return None
    try:
        parsed = datetime.strptime(value, DATE_FORMAT).date()
    except ValueError:
        return None
    # strptime accepts "2024-1-5"; the filter contract does not
    if parsed.strftime(DATE_FORMAT) != value:
        return None
    return parsed


def _midnight(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=UTC)


def resolve_date_range(
    date_filter: str | None,
    start: str | None = None,
    end: str | None = None,
    now: datetime | None = None,
) -> tuple[datetime | None, datetime | None]:
    """Translate a date filter preset into a half-open ``[start, end)`` range.

    Supported presets are ``today``, ``yesterday``, ``month`` (current calendar
    month), ``<N>days`` (trailing N days, e.g. ``7days``) and ``custom`` which
    uses ``start`` and the optional ``end`` (both inclusive calendar days).
    Unknown presets and invalid custom dates yield ``(None, None)``, meaning
    no date restriction.
    """
    if not date_filter:
        return None, None

    now = now or datetime.now(UTC)
    today = now.date()

    if date_filter == "today":
        return _midnight(today), _midnight(today + timedelta(days=1))

    if date_filter == "yesterday":
        return _midnight(today - timedelta(days=1)), _midnight(today)

    if date_filter == "month":
        first = today.replace(day=1)
        next_first = (first + timedelta(days=32)).replace(day=1)
        return _midnight(first), _midnight(next_first)

    match = _LAST_N_DAYS.match(date_filter)
    if match:
        return now - timedelta(days=int(match.group(1))), None

    if date_filter == "custom":
        start_day = parse_date(start)
        if start_day is None:
            return None, None
        if end:
            end_day = parse_date(end)
            if end_day is None:
                return None, None
            return _midnight(start_day), _midnight(end_day + timedelta(days=1))
        return _midnight(start_day), None

    return None, None
