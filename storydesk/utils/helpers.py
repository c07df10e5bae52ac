"""Shared utility functions for services and blueprints.

normalize_day:       canonical YYYY-MM-DD for day-granularity values
normalize_datetime:  canonical YYYY-MM-DD HH:MM:SS for date-time values
parse_day:           normalize_day -> datetime.date
parse_id_list:       ordered, de-duplicated stakeholder id list from any input shape
commit_or_raise:     commit the session, wrapping persistence failures in StorageError
"""
import json
import logging
import re
from datetime import date, datetime

from sqlalchemy.exc import SQLAlchemyError

from storydesk.core.exceptions import StorageError
from storydesk.models import db

logger = logging.getLogger(__name__)

# YYYY-MM-DD with optional " HH:mm[:ss[.ffff]]" / "THH:mm..." and optional zone.
_DATE_TIME_RE = re.compile(
    r"^(\d{4})-(\d{1,2})-(\d{1,2})"
    r"(?:[T ](\d{1,2}):(\d{2})(?::(\d{2})(?:\.\d+)?)?)?"
    r"(?:Z|[+-]\d{2}:?\d{2})?$"
)


def _split(value) -> tuple[int, int, int, int, int, int]:
    """Break a date/date-time value into its components as written.

    Timezone suffixes are accepted but not applied: the calendar day the
    caller wrote is the day that is stored.

    Raises:
        ValueError: If the value is not one of the accepted shapes.
    """
    if isinstance(value, datetime):
        return value.year, value.month, value.day, value.hour, value.minute, value.second
    if isinstance(value, date):
        return value.year, value.month, value.day, 0, 0, 0
    text = str(value).strip().replace("/", "-")
    m = _DATE_TIME_RE.match(text)
    if not m:
        raise ValueError(f"Invalid date: {value!r}. Use YYYY-MM-DD.")
    year, month, day = int(m.group(1)), int(m.group(2)), int(m.group(3))
    hour = int(m.group(4) or 0)
    minute = int(m.group(5) or 0)
    second = int(m.group(6) or 0)
    # Range check (raises ValueError for 2024-02-30, 25:00, ...)
    datetime(year, month, day, hour, minute, second)
    return year, month, day, hour, minute, second


def normalize_day(value) -> str | None:
    """Normalize a day-granularity value to ``YYYY-MM-DD``.

    Accepts ``YYYY-MM-DD``, ``YYYY/MM/DD``, ``YYYY-MM-DD HH:mm[:ss]``,
    ISO-8601 (``2024-03-05T10:00:00Z``), ``date`` and ``datetime``.
    Idempotent: ``normalize_day(normalize_day(x)) == normalize_day(x)``.

    Returns None for empty input.

    Raises:
        ValueError: On unparseable or out-of-range input.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    year, month, day, *_ = _split(value)
    return f"{year:04d}-{month:02d}-{day:02d}"


def normalize_datetime(value) -> str | None:
    """Normalize a date-time value to ``YYYY-MM-DD HH:MM:SS``.

    Date-only input gets midnight; ``HH:mm`` input gets ``:00`` seconds.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    year, month, day, hour, minute, second = _split(value)
    return f"{year:04d}-{month:02d}-{day:02d} {hour:02d}:{minute:02d}:{second:02d}"


def parse_day(value) -> date | None:
    """normalize_day() returning a ``date`` object."""
    canonical = normalize_day(value)
    return date.fromisoformat(canonical) if canonical else None


def parse_datetime(value) -> datetime | None:
    """normalize_datetime() returning a naive ``datetime``."""
    canonical = normalize_datetime(value)
    return datetime.strptime(canonical, "%Y-%m-%d %H:%M:%S") if canonical else None


def parse_id_list(value) -> list[int]:
    """Parse a stakeholder selection into an ordered, de-duplicated id list.

    Accepts None, a list/tuple of ints or numeric strings, a single int,
    a comma-joined string ("7,9") or a JSON array string ("[7, 9]").
    Order is preserved as given; ids are never sorted.

    Raises:
        ValueError: If any token is not an integer id.
    """
    if value is None:
        return []
    if isinstance(value, bool):
        raise ValueError(f"Invalid stakeholder id: {value!r}")
    if isinstance(value, int):
        tokens = [value]
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return []
        if text.startswith("["):
            try:
                tokens = json.loads(text)
            except json.JSONDecodeError as exc:
                raise ValueError(f"Invalid stakeholder id list: {value!r}") from exc
            if not isinstance(tokens, list):
                raise ValueError(f"Invalid stakeholder id list: {value!r}")
        else:
            tokens = [t for t in (part.strip() for part in text.split(",")) if t]
    elif isinstance(value, (list, tuple)):
        tokens = list(value)
    else:
        raise ValueError(f"Invalid stakeholder id list: {value!r}")

    ids: list[int] = []
    seen: set[int] = set()
    for token in tokens:
        if isinstance(token, bool):
            raise ValueError(f"Invalid stakeholder id: {token!r}")
        try:
            sid = int(str(token).strip())
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid stakeholder id: {token!r}") from exc
        if sid not in seen:
            seen.add(sid)
            ids.append(sid)
    return ids


# ── Database commit helper ───────────────────────────────────────────────────

def commit_or_raise(action: str = "commit") -> None:
    """Commit the current SQLAlchemy session or raise StorageError.

    The session is rolled back before raising so the caller can keep using
    it. ``action`` only feeds the log line.
    """
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Database error during %s", action)
        raise StorageError(f"Database error during {action}") from exc
