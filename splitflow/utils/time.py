"""Time utility helpers."""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from typing import Any

from splitflow.utils.errors import BadRequestError


def now_utc() -> datetime:
    """Return current timezone-aware UTC datetime."""
    return datetime.now(tz=UTC)


def utc_today() -> date:
    """Return current UTC date."""
    return now_utc().date()


def parse_iso_date(value: str | None, default: date | None = None) -> date:
    """Parse an ISO date string with an optional fallback default."""
    if not value:
        if default is None:
            raise ValueError("Missing required date value")
        return default
    return date.fromisoformat(value[:10])


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse a stored timestamp (ISO string, ``Z`` suffix allowed) into aware UTC."""
    if not value:
        return None
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        parsed = value
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def spending_date(row: dict[str, Any]) -> str:
    """Return the user-entered ``YYYY-MM-DD`` date, falling back to ``created_at``."""
    if row.get("date"):
        return str(row["date"])[:10]
    created = parse_timestamp(row.get("created_at"))
    return created.date().isoformat() if created else ""


def spending_time(row: dict[str, Any]) -> str:
    """Return the ``HH:MM`` time, falling back to ``created_at``."""
    if row.get("time"):
        return str(row["time"])[:5]
    created = parse_timestamp(row.get("created_at"))
    return created.strftime("%H:%M") if created else ""


def date_filter(value: str | None, field: str) -> str | None:
    """Validate an optional ``YYYY-MM-DD`` query filter and return it normalized."""
    if not value or not str(value).strip():
        return None
    try:
        return date.fromisoformat(str(value).strip()).isoformat()
    except ValueError as exc:
        raise BadRequestError(f"Invalid {field}, expected YYYY-MM-DD") from exc


def days_between(from_date: str | None, to_date: str | None, default_window_days: int) -> int:
    """Return the whole number of days spanned by a (possibly open) date range."""
    end = parse_iso_date(to_date, default=utc_today())
    start = parse_iso_date(from_date, default=end - timedelta(days=default_window_days))
    return (end - start).days


def date_stamp(value: datetime | None = None) -> str:
    """Return ``YYYY-MM-DD`` for file names."""
    return (value or now_utc()).date().isoformat()
