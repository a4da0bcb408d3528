from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .catalog import WEEKDAYS
from .settings import settings

FALLBACK_TIMEZONE = "Europe/Istanbul"


def _resolve_timezone(tz_name: str | None) -> ZoneInfo:
    name = tz_name or settings.DEFAULT_TIMEZONE or FALLBACK_TIMEZONE
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError:
        return ZoneInfo(FALLBACK_TIMEZONE)


def _get(row: Any, *names: str) -> Any:
    for name in names:
        if isinstance(row, Mapping):
            if name in row:
                return row[name]
        elif hasattr(row, name):
            return getattr(row, name)
    return None


def normalize_working_hours(payload: Mapping[str, Any] | None) -> list[dict[str, Any]]:
    """Turn the weekday-keyed payload ({"monday": {...}}) into storage rows."""
    if not payload:
        return []
    rows: list[dict[str, Any]] = []
    for day in WEEKDAYS:
        entry = payload.get(day.lower())
        if entry is None:
            continue
        closed = bool(_get(entry, "is_closed", "isClosed"))
        rows.append(
            {
                "day": day,
                "open_time": None if closed else _get(entry, "open", "open_time"),
                "close_time": None if closed else _get(entry, "close", "close_time"),
                "is_closed": closed,
            }
        )
    return rows


def _rows(hours: Iterable[Any] | Mapping[str, Any] | None) -> list[Any]:
    if not hours:
        return []
    if isinstance(hours, Mapping):
        return normalize_working_hours(hours)
    return list(hours)


def is_open_now(
    hours: Iterable[Any] | Mapping[str, Any] | None,
    now: datetime | None = None,
    tz: str | None = None,
) -> bool:
    zone = _resolve_timezone(tz)
    if now is None:
        current = datetime.now(zone)
    elif now.tzinfo is None:
        current = now.replace(tzinfo=zone)
    else:
        current = now.astimezone(zone)
    today = WEEKDAYS[current.weekday()]
    for row in _rows(hours):
        if str(_get(row, "day") or "").upper() != today:
            continue
        if _get(row, "is_closed", "isClosed"):
            return False
        open_time = _get(row, "open_time", "open")
        close_time = _get(row, "close_time", "close")
        if not open_time or not close_time:
            return False
        hhmm = current.strftime("%H:%M")
        return open_time <= hhmm <= close_time
    return False


__all__ = ["is_open_now", "normalize_working_hours"]
