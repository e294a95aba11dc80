# Overview: UTC-naive clock and ISO-8601 helpers for invoices, shift boundaries and history windows.

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    """Server-side 'now': UTC with tzinfo stripped, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an invoice-list bound (created_after / created_before) to UTC-naive.

    Missing or blank values mean "no bound". Offsets, including a trailing Z
    from the console, are converted to UTC; an offset-free value is already
    UTC. Raises ValueError for anything fromisoformat rejects.
    """
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        return parsed
    return parsed.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """JSON timestamp, whole seconds with a trailing Z ("2026-10-18T06:00:00Z")."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"


def local_day_start(now: datetime, tz_name: str) -> datetime:
    """
    Midnight of the local calendar day containing `now`, as UTC-naive.

    `now` is UTC-naive; `tz_name` is an IANA zone such as "Asia/Kolkata".
    """
    zone = ZoneInfo(tz_name)
    local = now.replace(tzinfo=timezone.utc).astimezone(zone)
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight.astimezone(timezone.utc).replace(tzinfo=None)


def local_date(now: datetime, tz_name: str):
    """Local calendar date for a UTC-naive instant."""
    return now.replace(tzinfo=timezone.utc).astimezone(ZoneInfo(tz_name)).date()
