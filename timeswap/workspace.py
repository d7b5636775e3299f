"""Data-root layout, timestamps and calendar-day helpers for TimeSwap."""

from __future__ import annotations

import re
from datetime import date, datetime, timezone, tzinfo
from pathlib import Path

RESOURCE_FILES = {
    "profile": "profile.json",
    "tasks": "tasks.json",
    "aichat": "aichat.json",
    "schedule": "schedule.json",
    "preferences": "preferences.json",
    "analytics": "analytics.json",
}

_USER_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,127}$")


# ── Path helpers ──────────────────────────────────────────────

def accounts_root(data_root: Path) -> Path:
    return data_root / "accounts"


def is_valid_user_id(user_id: str) -> bool:
    """User ids become directory names; allow only one safe path component."""
    return bool(_USER_ID_RE.match(user_id or ""))


def user_dir(data_root: Path, user_id: str) -> Path:
    return accounts_root(data_root) / user_id


def resource_path(data_root: Path, user_id: str, resource: str) -> Path:
    return user_dir(data_root, user_id) / RESOURCE_FILES[resource]


# ── Time helpers ──────────────────────────────────────────────

def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """Serialize as UTC ISO-8601 with millisecond precision and a Z suffix."""
    if dt.tzinfo is None:
        dt = dt.astimezone()
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: object, tz: tzinfo | None = None) -> datetime | None:
    """Parse an ISO timestamp or date; naive values are taken in *tz*.

    Returns None for empty or unparseable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz) if tz is not None else dt.astimezone()
    return dt


def local_day(dt: datetime, tz: tzinfo) -> date:
    """Calendar day of *dt* as seen in *tz*."""
    return dt.astimezone(tz).date()


def is_same_day(value: object, day: date, tz: tzinfo) -> bool:
    dt = parse_timestamp(value, tz)
    return dt is not None and local_day(dt, tz) == day


def hours_until(value: object, now: datetime) -> float | None:
    """Hours from *now* until the timestamp *value*; negative when past."""
    if now.tzinfo is None:
        now = now.astimezone()
    dt = parse_timestamp(value, now.tzinfo)
    if dt is None:
        return None
    return (dt - now).total_seconds() / 3600
