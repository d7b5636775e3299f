"""Analytics aggregation for TimeSwap.

Derives a point-in-time statistics snapshot from a user's task list,
preferences and chat log, then caches it as the analytics document.
The cache is never a source of truth: every task mutation recomputes it.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from datetime import datetime, timedelta

from timeswap.models import (
    Analytics,
    Baseline,
    CategoryTime,
    ChatEntry,
    DayStat,
    Preferences,
    Task,
    Trends,
)
from timeswap.store import DocumentStore
from timeswap.workspace import is_same_day, local_day, parse_timestamp, to_iso

logger = logging.getLogger(__name__)

DEFAULT_TASK_MINUTES = 30
WEEK_DAYS = 7


def _round_half_up(x: float, ndigits: int = 0) -> float:
    factor = 10 ** ndigits
    return math.floor(x * factor + 0.5) / factor


def percent_change(base: float, current: float) -> int:
    """Whole-number percentage change from *base* to *current*."""
    if base > 0:
        return int(_round_half_up((current - base) / base * 100))
    return 100 if current > 0 else 0


# ── Analytics Computation ─────────────────────────────────────


def compute_focus_hours(tasks: list[Task]) -> float:
    """Estimated focus time: completed task durations (default 30 min) in hours."""
    minutes = sum(
        t.duration if t.duration is not None else DEFAULT_TASK_MINUTES
        for t in tasks
        if t.completed
    )
    return minutes / 60


def compute_time_distribution(
    tasks: list[Task], focus_hours: float, categories: list[str] | None = None
) -> dict[str, CategoryTime]:
    """Share of focus time per category, proportional to task counts."""
    counts = Counter(t.category or "general" for t in tasks)
    total = max(1, sum(counts.values()))

    names = list(counts)
    for name in categories or []:
        if name not in counts:
            names.append(name)

    return {
        name: CategoryTime(
            hours=_round_half_up(counts.get(name, 0) / total * focus_hours, 1),
            percentage=int(_round_half_up(counts.get(name, 0) / total * 100)),
        )
        for name in names
    }


def compute_weekly_data(tasks: list[Task], now: datetime) -> list[DayStat]:
    """Created vs completed counts for the trailing 7 days, oldest first."""
    tz = now.tzinfo
    today = now.date()
    weekly = []
    for offset in range(WEEK_DAYS - 1, -1, -1):
        day = today - timedelta(days=offset)
        created = sum(1 for t in tasks if is_same_day(t.created_at, day, tz))
        completed = sum(1 for t in tasks if t.completed and is_same_day(t.completed_at, day, tz))
        rate = int(_round_half_up(completed / created * 100)) if created else 0
        weekly.append(DayStat(
            date=day.isoformat(),
            day=day.strftime("%a"),
            completion_rate=rate,
            tasks_completed=completed,
            total_tasks=created,
        ))
    return weekly


def _next_baseline(previous: Analytics | None, now: datetime) -> Baseline | None:
    """Baseline for trends: the last snapshot from an earlier calendar day."""
    if previous is None or not previous.last_calculated:
        return None
    prev_dt = parse_timestamp(previous.last_calculated, now.tzinfo)
    if prev_dt is None:
        return previous.baseline
    prev_day = local_day(prev_dt, now.tzinfo)
    if prev_day < now.date():
        return Baseline(
            date=prev_day.isoformat(),
            completed_today=previous.completed_today,
            focus_time=previous.focus_time,
            total_tasks=previous.total_tasks,
            ai_usage=previous.ai_usage_today,
        )
    return previous.baseline


def compute_analytics(
    tasks: list[Task],
    preferences: Preferences | None,
    chats: list[ChatEntry],
    now: datetime,
    previous: Analytics | None = None,
) -> Analytics:
    """Compute the analytics snapshot for *now*.

    Day boundaries follow ``now``'s timezone.
    """
    if now.tzinfo is None:
        now = now.astimezone()
    tz = now.tzinfo
    today = now.date()
    preferences = preferences or Preferences()

    completed_today = sum(
        1 for t in tasks if t.completed and is_same_day(t.completed_at, today, tz)
    )
    focus_hours = compute_focus_hours(tasks)
    ai_usage = sum(1 for c in chats if is_same_day(c.timestamp, today, tz))

    summary = Analytics(
        total_tasks=len(tasks),
        completed_today=completed_today,
        focus_time=_round_half_up(focus_hours, 1),
        ai_usage_today=ai_usage,
        time_distribution=compute_time_distribution(tasks, focus_hours, preferences.task_categories),
        weekly_data=compute_weekly_data(tasks, now),
        baseline=_next_baseline(previous, now),
        last_calculated=to_iso(now),
    )

    base = summary.baseline
    if base is not None:
        summary.trends = Trends(
            completed=percent_change(base.completed_today, summary.completed_today),
            focus=percent_change(base.focus_time, summary.focus_time),
            total_tasks=percent_change(base.total_tasks, summary.total_tasks),
            ai_usage=percent_change(base.ai_usage, summary.ai_usage_today),
        )
    return summary


# ── Storage & Refresh ─────────────────────────────────────────


def load_analytics(store: DocumentStore, user_id: str) -> Analytics:
    """Load the cached analytics snapshot (zero-state if never computed)."""
    return Analytics.from_dict(store.read(user_id, "analytics"))


def refresh_analytics(store: DocumentStore, user_id: str, now: datetime) -> Analytics:
    """Recompute analytics from the user's documents and persist the snapshot."""
    tasks = [Task.from_dict(t) for t in store.read(user_id, "tasks") if isinstance(t, dict)]
    preferences = Preferences.from_dict(store.read(user_id, "preferences"))
    chats = [ChatEntry.from_dict(c) for c in store.read(user_id, "aichat") if isinstance(c, dict)]

    with store.locked(user_id, "analytics"):
        previous = load_analytics(store, user_id)
        summary = compute_analytics(tasks, preferences, chats, now, previous)
        store.write(user_id, "analytics", summary.to_dict())
    return summary


def refresh_analytics_quietly(store: DocumentStore, user_id: str, now: datetime) -> Analytics | None:
    """Best-effort refresh after a task mutation; failures are logged, not raised."""
    try:
        return refresh_analytics(store, user_id, now)
    except Exception:
        logger.exception("Analytics refresh failed for user %s", user_id)
        return None
