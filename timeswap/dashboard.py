"""Dashboard summary, recommendations and today's agenda."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from timeswap.models import Analytics, Task
from timeswap.ranking import energy_level_for
from timeswap.workspace import hours_until, is_same_day, parse_timestamp

MAX_RECOMMENDATIONS = 3


def energy_percentage(now: datetime) -> int:
    """Fill level of the energy meter for the hour of *now*."""
    hour = now.hour
    if 9 <= hour <= 11:
        return 85
    if 14 <= hour <= 16:
        return 65
    if hour >= 20 or hour <= 6:
        return 30
    return 50


def overdue_tasks(tasks: list[Task], now: datetime) -> list[Task]:
    result = []
    for t in tasks:
        if t.completed:
            continue
        hours = hours_until(t.deadline, now)
        if hours is not None and hours < 0:
            result.append(t)
    return result


def build_recommendations(tasks: list[Task], now: datetime) -> list[dict[str, str]]:
    """Up to three short suggestions, each ``{"icon", "text"}``."""
    active = [t for t in tasks if not t.completed]
    if not tasks:
        return []
    if not active:
        return [{
            "icon": "check-circle",
            "text": "Great job! All tasks completed. Consider adding new goals for tomorrow.",
        }]

    recs = []
    important = [t for t in active if t.priority in ("high", "urgent")]
    if important:
        first = important[0]
        recs.append({
            "icon": "exclamation-triangle",
            "text": f'Focus on "{first.title}" - it\'s marked as {first.priority} priority.',
        })

    overdue = overdue_tasks(active, now)
    if overdue:
        n = len(overdue)
        recs.append({
            "icon": "clock",
            "text": f"You have {n} overdue task{'s' if n > 1 else ''}. "
                    "Consider rescheduling or breaking them into smaller parts.",
        })

    if 9 <= now.hour <= 11 and any(t.energy_required == "high" for t in active):
        recs.append({
            "icon": "bolt",
            "text": "Morning energy is high! Perfect time for demanding tasks like coding or creative work.",
        })

    if not recs:
        recs.append({
            "icon": "lightbulb",
            "text": "Your schedule looks balanced. Consider time-blocking your tasks for better focus.",
        })
    return recs[:MAX_RECOMMENDATIONS]


def todays_schedule(
    tasks: list[Task], events: list[dict[str, Any]], now: datetime
) -> list[dict[str, Any]]:
    """Tasks due today and today's calendar events, in time order."""
    tz = now.tzinfo
    today = now.date()
    items: list[tuple[datetime, dict[str, Any]]] = []

    for t in tasks:
        if not is_same_day(t.deadline, today, tz):
            continue
        items.append((parse_timestamp(t.deadline, tz), {
            "type": "task",
            "id": t.id,
            "title": t.title,
            "time": t.deadline,
            "completed": t.completed,
        }))

    for e in events:
        start = e.get("start")
        if isinstance(start, dict):
            start = start.get("dateTime") or start.get("date")
        if not is_same_day(start, today, tz):
            continue
        items.append((parse_timestamp(start, tz), {
            "type": "event",
            "id": e.get("id"),
            "title": e.get("summary") or "(no title)",
            "time": start,
        }))

    items.sort(key=lambda pair: pair[0])
    return [item for _, item in items]


def build_summary(tasks: list[Task], analytics: Analytics, now: datetime) -> dict[str, Any]:
    """Headline numbers for the dashboard."""
    active = [t for t in tasks if not t.completed]
    level = energy_level_for(now)
    return {
        "totalTasks": len(active),
        "completedToday": analytics.completed_today,
        "focusTime": analytics.focus_time,
        "aiSuggestions": analytics.ai_usage_today,
        "trends": analytics.trends.to_dict(),
        "upcomingDeadlines": sum(1 for t in active if t.deadline),
        "overdue": len(overdue_tasks(active, now)),
        "energyLevel": level,
        "energyPercentage": energy_percentage(now),
    }
