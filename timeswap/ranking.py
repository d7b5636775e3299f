"""Task ranking for TimeSwap.

Two orderings:

- ``sort_tasks``: the deterministic list order used for display
  (incomplete first, then priority, then deadline).
- ``optimize_tasks``: the "optimize with AI" order, scoring each active
  task as priority weight x energy match x deadline urgency.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from timeswap.models import Task
from timeswap.workspace import hours_until, parse_timestamp


# ── Weights ───────────────────────────────────────────────────

PRIORITY_WEIGHTS = {"urgent": 4, "high": 3, "medium": 2, "low": 1}
DEFAULT_PRIORITY_WEIGHT = 2

# user energy -> task energy requirement -> multiplier
ENERGY_MATCH = {
    "high": {"high": 2.0, "medium": 1.0, "low": 0.5},
    "medium": {"high": 1.5, "medium": 2.0, "low": 1.0},
    "low": {"high": 0.5, "medium": 1.0, "low": 2.0},
}
DEFAULT_ENERGY_MATCH = 1.0


def priority_weight(priority: str | None) -> int:
    return PRIORITY_WEIGHTS.get(priority or "", DEFAULT_PRIORITY_WEIGHT)


def energy_level_for(now: datetime) -> str:
    """Current user energy from the wall-clock hour of *now*."""
    hour = now.hour
    if 9 <= hour <= 11:
        return "high"
    if 14 <= hour <= 16:
        return "medium"
    if hour >= 20 or hour <= 6:
        return "low"
    return "medium"


def energy_match_score(user_energy: str | None, task_energy: str | None) -> float:
    row = ENERGY_MATCH.get(user_energy or "")
    if row is None:
        return DEFAULT_ENERGY_MATCH
    return row.get(task_energy or "", DEFAULT_ENERGY_MATCH)


def deadline_urgency_score(deadline: str | None, now: datetime) -> int:
    """3 if due within 2 hours, 2 within 24 hours, else 1.

    Overdue deadlines (negative hours) also score 3.
    """
    hours = hours_until(deadline, now)
    if hours is None:
        return 1
    if hours < 2:
        return 3
    if hours < 24:
        return 2
    return 1


def score_breakdown(task: Task, now: datetime, energy: str | None = None) -> dict[str, Any]:
    """Individual scoring factors and their product for one task."""
    if energy is None:
        energy = energy_level_for(now)
    weight = priority_weight(task.priority)
    match = energy_match_score(energy, task.energy_required)
    urgency = deadline_urgency_score(task.deadline, now)
    return {
        "taskId": task.id,
        "priorityWeight": weight,
        "energyMatch": match,
        "deadlineUrgency": urgency,
        "score": weight * match * urgency,
    }


def score_task(task: Task, now: datetime, energy: str | None = None) -> float:
    return score_breakdown(task, now, energy)["score"]


# ── Orderings ─────────────────────────────────────────────────


def _deadline_key(task: Task) -> datetime | None:
    return parse_timestamp(task.deadline)


def sort_tasks(tasks: list[Task]) -> list[Task]:
    """Stable display order.

    1. Incomplete before completed.
    2. Higher priority weight first.
    3. Within equal status and priority, tasks with a deadline are put in
       deadline order among the positions they already occupy; tasks
       without one stay where they are.
    """
    def group(t: Task) -> tuple[bool, int]:
        return (t.completed, -priority_weight(t.priority))

    result = sorted(tasks, key=group)

    start = 0
    while start < len(result):
        key = group(result[start])
        end = start
        while end < len(result) and group(result[end]) == key:
            end += 1
        slots = [i for i in range(start, end) if _deadline_key(result[i]) is not None]
        dated = sorted((result[i] for i in slots), key=_deadline_key)
        for i, t in zip(slots, dated):
            result[i] = t
        start = end

    return result


def optimize_tasks(tasks: list[Task], now: datetime, energy: str | None = None) -> list[Task]:
    """Active tasks by descending score, then completed tasks in prior order."""
    if energy is None:
        energy = energy_level_for(now)
    active = [t for t in tasks if not t.completed]
    completed = [t for t in tasks if t.completed]
    ranked = sorted(active, key=lambda t: -score_task(t, now, energy))
    return ranked + completed
