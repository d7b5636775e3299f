"""Task CRUD, validation and completion lifecycle for TimeSwap."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any

from timeswap.analytics import refresh_analytics_quietly
from timeswap.errors import NotFoundError, ValidationError
from timeswap.models import ENERGY_LEVELS, PRIORITIES, Schedule, Task
from timeswap.ranking import energy_level_for, optimize_tasks, score_breakdown, sort_tasks
from timeswap.store import DocumentStore
from timeswap.workspace import parse_timestamp, to_iso

logger = logging.getLogger(__name__)

# Server-owned fields a client cannot set on update.
IMMUTABLE_FIELDS = {"id", "createdAt", "completedAt"}


# ── Validation ────────────────────────────────────────────────


def validate_task(task: dict[str, Any]) -> list[str]:
    """Validate task fields and return list of errors (empty if valid)."""
    errors = []
    title = task.get("title")
    if title is None:
        errors.append("Missing required field: title")
    elif not isinstance(title, str) or not title.strip():
        errors.append("title must be a non-empty string")

    priority = task.get("priority")
    if priority is not None and priority not in PRIORITIES:
        errors.append(f"Invalid priority: {priority}")

    energy = task.get("energyRequired")
    if energy not in (None, "") and energy not in ENERGY_LEVELS:
        errors.append(f"Invalid energyRequired: {energy}")

    duration = task.get("duration")
    if duration not in (None, ""):
        if isinstance(duration, bool) or not isinstance(duration, (int, float, str)):
            errors.append("duration must be a whole number of minutes")
        else:
            try:
                if int(duration) < 0:
                    errors.append("duration must not be negative")
            except (ValueError, OverflowError):
                errors.append("duration must be a whole number of minutes")

    deadline = task.get("deadline")
    if deadline not in (None, "") and parse_timestamp(deadline) is None:
        errors.append(f"Invalid deadline: {deadline}")

    if "completed" in task and not isinstance(task["completed"], bool):
        errors.append("completed must be a boolean")

    return errors


# ── Collection helpers ────────────────────────────────────────


def load_tasks(store: DocumentStore, user_id: str) -> list[Task]:
    return [Task.from_dict(t) for t in store.read(user_id, "tasks") if isinstance(t, dict)]


def save_tasks(store: DocumentStore, user_id: str, tasks: list[Task]) -> None:
    store.write(user_id, "tasks", [t.to_dict() for t in tasks])


def find_task(tasks: list[Task], task_id: str) -> Task | None:
    """Find a task by ID."""
    for t in tasks:
        if t.id == task_id:
            return t
    return None


def set_completed(task: Task, completed: bool, now: datetime) -> None:
    """Set completion state, keeping completedAt non-null exactly when completed."""
    if completed and not task.completed_at:
        task.completed_at = to_iso(now)
    elif not completed:
        task.completed_at = None
    task.completed = completed


# ── CRUD ──────────────────────────────────────────────────────


def list_tasks(store: DocumentStore, user_id: str) -> list[Task]:
    """All tasks in display order."""
    return sort_tasks(load_tasks(store, user_id))


def create_task(store: DocumentStore, user_id: str, data: dict[str, Any], now: datetime) -> Task:
    """Validate and append a new task, then refresh analytics."""
    errors = validate_task(data)
    if errors:
        raise ValidationError(errors)

    fields = {k: v for k, v in data.items() if k not in IMMUTABLE_FIELDS and k != "completed"}
    task = Task.from_dict(fields)
    task.id = str(uuid.uuid4())
    task.title = task.title.strip()
    task.created_at = to_iso(now)
    set_completed(task, False, now)

    with store.locked(user_id, "tasks"):
        tasks = load_tasks(store, user_id)
        tasks.append(task)
        save_tasks(store, user_id, tasks)

    logger.info("Created task %s for user %s", task.id, user_id)
    refresh_analytics_quietly(store, user_id, now)
    return task


def update_task(
    store: DocumentStore, user_id: str, task_id: str, updates: dict[str, Any], now: datetime
) -> Task:
    """Merge *updates* into a task. Raises NotFoundError / ValidationError."""
    with store.locked(user_id, "tasks"):
        tasks = load_tasks(store, user_id)
        existing = find_task(tasks, task_id)
        if existing is None:
            raise NotFoundError(f"Task not found: {task_id}")

        merged = existing.to_dict()
        merged.update({k: v for k, v in updates.items() if k not in IMMUTABLE_FIELDS})
        errors = validate_task(merged)
        if errors:
            raise ValidationError(errors)

        updated = Task.from_dict(merged)
        updated.title = updated.title.strip()
        updated.completed = existing.completed
        updated.completed_at = existing.completed_at
        set_completed(updated, bool(merged.get("completed", False)), now)

        tasks[tasks.index(existing)] = updated
        save_tasks(store, user_id, tasks)

    refresh_analytics_quietly(store, user_id, now)
    return updated


def toggle_task(store: DocumentStore, user_id: str, task_id: str, now: datetime) -> Task:
    """Flip a task's completion state."""
    with store.locked(user_id, "tasks"):
        task = find_task(load_tasks(store, user_id), task_id)
        if task is None:
            raise NotFoundError(f"Task not found: {task_id}")
        return update_task(store, user_id, task_id, {"completed": not task.completed}, now)


def delete_task(store: DocumentStore, user_id: str, task_id: str, now: datetime) -> None:
    """Remove a task permanently."""
    with store.locked(user_id, "tasks"):
        tasks = load_tasks(store, user_id)
        remaining = [t for t in tasks if t.id != task_id]
        if len(remaining) == len(tasks):
            raise NotFoundError(f"Task not found: {task_id}")
        save_tasks(store, user_id, remaining)

    logger.info("Deleted task %s for user %s", task_id, user_id)
    refresh_analytics_quietly(store, user_id, now)


# ── AI optimize ───────────────────────────────────────────────


def optimize_user_tasks(
    store: DocumentStore, user_id: str, now: datetime, energy: str | None = None
) -> list[Task]:
    """Reorder the stored task list by AI-optimize score and record the run.

    The scored breakdown of active tasks is saved to the schedule document.
    """
    if energy is None:
        energy = energy_level_for(now)

    with store.locked(user_id, "tasks"):
        optimized = optimize_tasks(load_tasks(store, user_id), now, energy)
        save_tasks(store, user_id, optimized)

    with store.locked(user_id, "schedule"):
        schedule = Schedule.from_dict(store.read(user_id, "schedule"))
        schedule.optimized_schedule = [
            dict(score_breakdown(t, now, energy), title=t.title)
            for t in optimized
            if not t.completed
        ]
        schedule.last_optimized = to_iso(now)
        store.write(user_id, "schedule", schedule.to_dict())

    return optimized
