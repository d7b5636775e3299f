"""Rule-based chat assistant for TimeSwap.

The "AI" is a keyword matcher over an ordered list of intent groups; the
first group with a keyword contained in the lower-cased message wins.
Each intent builds a canned answer from the user's current tasks and
preferences. No model is called.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from timeswap.errors import QuotaExceededError, ValidationError
from timeswap.models import ChatEntry, Preferences, Task
from timeswap.ranking import energy_level_for
from timeswap.store import DocumentStore
from timeswap.tasks import list_tasks
from timeswap.workspace import hours_until, is_same_day, to_iso

logger = logging.getLogger(__name__)

DEFAULT_DAILY_LIMIT = 10
DEFAULT_HISTORY_LIMIT = 100

# Order matters: "What's on my schedule for these tasks?" is a schedule question.
INTENTS: list[tuple[str, tuple[str, ...]]] = [
    ("focus", ("focus", "concentrate")),
    ("productivity", ("productivity", "productive")),
    ("schedule", ("schedule", "calendar")),
    ("tasks", ("task", "tasks")),
]


@dataclass
class ChatContext:
    tasks: list[Task] = field(default_factory=list)
    preferences: Preferences = field(default_factory=Preferences)
    now: datetime = field(default_factory=lambda: datetime.now().astimezone())
    energy_level: str = "medium"


# ── Responder ─────────────────────────────────────────────────


def match_intent(message: str) -> str | None:
    """Name of the first intent group matching *message*, or None."""
    lower = message.lower()
    for name, keywords in INTENTS:
        if any(k in lower for k in keywords):
            return name
    return None


def _plural(n: int, word: str) -> str:
    return f"{n} {word}{'s' if n != 1 else ''}"


def focus_response(active: list[Task], energy_level: str) -> str:
    if not active:
        return "You don't have any active tasks right now! Consider adding some tasks to your list."

    important = [t for t in active if t.priority in ("high", "urgent")]
    if important:
        task = important[0]
        return (
            f'Based on your current {energy_level} energy level, I recommend focusing on '
            f'"{task.title}" - it\'s marked as {task.priority} priority.'
        )

    task = active[0]
    return (
        f'I suggest working on "{task.title}" next. '
        f"Your {energy_level} energy level is good for this type of task."
    )


def productivity_response(completed: list[Task], preferences: Preferences) -> str:
    peaks = ", ".join(preferences.energy_peaks) or "not set yet"
    tips = [
        f"You've completed {len(completed)} tasks so far - great progress!",
        f"Your peak energy times are {peaks}.",
        f"Take {preferences.preferred_break_duration}-minute breaks every "
        f"{preferences.focus_block_length} minutes.",
        "Batch similar tasks together to reduce context switching.",
    ]
    return " ".join(tips)


def schedule_response(active: list[Task], now: datetime) -> str:
    if not active:
        return "Your schedule is clear! Add some tasks and I'll help you organize them optimally."

    due_soon = []
    for t in active:
        hours = hours_until(t.deadline, now)
        if hours is not None and 0 < hours <= 24:
            due_soon.append(t)

    if due_soon:
        return (
            f"You have {_plural(len(due_soon), 'task')} due within 24 hours. "
            "I recommend prioritizing these first."
        )
    return f"Your schedule looks manageable! You have {len(active)} active tasks."


def tasks_response(active: list[Task], completed: list[Task]) -> str:
    if not active and not completed:
        return "You haven't added any tasks yet! Start by creating your first task."
    return (
        f"You currently have {len(active)} active tasks and have completed "
        f"{len(completed)} tasks."
    )


def default_response(active: list[Task], completed: list[Task]) -> str:
    if not active and not completed:
        return (
            "Welcome to TimeSwap AI! I'm here to help optimize your productivity. "
            "Start by adding some tasks."
        )
    return (
        "I'm here to help optimize your schedule! You currently have "
        f"{len(active)} active tasks. What would you like to improve?"
    )


def generate_response(message: str, context: ChatContext) -> str:
    """Pick a canned, task-aware answer for *message*."""
    active = [t for t in context.tasks if not t.completed]
    completed = [t for t in context.tasks if t.completed]

    intent = match_intent(message)
    if intent == "focus":
        return focus_response(active, context.energy_level)
    if intent == "productivity":
        return productivity_response(completed, context.preferences)
    if intent == "schedule":
        return schedule_response(active, context.now)
    if intent == "tasks":
        return tasks_response(active, completed)
    return default_response(active, completed)


# ── Chat log & quota ──────────────────────────────────────────


def list_chats(store: DocumentStore, user_id: str) -> list[ChatEntry]:
    return [ChatEntry.from_dict(c) for c in store.read(user_id, "aichat") if isinstance(c, dict)]


def chats_today(chats: list[ChatEntry], now: datetime) -> int:
    return sum(1 for c in chats if is_same_day(c.timestamp, now.date(), now.tzinfo))


def _usage_today(profile: dict[str, Any], now: datetime) -> int:
    usage = profile.get("chatUsage")
    if isinstance(usage, dict) and usage.get("date") == now.date().isoformat():
        return int(usage.get("count", 0) or 0)
    return 0


def _next_midnight(now: datetime) -> datetime:
    tomorrow = now.date() + timedelta(days=1)
    return datetime(tomorrow.year, tomorrow.month, tomorrow.day, tzinfo=now.tzinfo)


def build_context(store: DocumentStore, user_id: str, now: datetime) -> ChatContext:
    return ChatContext(
        tasks=list_tasks(store, user_id),
        preferences=Preferences.from_dict(store.read(user_id, "preferences")),
        now=now,
        energy_level=energy_level_for(now),
    )


def send_message(
    store: DocumentStore,
    user_id: str,
    message: str,
    now: datetime,
    daily_limit: int = DEFAULT_DAILY_LIMIT,
    history_limit: int = DEFAULT_HISTORY_LIMIT,
) -> ChatEntry:
    """Answer *message*, append the exchange to the log and count it.

    The daily count is kept on the profile so clearing the log does not
    reset it; it also never falls below the number of exchanges logged
    today. Over the limit, QuotaExceededError is raised before the
    responder runs.
    """
    if not isinstance(message, str) or not message.strip():
        raise ValidationError("Message is required")

    with store.transaction(user_id, "profile") as profile, store.locked(user_id, "aichat"):
        chats = list_chats(store, user_id)
        used = max(_usage_today(profile, now), chats_today(chats, now))
        if used >= daily_limit:
            logger.info("Chat quota reached for user %s (%d/%d)", user_id, used, daily_limit)
            raise QuotaExceededError(
                "You have reached your daily limit of AI chat messages. Please try again tomorrow.",
                limit=daily_limit,
                reset_at=to_iso(_next_midnight(now)),
            )

        response = generate_response(message, build_context(store, user_id, now))
        entry = ChatEntry(
            id=str(uuid.uuid4()),
            message=message.strip(),
            response=response,
            timestamp=to_iso(now),
        )
        chats.append(entry)
        if len(chats) > history_limit:
            chats = chats[-history_limit:]
        store.write(user_id, "aichat", [c.to_dict() for c in chats])

        profile["chatUsage"] = {"date": now.date().isoformat(), "count": used + 1}

    return entry


def clear_chats(store: DocumentStore, user_id: str) -> None:
    """Drop the whole chat log. The daily quota count is kept."""
    with store.locked(user_id, "aichat"):
        store.write(user_id, "aichat", [])
