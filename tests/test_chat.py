"""Tests for timeswap/chat.py — intent matching, canned answers, daily quota."""

import threading
from datetime import timedelta

import pytest

from timeswap import chat
from timeswap.chat import (
    ChatContext,
    clear_chats,
    generate_response,
    list_chats,
    match_intent,
    send_message,
)
from timeswap.errors import QuotaExceededError, ValidationError
from timeswap.models import Preferences, Task
from timeswap.workspace import to_iso


# ── Responder ─────────────────────────────────────────────────


@pytest.mark.parametrize("message,intent", [
    ("Help me FOCUS", "focus"),
    ("I can't concentrate", "focus"),
    ("How can I be more productive?", "productivity"),
    ("What does my schedule look like today?", "schedule"),
    ("Sync my calendar", "schedule"),
    ("How many tasks do I have?", "tasks"),
    ("What's on my schedule for these tasks?", "schedule"),
    ("help me focus on my tasks", "focus"),
    ("hello there", None),
])
def test_match_intent(message, intent):
    assert match_intent(message) == intent


def test_default_welcome_without_tasks(now):
    reply = generate_response("hello", ChatContext(now=now))
    assert reply.startswith("Welcome to TimeSwap AI!")


def test_default_with_tasks(now):
    ctx = ChatContext(tasks=[Task(id="1", title="A")], now=now)
    assert "1 active tasks" in generate_response("hello", ctx)


def test_focus_prefers_important_task(now):
    ctx = ChatContext(
        tasks=[Task(id="1", title="Email"), Task(id="2", title="Ship release", priority="urgent")],
        now=now,
        energy_level="high",
    )
    reply = generate_response("what should I focus on", ctx)
    assert '"Ship release"' in reply
    assert "high energy level" in reply
    assert "urgent priority" in reply


def test_focus_without_active_tasks(now):
    ctx = ChatContext(tasks=[Task(id="1", title="A", completed=True)], now=now)
    assert "don't have any active tasks" in generate_response("focus", ctx)


def test_productivity_uses_preferences(now):
    prefs = Preferences(energy_peaks=["morning", "evening"], preferred_break_duration=10, focus_block_length=50)
    ctx = ChatContext(tasks=[Task(id="1", title="A", completed=True)], preferences=prefs, now=now)
    reply = generate_response("productivity tips", ctx)
    assert "completed 1 tasks" in reply
    assert "morning, evening" in reply
    assert "10-minute breaks every 50 minutes" in reply


def test_schedule_counts_deadlines_within_a_day(now):
    tasks = [
        Task(id="1", title="A", deadline=to_iso(now + timedelta(hours=5))),
        Task(id="2", title="B", deadline=to_iso(now + timedelta(days=3))),
        Task(id="3", title="C", deadline=to_iso(now - timedelta(hours=1))),
    ]
    reply = generate_response("What does my schedule look like today?", ChatContext(tasks=tasks, now=now))
    assert reply.startswith("You have 1 task due within 24 hours")


def test_schedule_manageable(now):
    ctx = ChatContext(tasks=[Task(id="1", title="A")], now=now)
    assert generate_response("schedule?", ctx) == "Your schedule looks manageable! You have 1 active tasks."


def test_tasks_summary(now):
    ctx = ChatContext(tasks=[Task(id="1", title="A"), Task(id="2", title="B", completed=True)], now=now)
    assert generate_response("my tasks", ctx) == (
        "You currently have 1 active tasks and have completed 1 tasks."
    )


# ── Log & quota ───────────────────────────────────────────────


def test_send_message_appends_to_log(store, user_id, now):
    entry = send_message(store, user_id, "  hello  ", now)
    assert entry.message == "hello"
    assert entry.timestamp == to_iso(now)
    assert entry.response.startswith("Welcome to TimeSwap AI!")
    assert [c.id for c in list_chats(store, user_id)] == [entry.id]


def test_send_message_requires_text(store, user_id, now):
    with pytest.raises(ValidationError):
        send_message(store, user_id, "   ", now)


def test_eleventh_message_is_rejected(store, user_id, now, monkeypatch):
    for i in range(10):
        send_message(store, user_id, f"message {i}", now)

    calls = []
    monkeypatch.setattr(chat, "generate_response", lambda *a: calls.append(a) or "x")
    with pytest.raises(QuotaExceededError) as exc:
        send_message(store, user_id, "one more", now)

    assert exc.value.limit == 10
    assert exc.value.reset_at == "2026-02-12T00:00:00.000Z"
    assert calls == []
    assert len(list_chats(store, user_id)) == 10


def test_quota_resets_next_day(store, user_id, now):
    send_message(store, user_id, "a", now, daily_limit=1)
    with pytest.raises(QuotaExceededError):
        send_message(store, user_id, "b", now, daily_limit=1)
    send_message(store, user_id, "c", now + timedelta(days=1), daily_limit=1)


def test_clearing_log_keeps_quota(store, user_id, now):
    send_message(store, user_id, "a", now, daily_limit=2)
    send_message(store, user_id, "b", now, daily_limit=2)
    clear_chats(store, user_id)
    assert list_chats(store, user_id) == []
    with pytest.raises(QuotaExceededError):
        send_message(store, user_id, "c", now, daily_limit=2)


def test_history_is_trimmed_to_newest(store, user_id, now):
    for i in range(5):
        send_message(store, user_id, f"m{i}", now, history_limit=3)
    assert [c.message for c in list_chats(store, user_id)] == ["m2", "m3", "m4"]
    assert store.read(user_id, "profile")["chatUsage"] == {"date": "2026-02-11", "count": 5}


def test_answer_reflects_current_tasks(store, user_id, now):
    store.write(user_id, "tasks", [Task(id="t1", title="Report", priority="high").to_dict()])
    entry = send_message(store, user_id, "What should I focus on?", now)
    assert '"Report"' in entry.response


def test_focus_answer_follows_display_order(store, user_id, now):
    store.write(user_id, "tasks", [
        Task(id="a", title="Write report", priority="high").to_dict(),
        Task(id="b", title="Fix outage", priority="urgent").to_dict(),
    ])
    entry = send_message(store, user_id, "What should I focus on?", now)
    assert '"Fix outage"' in entry.response


def test_concurrent_messages_respect_quota(store, user_id, now):
    sent, rejected = [], []

    def ask(i):
        try:
            sent.append(send_message(store, user_id, f"m{i}", now, daily_limit=5))
        except QuotaExceededError:
            rejected.append(i)

    threads = [threading.Thread(target=ask, args=(i,)) for i in range(12)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(sent) == 5
    assert len(rejected) == 7
    assert len(list_chats(store, user_id)) == 5
    assert store.read(user_id, "profile")["chatUsage"] == {"date": "2026-02-11", "count": 5}
