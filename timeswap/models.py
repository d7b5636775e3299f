"""Typed dataclasses for the TimeSwap data model.

All models use from_dict/to_dict for JSON serialization.
camelCase in JSON is mapped to snake_case in Python.
Missing keys use defaults; unknown keys on user-authored documents are
kept in ``extra`` so they round-trip untouched.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

PRIORITIES = ("low", "medium", "high", "urgent")
ENERGY_LEVELS = ("low", "medium", "high")

DEFAULT_WORK_DAYS = ["monday", "tuesday", "wednesday", "thursday", "friday"]
DEFAULT_NOTIFICATIONS = {
    "taskReminders": True,
    "aiSuggestions": True,
    "breakReminders": True,
    "weeklyReports": True,
}


def _int_or_none(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def _str_list(value: Any, default: list[str]) -> list[str]:
    """List of strings, or *default* when *value* is not a list."""
    if not isinstance(value, list):
        return list(default)
    return [str(x) for x in value]


def _split_extra(d: dict[str, Any], known: set[str]) -> dict[str, Any]:
    return {k: v for k, v in d.items() if k not in known}


# ── Tasks ─────────────────────────────────────────────────────


TASK_KEYS = {
    "id", "title", "description", "completed", "completedAt", "createdAt",
    "deadline", "priority", "category", "duration", "energyRequired",
}


@dataclass
class Task:
    id: str = ""
    title: str = ""
    description: str = ""
    completed: bool = False
    completed_at: str | None = None
    created_at: str | None = None
    deadline: str | None = None
    priority: str = "medium"  # low, medium, high, urgent
    category: str = "general"
    duration: int | None = None  # minutes
    energy_required: str | None = None  # low, medium, high
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Task:
        return cls(
            id=str(d.get("id", "")),
            title=str(d.get("title", "") or ""),
            description=str(d.get("description", "") or ""),
            completed=bool(d.get("completed", False)),
            completed_at=d.get("completedAt") or None,
            created_at=d.get("createdAt") or None,
            deadline=d.get("deadline") or None,
            priority=str(d.get("priority") or "medium"),
            category=str(d.get("category") or "general"),
            duration=_int_or_none(d.get("duration")),
            energy_required=d.get("energyRequired") or None,
            extra=_split_extra(d, TASK_KEYS),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = dict(self.extra)
        d.update({
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "completed": self.completed,
            "completedAt": self.completed_at,
            "createdAt": self.created_at,
            "deadline": self.deadline,
            "priority": self.priority,
            "category": self.category,
            "duration": self.duration,
            "energyRequired": self.energy_required,
        })
        return d


# ── Preferences ───────────────────────────────────────────────


PREFERENCE_KEYS = {
    "workingHours", "workDays", "energyPeaks", "preferredBreakDuration",
    "focusBlockLength", "taskCategories", "notifications",
    "onboardingCompleted", "onboardingCompletedAt",
}


@dataclass
class WorkingHours:
    start: str = "09:00"
    end: str = "17:00"

    @classmethod
    def from_dict(cls, d: Any) -> WorkingHours:
        if not isinstance(d, dict):
            return cls()
        return cls(start=str(d.get("start", "09:00")), end=str(d.get("end", "17:00")))

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start, "end": self.end}


@dataclass
class Preferences:
    working_hours: WorkingHours = field(default_factory=WorkingHours)
    work_days: list[str] = field(default_factory=lambda: list(DEFAULT_WORK_DAYS))
    energy_peaks: list[str] = field(default_factory=lambda: ["morning"])
    preferred_break_duration: int = 15
    focus_block_length: int = 60
    task_categories: list[str] = field(default_factory=list)
    notifications: dict[str, bool] = field(default_factory=lambda: dict(DEFAULT_NOTIFICATIONS))
    onboarding_completed: bool = False
    onboarding_completed_at: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Preferences:
        if not d or not isinstance(d, dict):
            return cls()
        notifications = dict(DEFAULT_NOTIFICATIONS)
        if isinstance(d.get("notifications"), dict):
            notifications.update({k: bool(v) for k, v in d["notifications"].items()})
        work_days = [x.lower() for x in _str_list(d.get("workDays"), DEFAULT_WORK_DAYS)]
        return cls(
            working_hours=WorkingHours.from_dict(d.get("workingHours")),
            work_days=work_days or list(DEFAULT_WORK_DAYS),
            energy_peaks=_str_list(d.get("energyPeaks", ["morning"]), ["morning"]),
            preferred_break_duration=_int_or_none(d.get("preferredBreakDuration")) or 15,
            focus_block_length=_int_or_none(d.get("focusBlockLength")) or 60,
            task_categories=_str_list(d.get("taskCategories"), []),
            notifications=notifications,
            onboarding_completed=bool(d.get("onboardingCompleted", False)),
            onboarding_completed_at=d.get("onboardingCompletedAt"),
            extra=_split_extra(d, PREFERENCE_KEYS),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = dict(self.extra)
        d.update({
            "workingHours": self.working_hours.to_dict(),
            "workDays": list(self.work_days),
            "energyPeaks": list(self.energy_peaks),
            "preferredBreakDuration": self.preferred_break_duration,
            "focusBlockLength": self.focus_block_length,
            "taskCategories": list(self.task_categories),
            "notifications": dict(self.notifications),
            "onboardingCompleted": self.onboarding_completed,
            "onboardingCompletedAt": self.onboarding_completed_at,
        })
        return d


def validate_preferences(d: dict[str, Any]) -> list[str]:
    """Type errors in a client preferences payload (empty if valid)."""
    errors = []
    for key in ("workDays", "energyPeaks", "taskCategories"):
        value = d.get(key)
        if value is not None and not (
            isinstance(value, list) and all(isinstance(x, str) for x in value)
        ):
            errors.append(f"{key} must be a list of strings")
    for key in ("preferredBreakDuration", "focusBlockLength"):
        value = d.get(key)
        if value is None:
            continue
        if isinstance(value, bool) or _int_or_none(value) is None or _int_or_none(value) < 0:
            errors.append(f"{key} must be a whole number of minutes")
    for key in ("workingHours", "notifications"):
        if d.get(key) is not None and not isinstance(d[key], dict):
            errors.append(f"{key} must be an object")
    return errors


# ── AI chat ───────────────────────────────────────────────────


@dataclass
class ChatEntry:
    id: str = ""
    message: str = ""
    response: str = ""
    timestamp: str = ""

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ChatEntry:
        return cls(
            id=str(d.get("id", "")),
            message=str(d.get("message", "") or ""),
            response=str(d.get("response", "") or ""),
            timestamp=str(d.get("timestamp", "") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "message": self.message,
            "response": self.response,
            "timestamp": self.timestamp,
        }


# ── Schedule ──────────────────────────────────────────────────


@dataclass
class Schedule:
    events: list[dict[str, Any]] = field(default_factory=list)
    optimized_schedule: list[Any] = field(default_factory=list)
    last_optimized: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Schedule:
        if not d or not isinstance(d, dict):
            return cls()
        return cls(
            events=[e for e in (d.get("events") or []) if isinstance(e, dict)],
            optimized_schedule=list(d.get("optimizedSchedule") or []),
            last_optimized=d.get("lastOptimized"),
            extra=_split_extra(d, {"events", "optimizedSchedule", "lastOptimized"}),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = dict(self.extra)
        d.update({
            "events": self.events,
            "optimizedSchedule": self.optimized_schedule,
            "lastOptimized": self.last_optimized,
        })
        return d


# ── Analytics ─────────────────────────────────────────────────


@dataclass
class CategoryTime:
    hours: float = 0.0
    percentage: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"hours": self.hours, "percentage": self.percentage}


@dataclass
class DayStat:
    date: str = ""
    day: str = ""
    completion_rate: int = 0
    tasks_completed: int = 0
    total_tasks: int = 0

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> DayStat:
        return cls(
            date=str(d.get("date", "")),
            day=str(d.get("day", "")),
            completion_rate=int(d.get("completionRate", 0) or 0),
            tasks_completed=int(d.get("tasksCompleted", 0) or 0),
            total_tasks=int(d.get("totalTasks", 0) or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "day": self.day,
            "completionRate": self.completion_rate,
            "tasksCompleted": self.tasks_completed,
            "totalTasks": self.total_tasks,
        }


@dataclass
class Trends:
    completed: int = 0
    focus: int = 0
    total_tasks: int = 0
    ai_usage: int = 0

    @classmethod
    def from_dict(cls, d: Any) -> Trends:
        if not isinstance(d, dict):
            return cls()
        return cls(
            completed=int(d.get("completed", 0) or 0),
            focus=int(d.get("focus", 0) or 0),
            total_tasks=int(d.get("totalTasks", 0) or 0),
            ai_usage=int(d.get("aiUsage", 0) or 0),
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "completed": self.completed,
            "focus": self.focus,
            "totalTasks": self.total_tasks,
            "aiUsage": self.ai_usage,
        }


@dataclass
class Baseline:
    """Metric values of the last snapshot taken on an earlier day."""

    date: str = ""
    completed_today: int = 0
    focus_time: float = 0.0
    total_tasks: int = 0
    ai_usage: int = 0

    @classmethod
    def from_dict(cls, d: Any) -> Baseline | None:
        if not isinstance(d, dict) or not d.get("date"):
            return None
        return cls(
            date=str(d["date"]),
            completed_today=int(d.get("completedToday", 0) or 0),
            focus_time=float(d.get("focusTime", 0.0) or 0.0),
            total_tasks=int(d.get("totalTasks", 0) or 0),
            ai_usage=int(d.get("aiUsage", 0) or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "completedToday": self.completed_today,
            "focusTime": self.focus_time,
            "totalTasks": self.total_tasks,
            "aiUsage": self.ai_usage,
        }


@dataclass
class Analytics:
    total_tasks: int = 0
    completed_today: int = 0
    focus_time: float = 0.0
    ai_usage_today: int = 0
    trends: Trends = field(default_factory=Trends)
    time_distribution: dict[str, CategoryTime] = field(default_factory=dict)
    weekly_data: list[DayStat] = field(default_factory=list)
    baseline: Baseline | None = None
    last_calculated: str | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Analytics:
        if not d or not isinstance(d, dict):
            return cls()
        distribution = {}
        for name, v in (d.get("timeDistribution") or {}).items():
            if isinstance(v, dict):
                distribution[name] = CategoryTime(
                    hours=float(v.get("hours", 0) or 0),
                    percentage=int(v.get("percentage", 0) or 0),
                )
        return cls(
            total_tasks=int(d.get("totalTasks", 0) or 0),
            completed_today=int(d.get("completedToday", 0) or 0),
            focus_time=float(d.get("focusTime", 0) or 0),
            ai_usage_today=int(d.get("aiUsageToday", 0) or 0),
            trends=Trends.from_dict(d.get("trends")),
            time_distribution=distribution,
            weekly_data=[DayStat.from_dict(x) for x in (d.get("weeklyData") or []) if isinstance(x, dict)],
            baseline=Baseline.from_dict(d.get("baseline")),
            last_calculated=d.get("lastCalculated"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalTasks": self.total_tasks,
            "completedToday": self.completed_today,
            "focusTime": self.focus_time,
            "aiUsageToday": self.ai_usage_today,
            "trends": self.trends.to_dict(),
            "timeDistribution": {k: v.to_dict() for k, v in self.time_distribution.items()},
            "weeklyData": [x.to_dict() for x in self.weekly_data],
            "baseline": self.baseline.to_dict() if self.baseline else None,
            "lastCalculated": self.last_calculated,
        }


# ── Profile ───────────────────────────────────────────────────


PROFILE_KEYS = {
    "id", "firstName", "lastName", "name", "email", "password", "createdAt",
    "lastLogin", "settings", "twoFactorEnabled", "pendingTwoFactor",
    "passwordReset", "passwordChangedAt", "googleCalendarTokens",
}

# Keys a client may never set through a profile update.
PROTECTED_PROFILE_KEYS = {
    "id", "email", "password", "createdAt", "lastLogin", "twoFactorEnabled",
    "pendingTwoFactor", "passwordReset", "passwordChangedAt", "googleCalendarTokens",
    "chatUsage",
}


@dataclass
class Profile:
    id: str = ""
    first_name: str = ""
    last_name: str = ""
    name: str = ""
    email: str = ""
    password: str = ""  # salted hash
    created_at: str | None = None
    last_login: str | None = None
    settings: dict[str, Any] = field(
        default_factory=lambda: {"theme": "light", "notifications": True, "timezone": "UTC"}
    )
    two_factor_enabled: bool = False
    pending_two_factor: dict[str, Any] | None = None
    password_reset: dict[str, Any] | None = None
    password_changed_at: str | None = None
    google_calendar_tokens: dict[str, Any] | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Profile:
        if not d or not isinstance(d, dict):
            return cls()
        return cls(
            id=str(d.get("id", "")),
            first_name=str(d.get("firstName", "") or ""),
            last_name=str(d.get("lastName", "") or ""),
            name=str(d.get("name", "") or ""),
            email=str(d.get("email", "") or ""),
            password=str(d.get("password", "") or ""),
            created_at=d.get("createdAt"),
            last_login=d.get("lastLogin"),
            settings=dict(d["settings"]) if isinstance(d.get("settings"), dict) else {},
            two_factor_enabled=bool(d.get("twoFactorEnabled", False)),
            pending_two_factor=d.get("pendingTwoFactor") or None,
            password_reset=d.get("passwordReset") or None,
            password_changed_at=d.get("passwordChangedAt"),
            google_calendar_tokens=d.get("googleCalendarTokens") or None,
            extra=_split_extra(d, PROFILE_KEYS),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = dict(self.extra)
        d.update({
            "id": self.id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "name": self.name,
            "email": self.email,
            "password": self.password,
            "createdAt": self.created_at,
            "lastLogin": self.last_login,
            "settings": self.settings,
            "twoFactorEnabled": self.two_factor_enabled,
        })
        if self.pending_two_factor:
            d["pendingTwoFactor"] = self.pending_two_factor
        if self.password_reset:
            d["passwordReset"] = self.password_reset
        if self.password_changed_at:
            d["passwordChangedAt"] = self.password_changed_at
        if self.google_calendar_tokens:
            d["googleCalendarTokens"] = self.google_calendar_tokens
        return d

    def to_public_dict(self) -> dict[str, Any]:
        """Client-safe view: no hash, codes, reset tokens or OAuth tokens."""
        d: dict[str, Any] = dict(self.extra)
        d.update({
            "id": self.id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "name": self.name,
            "email": self.email,
            "createdAt": self.created_at,
            "lastLogin": self.last_login,
            "settings": self.settings,
            "twoFactorEnabled": self.two_factor_enabled,
            "googleCalendarConnected": bool(self.google_calendar_tokens),
        })
        return d
