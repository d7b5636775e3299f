"""Tests for timeswap/models.py — from_dict/to_dict mapping and defaults."""

from timeswap.models import (
    Analytics,
    Baseline,
    Preferences,
    Profile,
    Schedule,
    Task,
    validate_preferences,
)


def test_task_defaults():
    t = Task.from_dict({"title": "Write"})
    assert t.priority == "medium"
    assert t.category == "general"
    assert t.completed is False
    assert t.completed_at is None
    assert t.duration is None


def test_task_camel_case_mapping():
    t = Task.from_dict({
        "id": "t1",
        "title": "Write",
        "completedAt": "2026-02-11T10:00:00.000Z",
        "createdAt": "2026-02-10T10:00:00.000Z",
        "energyRequired": "high",
        "duration": "45",
    })
    assert t.completed_at == "2026-02-11T10:00:00.000Z"
    assert t.created_at == "2026-02-10T10:00:00.000Z"
    assert t.energy_required == "high"
    assert t.duration == 45

    d = t.to_dict()
    assert d["energyRequired"] == "high"
    assert d["completedAt"] == "2026-02-11T10:00:00.000Z"
    assert "energy_required" not in d


def test_task_unknown_keys_round_trip():
    t = Task.from_dict({"id": "t1", "title": "X", "color": "blue", "tags": ["a"]})
    assert t.extra == {"color": "blue", "tags": ["a"]}
    d = t.to_dict()
    assert d["color"] == "blue"
    assert d["tags"] == ["a"]


def test_task_extra_cannot_shadow_core_keys():
    t = Task(id="t1", title="Real", extra={"title": "Fake"})
    assert t.to_dict()["title"] == "Real"


def test_preferences_missing_keys_use_defaults():
    p = Preferences.from_dict({"focusBlockLength": 90})
    assert p.focus_block_length == 90
    assert p.preferred_break_duration == 15
    assert p.work_days[0] == "monday"
    assert p.notifications["weeklyReports"] is True


def test_preferences_explicit_empty_peaks_kept():
    assert Preferences.from_dict({"energyPeaks": []}).energy_peaks == []
    assert Preferences.from_dict({"focusBlockLength": 30}).energy_peaks == ["morning"]


def test_preferences_keeps_unknown_keys():
    d = Preferences.from_dict({"theme": "dark"}).to_dict()
    assert d["theme"] == "dark"
    assert d["taskCategories"] == []


def test_preferences_non_list_values_fall_back_to_defaults():
    p = Preferences.from_dict({
        "energyPeaks": "morning",
        "workDays": "monday",
        "taskCategories": "work",
        "preferredBreakDuration": float("inf"),
    })
    assert p.energy_peaks == ["morning"]
    assert p.work_days == ["monday", "tuesday", "wednesday", "thursday", "friday"]
    assert p.task_categories == []
    assert p.preferred_break_duration == 15


def test_validate_preferences():
    assert validate_preferences({"energyPeaks": ["evening"], "focusBlockLength": 45}) == []
    errors = validate_preferences({
        "energyPeaks": "morning",
        "workDays": ["monday", 3],
        "preferredBreakDuration": float("inf"),
        "focusBlockLength": -10,
        "workingHours": "9-5",
    })
    assert errors == [
        "workDays must be a list of strings",
        "energyPeaks must be a list of strings",
        "preferredBreakDuration must be a whole number of minutes",
        "focusBlockLength must be a whole number of minutes",
        "workingHours must be an object",
    ]


def test_schedule_round_trip():
    s = Schedule.from_dict({"events": [{"summary": "Standup"}], "lastOptimized": "x", "note": 1})
    assert s.events == [{"summary": "Standup"}]
    assert s.to_dict()["note"] == 1


def test_analytics_zero_state():
    d = Analytics().to_dict()
    assert d["totalTasks"] == 0
    assert d["focusTime"] == 0.0
    assert d["baseline"] is None
    assert d["lastCalculated"] is None


def test_analytics_from_dict_with_baseline():
    a = Analytics.from_dict({
        "totalTasks": 3,
        "baseline": {"date": "2026-02-10", "completedToday": 2, "focusTime": 1.5},
        "timeDistribution": {"work": {"hours": 1.0, "percentage": 50}},
        "weeklyData": [{"date": "2026-02-10", "day": "Tue", "completionRate": 50}],
    })
    assert a.total_tasks == 3
    assert a.baseline.completed_today == 2
    assert a.time_distribution["work"].percentage == 50
    assert a.weekly_data[0].completion_rate == 50


def test_baseline_without_date_is_none():
    assert Baseline.from_dict({"completedToday": 1}) is None


def test_profile_public_view_hides_secrets():
    p = Profile.from_dict({
        "id": "u1",
        "email": "a@example.com",
        "password": "pbkdf2_sha256$1$salt$hash",
        "pendingTwoFactor": {"code": "123456"},
        "passwordReset": {"token": "abc"},
        "googleCalendarTokens": {"access_token": "tok"},
        "avatar": "cat.png",
    })
    public = p.to_public_dict()
    for key in ("password", "pendingTwoFactor", "passwordReset", "googleCalendarTokens"):
        assert key not in public
    assert public["googleCalendarConnected"] is True
    assert public["avatar"] == "cat.png"


def test_profile_to_dict_omits_unset_optional_keys():
    d = Profile(id="u1", email="a@example.com").to_dict()
    assert "pendingTwoFactor" not in d
    assert "googleCalendarTokens" not in d
    assert d["settings"]["theme"] == "light"


def test_profile_non_dict_settings_fall_back_to_empty():
    assert Profile.from_dict({"id": "u1", "settings": "dark"}).settings == {}
