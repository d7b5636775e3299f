"""Tests for timeswap/config.py — settings resolution and logging setup."""

import logging
from pathlib import Path

from timeswap.config import ENV_KEYS, Settings, configure_logging


def test_defaults():
    s = Settings()
    assert s.chat_daily_limit == 10
    assert s.chat_history_limit == 100
    assert s.jwt_expire_days == 7
    assert s.mail_configured is False
    assert s.google_configured is False


def test_from_dict_coerces_types():
    s = Settings.from_dict({
        "data_root": "~/somewhere",
        "chat_daily_limit": "3",
        "cors_origins": "http://a.test, http://b.test",
        "smtp_port": 587,
        "unknown": "ignored",
    })
    assert s.data_root == Path("~/somewhere").expanduser()
    assert s.chat_daily_limit == 3
    assert s.cors_origins == ["http://a.test", "http://b.test"]
    assert s.smtp_port == 587


def test_calendar_redirect_uri():
    assert Settings(public_url="https://app.test/").calendar_redirect_uri == (
        "https://app.test/api/calendar/callback"
    )
    assert Settings(google_redirect_uri="https://x.test/cb").calendar_redirect_uri == "https://x.test/cb"


def test_load_env_overrides_yaml(tmp_path, monkeypatch):
    root = tmp_path / "data"
    root.mkdir()
    (root / "timeswap.yaml").write_text(
        "chat_daily_limit: 5\njwt_secret: from-yaml\ntimezone: Europe/Berlin\n", encoding="utf-8"
    )
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv("TIMESWAP_CONFIG", raising=False)
    monkeypatch.setenv("TIMESWAP_DATA_ROOT", str(root))
    monkeypatch.setenv("JWT_SECRET", "from-env")

    s = Settings.load(env_file=tmp_path / "missing.env")
    assert s.data_root == root
    assert s.chat_daily_limit == 5
    assert s.jwt_secret == "from-env"
    assert s.timezone == "Europe/Berlin"


def test_load_explicit_config_path(tmp_path, monkeypatch):
    config = tmp_path / "custom.yaml"
    config.write_text("chat_history_limit: 20\n", encoding="utf-8")
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("TIMESWAP_DATA_ROOT", str(tmp_path))
    monkeypatch.setenv("TIMESWAP_CONFIG", str(config))

    assert Settings.load(env_file=tmp_path / "missing.env").chat_history_limit == 20


def test_configure_logging_installs_one_handler():
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    try:
        configure_logging("debug")
        configure_logging("info")
        ours = [h for h in root.handlers if getattr(h, "_timeswap", False)]
        assert len(ours) == 1
        assert root.level == logging.INFO
    finally:
        root.handlers = before
        root.setLevel(level)


def test_configure_logging_to_file(tmp_path):
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    log_file = tmp_path / "logs" / "tui.log"
    try:
        root.handlers = [h for h in before if not getattr(h, "_timeswap", False)]
        configure_logging("warning", log_file=log_file)
        ours = [h for h in root.handlers if getattr(h, "_timeswap", False)]
        assert len(ours) == 1
        assert isinstance(ours[0], logging.FileHandler)
        logging.getLogger("timeswap.test").warning("written to file")
        ours[0].flush()
        assert "written to file" in log_file.read_text(encoding="utf-8")
    finally:
        for h in root.handlers:
            if h not in before:
                h.close()
        root.handlers = before
        root.setLevel(level)
