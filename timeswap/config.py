"""Settings for TimeSwap.

Resolution order (later wins): dataclass defaults, the YAML config file,
environment variables (a local .env file is loaded first).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

from timeswap.fileio import read_yaml

logger = logging.getLogger(__name__)

DEFAULT_JWT_SECRET = "fallback-secret-key-for-development"

# env var -> settings field
ENV_KEYS = {
    "TIMESWAP_DATA_ROOT": "data_root",
    "JWT_SECRET": "jwt_secret",
    "JWT_EXPIRE_DAYS": "jwt_expire_days",
    "AI_CHAT_DAILY_LIMIT": "chat_daily_limit",
    "CHAT_HISTORY_LIMIT": "chat_history_limit",
    "TIMESWAP_TIMEZONE": "timezone",
    "SMTP_HOST": "smtp_host",
    "SMTP_PORT": "smtp_port",
    "EMAIL_USER": "email_user",
    "EMAIL_APP_PASSWORD": "email_password",
    "GOOGLE_CLIENT_ID": "google_client_id",
    "GOOGLE_CLIENT_SECRET": "google_client_secret",
    "GOOGLE_REDIRECT_URI": "google_redirect_uri",
    "PRODUCTION_URL": "public_url",
    "CORS_ORIGINS": "cors_origins",
    "LOG_LEVEL": "log_level",
}


def default_data_root() -> Path:
    return Path.home() / "timeswap"


@dataclass
class Settings:
    data_root: Path = field(default_factory=default_data_root)
    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_algorithm: str = "HS256"
    jwt_expire_days: int = 7
    chat_daily_limit: int = 10
    chat_history_limit: int = 100
    timezone: str = ""  # empty = server local time
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 465
    email_user: str = ""
    email_password: str = ""
    google_client_id: str = ""
    google_client_secret: str = ""
    google_redirect_uri: str = ""
    public_url: str = "http://127.0.0.1:4567"
    cors_origins: list[str] = field(default_factory=list)
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Settings:
        """Build settings from a flat mapping, coercing types per field."""
        settings = cls()
        for f in fields(cls):
            if f.name not in d or d[f.name] is None:
                continue
            value = d[f.name]
            current = getattr(settings, f.name)
            if isinstance(current, Path):
                value = Path(str(value)).expanduser()
            elif isinstance(current, bool):
                value = str(value).strip().lower() in {"1", "true", "yes", "on"}
            elif isinstance(current, int):
                value = int(value)
            elif isinstance(current, list):
                if isinstance(value, str):
                    value = [v.strip() for v in value.split(",") if v.strip()]
                else:
                    value = [str(v) for v in value]
            else:
                value = str(value)
            setattr(settings, f.name, value)
        return settings

    @classmethod
    def load(cls, env_file: Path | None = None) -> Settings:
        """Load settings from .env, the YAML config file and the environment."""
        load_dotenv(dotenv_path=env_file, override=False)

        env_values = {
            name: os.environ[key] for key, name in ENV_KEYS.items() if os.environ.get(key)
        }
        data_root = Path(env_values.get("data_root", str(default_data_root()))).expanduser()
        config_path = Path(
            os.environ.get("TIMESWAP_CONFIG", str(data_root / "timeswap.yaml"))
        ).expanduser()

        merged: dict[str, Any] = dict(read_yaml(config_path))
        merged.update(env_values)
        settings = cls.from_dict(merged)

        if settings.jwt_secret == DEFAULT_JWT_SECRET:
            logger.warning("JWT_SECRET not set; using the development fallback secret")
        return settings

    def tzinfo(self) -> tzinfo:
        """Timezone that defines calendar-day boundaries."""
        if self.timezone:
            return ZoneInfo(self.timezone)
        return datetime.now().astimezone().tzinfo

    @property
    def mail_configured(self) -> bool:
        return bool(self.email_user and self.email_password)

    @property
    def google_configured(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)

    @property
    def calendar_redirect_uri(self) -> str:
        return self.google_redirect_uri or f"{self.public_url.rstrip('/')}/api/calendar/callback"


def configure_logging(level: str = "INFO", log_file: Path | None = None) -> None:
    """Install one timestamped handler on the root logger.

    Logs go to stderr, or append to *log_file* when one is given.
    """
    root = logging.getLogger()
    if not any(getattr(h, "_timeswap", False) for h in root.handlers):
        if log_file is not None:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            handler: logging.Handler = logging.FileHandler(log_file, encoding="utf-8")
        else:
            handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
        )
        handler._timeswap = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    root.setLevel(level.upper())
