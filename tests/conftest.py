"""Shared test fixtures for TimeSwap tests."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from timeswap import accounts
from timeswap.config import Settings
from timeswap.store import DocumentStore

# Wednesday, mid-afternoon UTC: "medium" energy hour.
NOW = datetime(2026, 2, 11, 15, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def fast_password_hashing(monkeypatch):
    monkeypatch.setattr(accounts, "PBKDF2_ITERATIONS", 1000)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def data_root(tmp_path: Path) -> Path:
    root = tmp_path / "data"
    root.mkdir()
    return root


@pytest.fixture
def settings(data_root: Path) -> Settings:
    return Settings(
        data_root=data_root,
        jwt_secret="test-secret",
        timezone="UTC",
        public_url="http://testserver",
    )


@pytest.fixture
def store(data_root: Path) -> DocumentStore:
    return DocumentStore(data_root)


@pytest.fixture
def user_id(store: DocumentStore) -> str:
    store.ensure_user("user-1")
    return "user-1"


class FakeMailer:
    """Records outgoing mail instead of talking to SMTP."""

    configured = True

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []

    def send(self, to: str, subject: str, html: str) -> None:
        self.sent.append((to, subject, html))


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()
