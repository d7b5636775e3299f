"""Per-user JSON document store for TimeSwap.

Each user owns a directory under ``<data_root>/accounts/<user_id>/`` with
one JSON file per resource. Reads of a missing file return the resource's
default document; writes replace the whole file atomically.

Consistency: writers inside one process are serialized per
(user_id, resource) through ``locked()``. Separate processes sharing a
data root are not coordinated and the last writer wins.
"""

from __future__ import annotations

import copy
import json
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from timeswap.errors import StorageError, ValidationError
from timeswap.fileio import read_json, write_json_atomic
from timeswap.models import Analytics, Preferences, Schedule
from timeswap.workspace import (
    RESOURCE_FILES,
    accounts_root,
    is_valid_user_id,
    resource_path,
    user_dir,
)

logger = logging.getLogger(__name__)

LIST_RESOURCES = {"tasks", "aichat"}


def default_document(resource: str) -> Any:
    """Fresh default document for a resource that has never been written."""
    if resource in LIST_RESOURCES:
        return []
    if resource == "preferences":
        return Preferences().to_dict()
    if resource == "analytics":
        return Analytics().to_dict()
    if resource == "schedule":
        return Schedule().to_dict()
    if resource == "profile":
        return {}
    raise ValueError(f"Unknown resource: {resource}")


class DocumentStore:
    """Whole-document read/write keyed by (user_id, resource)."""

    def __init__(self, data_root: Path) -> None:
        self.data_root = Path(data_root)
        self._locks: dict[tuple[str, str], threading.RLock] = {}
        self._locks_guard = threading.Lock()

    # ── Namespace ─────────────────────────────────────────────

    def _check(self, user_id: str, resource: str) -> None:
        if resource not in RESOURCE_FILES:
            raise ValueError(f"Unknown resource: {resource}")
        if not is_valid_user_id(user_id):
            raise ValidationError(f"Invalid user id: {user_id!r}")

    def ensure_user(self, user_id: str) -> Path:
        """Provision the user's storage directory (idempotent)."""
        if not is_valid_user_id(user_id):
            raise ValidationError(f"Invalid user id: {user_id!r}")
        path = user_dir(self.data_root, user_id)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create storage for user {user_id}: {e}") from e
        return path

    def user_exists(self, user_id: str) -> bool:
        return is_valid_user_id(user_id) and user_dir(self.data_root, user_id).is_dir()

    def list_users(self) -> list[str]:
        """All provisioned user ids, sorted."""
        root = accounts_root(self.data_root)
        if not root.is_dir():
            return []
        try:
            return sorted(p.name for p in root.iterdir() if p.is_dir() and is_valid_user_id(p.name))
        except OSError as e:
            raise StorageError(f"Cannot list accounts: {e}") from e

    # ── Documents ─────────────────────────────────────────────

    def read(self, user_id: str, resource: str) -> Any:
        """Return the stored document, or the resource default if absent."""
        self._check(user_id, resource)
        self.ensure_user(user_id)
        path = resource_path(self.data_root, user_id, resource)
        try:
            data = read_json(path)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise StorageError(f"Corrupt {path.name} for user {user_id}: {e}") from e
        except OSError as e:
            raise StorageError(f"Cannot read {path.name} for user {user_id}: {e}") from e

        if data is None:
            return default_document(resource)
        expected = list if resource in LIST_RESOURCES else dict
        if not isinstance(data, expected):
            raise StorageError(
                f"Corrupt {path.name} for user {user_id}: expected a JSON {expected.__name__}"
            )
        return data

    def write(self, user_id: str, resource: str, document: Any) -> None:
        """Persist the full document, replacing prior content atomically."""
        self._check(user_id, resource)
        self.ensure_user(user_id)
        path = resource_path(self.data_root, user_id, resource)
        with self._lock_for(user_id, resource):
            try:
                write_json_atomic(path, copy.deepcopy(document))
            except (OSError, TypeError, ValueError) as e:
                logger.error("Error writing %s for user %s: %s", path.name, user_id, e)
                raise StorageError(f"Cannot write {path.name} for user {user_id}: {e}") from e

    @contextmanager
    def locked(self, user_id: str, resource: str) -> Iterator[None]:
        """Hold the (user_id, resource) lock across a read-modify-write."""
        self._check(user_id, resource)
        with self._lock_for(user_id, resource):
            yield

    @contextmanager
    def transaction(self, user_id: str, resource: str) -> Iterator[Any]:
        """Yield the document for in-place edits; write it back on clean exit.

        An exception inside the block leaves the stored document untouched.
        """
        with self.locked(user_id, resource):
            document = self.read(user_id, resource)
            yield document
            self.write(user_id, resource, document)

    def _lock_for(self, user_id: str, resource: str) -> threading.RLock:
        key = (user_id, resource)
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock
