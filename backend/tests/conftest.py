import os
import tempfile
import threading
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import pytest

# Point the app at a throwaway SQLite file before any test module imports it.
_TMP_ROOT = Path(tempfile.mkdtemp(prefix="colang-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP_ROOT / 'app.db'}"
os.environ["JWT_SECRET"] = "test-secret-0123456789-abcdefghijklmnop"
os.environ["LOGIN_RATE_LIMIT_PER_MIN"] = "1000"

from colang.domain import DesktopAuthCode, UserAccount  # noqa: E402

SECRET = os.environ["JWT_SECRET"]


class InMemoryAuthCodeStore:
    """Desktop code store kept in a dict; `consume` is atomic under a lock."""

    def __init__(self):
        self._rows: dict[str, DesktopAuthCode] = {}
        self._lock = threading.Lock()
        self._next_id = 1

    def insert(self, user_id, code_hash, redirect_uri, state, expires_at) -> DesktopAuthCode:
        with self._lock:
            row = DesktopAuthCode(
                id=self._next_id,
                user_id=user_id,
                code_hash=code_hash,
                redirect_uri=redirect_uri,
                state=state,
                expires_at=expires_at,
                created_at=datetime.now(timezone.utc),
            )
            self._next_id += 1
            self._rows[code_hash] = row
            return row

    def get_by_hash(self, code_hash) -> Optional[DesktopAuthCode]:
        return self._rows.get(code_hash)

    def consume(self, code_hash, redirect_uri, now: datetime) -> Optional[DesktopAuthCode]:
        with self._lock:
            row = self._rows.get(code_hash)
            if row is None or row.redirect_uri != redirect_uri or row.used_at is not None or now >= row.expires_at:
                return None
            used = replace(row, used_at=now)
            self._rows[code_hash] = used
            return used


class InMemoryUsers:
    """Every id is an active user until `deactivate` or `remove` is called."""

    def __init__(self):
        self._deactivated: dict[int, datetime] = {}
        self._removed: set[int] = set()

    def get(self, user_id) -> Optional[UserAccount]:
        if user_id in self._removed:
            return None
        return UserAccount(
            id=user_id,
            name=f"user-{user_id}",
            email=f"user-{user_id}@example.com",
            created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
            deactivated_at=self._deactivated.get(user_id),
        )

    def deactivate(self, user_id):
        self._deactivated[user_id] = datetime.now(timezone.utc)

    def remove(self, user_id):
        self._removed.add(user_id)


@pytest.fixture
def users():
    return InMemoryUsers()


@pytest.fixture
def code_store():
    return InMemoryAuthCodeStore()


@pytest.fixture
def settings():
    from colang.config import Settings
    return Settings()
