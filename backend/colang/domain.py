"""Plain domain objects handed between repositories, services and routes."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class UserAccount:
    id: int
    name: str
    email: str
    created_at: datetime
    deactivated_at: Optional[datetime] = None

    @property
    def is_deactivated(self) -> bool:
        return self.deactivated_at is not None


@dataclass(frozen=True)
class DesktopAuthCode:
    """A stored desktop code. `code_hash` never leaves the server."""
    id: int
    user_id: int
    code_hash: str
    redirect_uri: str
    state: str
    expires_at: datetime
    created_at: datetime
    used_at: Optional[datetime] = None

    @property
    def is_used(self) -> bool:
        return self.used_at is not None


@dataclass(frozen=True)
class IssuedDesktopCode:
    """What the client receives when a desktop code is created."""
    code: str
    redirect_uri: str
    state: str
    expires_at: datetime
