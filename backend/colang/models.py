"""SQLModel data models.

This module defines the tables behind the user store and the desktop
authorization code store. Route handlers and services never see these
rows directly; the repositories map them to the plain objects in
`colang.domain`.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


def _now() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    """A registered learner.

    Fields:
    - `email`: unique, stored lower-cased
    - `deactivated_at`: set once the account is switched off; such an
      account can no longer log in or use its tokens
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str = Field(index=True, nullable=False, unique=True)
    created_at: datetime = Field(default_factory=_now)
    deactivated_at: Optional[datetime] = None


class Password(SQLModel, table=True):
    """A password credential; the newest row per user is the current one.

    An empty `hash` means the account has no usable password.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    hash: str
    created_at: datetime = Field(default_factory=_now)


class AuthCode(SQLModel, table=True):
    """A one-time desktop authorization code, stored by digest only."""
    __tablename__ = "auth_codes"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    code_hash: str = Field(unique=True, index=True)
    redirect_uri: str
    state: str
    expires_at: datetime
    used_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_now)
