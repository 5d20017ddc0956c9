"""Repository classes encapsulating database operations.

Each repository is small and focused on a single store (users and their
passwords, desktop authorization codes). Rows are mapped to the frozen
objects in `colang.domain` before they leave this module, so services
and routes never hold live ORM instances.
"""

from datetime import datetime, timezone
from typing import Optional, Protocol

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from . import models
from .credentials import Conflict
from .domain import DesktopAuthCode, UserAccount


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands datetimes back without tzinfo; everything stored is UTC.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _to_user(row: models.User) -> UserAccount:
    return UserAccount(
        id=row.id,
        name=row.name,
        email=row.email,
        created_at=_as_utc(row.created_at),
        deactivated_at=_as_utc(row.deactivated_at),
    )


def _to_code(row: models.AuthCode) -> DesktopAuthCode:
    return DesktopAuthCode(
        id=row.id,
        user_id=row.user_id,
        code_hash=row.code_hash,
        redirect_uri=row.redirect_uri,
        state=row.state,
        expires_at=_as_utc(row.expires_at),
        created_at=_as_utc(row.created_at),
        used_at=_as_utc(row.used_at),
    )


class UserRepository:
    """User records and their password credentials."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, name: str, email: str) -> UserAccount:
        """Persist a new user; a taken email raises `Conflict`."""
        row = models.User(name=name, email=email)
        self.session.add(row)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise Conflict("email already registered") from None
        self.session.refresh(row)
        return _to_user(row)

    def get(self, user_id: int) -> Optional[UserAccount]:
        """Get a user by primary key."""
        row = self.session.get(models.User, user_id)
        return _to_user(row) if row else None

    def get_by_email(self, email: str) -> Optional[UserAccount]:
        """Return a user by (lower-cased) email or `None` if not found."""
        stmt = select(models.User).where(models.User.email == email)
        row = self.session.exec(stmt).first()
        return _to_user(row) if row else None

    def get_password_hash(self, user_id: int) -> Optional[str]:
        """Return the newest password hash for `user_id`, `None` if it has none."""
        stmt = (
            select(models.Password.hash)
            .where(models.Password.user_id == user_id)
            .order_by(col(models.Password.id).desc())
        )
        return self.session.exec(stmt).first()

    def set_password(self, user_id: int, password_hash: str) -> None:
        """Append a new password row; older rows stay as history."""
        self.session.add(models.Password(user_id=user_id, hash=password_hash))
        self.session.commit()

    def deactivate(self, user_id: int, when: datetime) -> Optional[UserAccount]:
        """Mark the account deactivated, blank its password and burn its unused codes."""
        row = self.session.get(models.User, user_id)
        if not row:
            return None
        if row.deactivated_at is None:
            row.deactivated_at = when
            self.session.add(row)
            self.session.add(models.Password(user_id=user_id, hash=""))
            # Outstanding desktop codes die with the account.
            self.session.exec(
                update(models.AuthCode)
                .where(col(models.AuthCode.user_id) == user_id, col(models.AuthCode.used_at).is_(None))
                .values(used_at=when)
                .execution_options(synchronize_session=False)
            )
            self.session.commit()
            self.session.refresh(row)
        return _to_user(row)


class UserLookup(Protocol):
    """What `DesktopCodeService` needs to know about code owners."""

    def get(self, user_id: int) -> Optional[UserAccount]: ...


class AuthCodeStore(Protocol):
    """What `DesktopCodeService` needs from a desktop code store."""

    def insert(self, user_id: int, code_hash: str, redirect_uri: str, state: str,
               expires_at: datetime) -> DesktopAuthCode: ...

    def get_by_hash(self, code_hash: str) -> Optional[DesktopAuthCode]: ...

    def consume(self, code_hash: str, redirect_uri: str, now: datetime) -> Optional[DesktopAuthCode]: ...


class AuthCodeRepository:
    """SQL-backed desktop authorization code store."""
    def __init__(self, session: Session):
        self.session = session

    def insert(self, user_id: int, code_hash: str, redirect_uri: str, state: str,
               expires_at: datetime) -> DesktopAuthCode:
        """Store a new unused code row."""
        row = models.AuthCode(
            user_id=user_id,
            code_hash=code_hash,
            redirect_uri=redirect_uri,
            state=state,
            expires_at=expires_at,
        )
        self.session.add(row)
        self.session.commit()
        self.session.refresh(row)
        return _to_code(row)

    def get_by_hash(self, code_hash: str) -> Optional[DesktopAuthCode]:
        stmt = select(models.AuthCode).where(models.AuthCode.code_hash == code_hash)
        row = self.session.exec(stmt).first()
        return _to_code(row) if row else None

    def consume(self, code_hash: str, redirect_uri: str, now: datetime) -> Optional[DesktopAuthCode]:
        """Mark a matching unused, unexpired code as used.

        The check and the write are one conditional UPDATE, so when two
        requests race on the same code only one of them changes a row.
        Returns the consumed code, or `None` if nothing matched.
        """
        stmt = (
            update(models.AuthCode)
            .where(
                col(models.AuthCode.code_hash) == code_hash,
                col(models.AuthCode.redirect_uri) == redirect_uri,
                col(models.AuthCode.used_at).is_(None),
                col(models.AuthCode.expires_at) > now,
            )
            .values(used_at=now)
            .execution_options(synchronize_session=False)
        )
        result = self.session.exec(stmt)
        if result.rowcount != 1:
            self.session.rollback()
            return None
        self.session.commit()
        return self.get_by_hash(code_hash)
