"""Business logic services used by HTTP controllers.

Services coordinate the repositories with the credential primitives in
`colang.credentials`. They validate input, raise the coarse `AuthError`
taxonomy and never return password hashes or code digests to callers.
"""

import logging
from datetime import datetime
from typing import Callable, Tuple

from sqlmodel import Session

from . import credentials, repositories
from .config import Settings
from .credentials import BadRequest, InvalidToken, Unauthorized
from .domain import IssuedDesktopCode, UserAccount

logger = logging.getLogger("colang.auth")

MIN_PASSWORD_LENGTH = 8
INVALID_CODE = "invalid or expired code"
Clock = Callable[[], datetime]


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def _check_new_password(password: str) -> None:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise BadRequest(f"password must be at least {MIN_PASSWORD_LENGTH} characters")


class AuthService:
    """Registration, login and account credential operations."""
    def __init__(self, session: Session, settings: Settings, clock: Clock = credentials.utc_now):
        self.session = session
        self.settings = settings
        self.clock = clock
        self.user_repo = repositories.UserRepository(session)

    def issue_token(self, user: UserAccount) -> str:
        return credentials.issue_access_token(
            user.id, self.settings.JWT_SECRET, self.settings.jwt_ttl, now=self.clock()
        )

    def register(self, name: str, email: str, password: str) -> Tuple[UserAccount, str]:
        """Create a user with a hashed password and return it with a fresh token.

        Raises `BadRequest` for a blank email or a short password and
        `Conflict` when the email is already registered.
        """
        email = normalize_email(email)
        if not email:
            raise BadRequest("email is required")
        _check_new_password(password)
        name = (name or "").strip() or email.split("@", 1)[0]
        # Hash before touching the database so a hashing failure leaves no half-created user.
        password_hash = credentials.hash_password(password)
        user = self.user_repo.create(name, email)
        self.user_repo.set_password(user.id, password_hash)
        logger.info("registered user=%s", user.id)
        return user, self.issue_token(user)

    def authenticate(self, email: str, password: str) -> Tuple[UserAccount, str]:
        """Verify credentials and return the user with a signed access token.

        Unknown email, deactivated account, missing credential and wrong
        password all raise the same `Unauthorized`.
        """
        email = normalize_email(email)
        if not email:
            raise BadRequest("email is required")
        user = self.user_repo.get_by_email(email)
        if not user:
            credentials.spend_verify_time(password)
            logger.info("login failed: unknown account")
            raise Unauthorized(credentials.INVALID_CREDENTIALS)
        stored = self.user_repo.get_password_hash(user.id) or ""
        try:
            credentials.verify_password(password, stored, deactivated=user.is_deactivated)
        except Unauthorized:
            logger.info("login failed user=%s", user.id)
            raise
        logger.info("login ok user=%s", user.id)
        return user, self.issue_token(user)

    def resolve_token(self, token: str) -> UserAccount:
        """Return the active user a bearer token belongs to.

        Any problem with the token or the account raises `InvalidToken`.
        """
        claims = credentials.decode_access_token(token, self.settings.JWT_SECRET)
        user = self.user_repo.get(claims.user_id)
        if not user or user.is_deactivated:
            raise InvalidToken()
        return user

    def change_password(self, user: UserAccount, current_password: str, new_password: str) -> None:
        """Replace the user's password after checking the current one."""
        stored = self.user_repo.get_password_hash(user.id) or ""
        credentials.verify_password(current_password, stored, deactivated=user.is_deactivated)
        _check_new_password(new_password)
        self.user_repo.set_password(user.id, credentials.hash_password(new_password))
        logger.info("password changed user=%s", user.id)

    def deactivate(self, user: UserAccount, password: str) -> UserAccount:
        """Deactivate the account after re-checking its password."""
        stored = self.user_repo.get_password_hash(user.id) or ""
        credentials.verify_password(password, stored, deactivated=user.is_deactivated)
        updated = self.user_repo.deactivate(user.id, self.clock())
        if not updated:
            raise Unauthorized(credentials.INVALID_CREDENTIALS)
        logger.info("deactivated user=%s", user.id)
        return updated


class DesktopCodeService:
    """Issue and redeem one-time desktop authorization codes.

    The raw code is returned to the client once and only its SHA-256
    digest is stored. Redemption relies on the store's atomic `consume`
    so a code can be exchanged for a token at most once.
    """
    def __init__(self, store: repositories.AuthCodeStore, users: repositories.UserLookup,
                 settings: Settings, clock: Clock = credentials.utc_now):
        self.store = store
        self.users = users
        self.settings = settings
        self.clock = clock

    def issue(self, user_id: int, redirect_uri: str, state: str) -> IssuedDesktopCode:
        if not (redirect_uri or "").strip():
            raise BadRequest("redirect_uri is required")
        if not (state or "").strip():
            raise BadRequest("state is required")
        code = credentials.random_code()
        expires_at = self.clock() + self.settings.desktop_code_ttl
        self.store.insert(user_id, credentials.hash_code(code), redirect_uri, state, expires_at)
        logger.info("desktop code issued user=%s expires=%s", user_id, expires_at.isoformat())
        return IssuedDesktopCode(code=code, redirect_uri=redirect_uri, state=state, expires_at=expires_at)

    def consume(self, raw_code: str, redirect_uri: str) -> str:
        """Redeem `raw_code` for an access token.

        Unknown, expired, already used and lost-race codes, and codes whose
        owner is gone or deactivated, all raise the same `Unauthorized`.
        """
        if not (raw_code or "").strip() or not (redirect_uri or "").strip():
            raise BadRequest("code and redirect_uri are required")
        now = self.clock()
        consumed = self.store.consume(credentials.hash_code(raw_code), redirect_uri, now)
        if consumed is None:
            logger.info("desktop code rejected")
            raise Unauthorized(INVALID_CODE)
        owner = self.users.get(consumed.user_id)
        if owner is None or owner.is_deactivated:
            logger.info("desktop code rejected: inactive owner user=%s", consumed.user_id)
            raise Unauthorized(INVALID_CODE)
        logger.info("desktop code consumed user=%s", consumed.user_id)
        return credentials.issue_access_token(
            consumed.user_id, self.settings.JWT_SECRET, self.settings.jwt_ttl, now=now
        )
