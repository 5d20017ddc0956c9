"""Credential primitives: password hashing, access tokens and desktop codes.

This module is the only place that touches the cryptographic libraries.
It wraps :class:`argon2.PasswordHasher` (Argon2id) for passwords,
:mod:`jwt` (PyJWT, HS256) for bearer tokens and :mod:`hashlib` /
:mod:`secrets` for the one-time desktop authorization codes.

Every failure leaves this module as one of the coarse :class:`AuthError`
subclasses below. Callers never see a library exception, and the public
message of an error never tells "wrong password" apart from "deactivated"
or "expired token" apart from "tampered token".
"""

from __future__ import annotations

import hashlib
import logging
import math
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional, Union

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import HashingError as Argon2HashingError
from argon2.exceptions import VerificationError

logger = logging.getLogger("colang.auth")

PWD_HASHER = PasswordHasher()
JWT_ALGORITHM = "HS256"
DESKTOP_CODE_BYTES = 32
# User ids are signed 64-bit database keys.
MAX_USER_ID = 2**63 - 1

Secret = Union[str, bytes]


class AuthError(Exception):
    """Base class for every credential failure.

    `status_code` is the HTTP status a route handler should answer with and
    `detail` is the only message that may be shown to the caller.
    """
    status_code = 500
    default_detail = "internal error"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class Unauthorized(AuthError):
    status_code = 401
    default_detail = "unauthorized"


class InvalidToken(Unauthorized):
    default_detail = "invalid token"


class BadRequest(AuthError):
    status_code = 400
    default_detail = "bad request"


class Conflict(AuthError):
    status_code = 409
    default_detail = "conflict"


class InternalError(AuthError):
    status_code = 500
    default_detail = "internal error"


class HashingError(InternalError):
    default_detail = "failed to hash password"


class IssueError(InternalError):
    default_detail = "failed to issue token"


# One message for every password failure so account states stay indistinguishable.
INVALID_CREDENTIALS = "invalid credentials"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def hash_password(password: str) -> str:
    """Return a self-describing Argon2id hash for `password`.

    A fresh 16-byte salt is drawn for every call, so hashing the same
    password twice gives two different strings. The encoded result holds
    the algorithm id, its parameters, the salt and the digest. There is no
    length limit on `password`.
    """
    try:
        return PWD_HASHER.hash(password)
    except (Argon2HashingError, ValueError, TypeError) as exc:
        logger.error("password hashing failed: %s", exc.__class__.__name__)
        raise HashingError() from None


def verify_password(password: str, stored_hash: str, *, deactivated: bool = False) -> None:
    """Check `password` against `stored_hash` or raise `Unauthorized`.

    The account state is checked before any cryptographic work: a
    deactivated account or an empty stored hash (no usable credential) is
    rejected straight away. A malformed hash is treated as a mismatch.
    """
    if deactivated or not stored_hash:
        raise Unauthorized(INVALID_CREDENTIALS)
    try:
        PWD_HASHER.verify(stored_hash, password)
    except (VerificationError, ValueError, TypeError):
        raise Unauthorized(INVALID_CREDENTIALS) from None


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return PWD_HASHER.hash(secrets.token_urlsafe(16))


def spend_verify_time(password: str) -> None:
    """Run one full verification whose result is thrown away.

    Used when there is no account to check, so an unknown email costs as
    much time as a wrong password.
    """
    try:
        PWD_HASHER.verify(_dummy_hash(), password)
    except (VerificationError, ValueError, TypeError):
        pass


@dataclass(frozen=True)
class AccessClaims:
    """Claims carried by an access token."""
    subject: str
    issued_at: datetime
    expires_at: datetime

    @property
    def user_id(self) -> int:
        """The subject parsed back into the integer user id."""
        if not (self.subject.isascii() and self.subject.isdigit()):
            raise InvalidToken()
        value = int(self.subject)
        if value > MAX_USER_ID:
            raise InvalidToken()
        return value


def _as_timedelta(ttl: Union[timedelta, int, float]) -> timedelta:
    if isinstance(ttl, timedelta):
        return ttl
    return timedelta(seconds=ttl)


def issue_access_token(
    user_id: int,
    secret: Secret,
    ttl: Union[timedelta, int, float],
    *,
    now: Optional[datetime] = None,
) -> str:
    """Sign a compact HS256 token for `user_id` that expires after `ttl`.

    `now` is captured once so `iat` and `exp` are consistent; passing it
    explicitly is only useful to back-date tokens in tests. Claims are whole
    seconds: `iat` rounds down and, for a positive `ttl`, `exp` rounds up so
    the token never lives shorter than asked. A ttl of zero or less gives
    an already expired token.
    """
    issued = now or utc_now()
    try:
        lifetime = _as_timedelta(ttl)
        expires_ts = (issued + lifetime).timestamp()
        payload = {
            "sub": str(user_id),
            "iat": math.floor(issued.timestamp()),
            "exp": math.ceil(expires_ts) if lifetime > timedelta(0) else math.floor(expires_ts),
        }
        return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)
    except (jwt.PyJWTError, TypeError, ValueError, OverflowError) as exc:
        logger.error("token signing failed: %s", exc.__class__.__name__)
        raise IssueError() from None


def decode_access_token(token: str, secret: Secret) -> AccessClaims:
    """Verify `token` and return its claims.

    Signature mismatch, malformed structure, missing claims and expiry all
    raise the same `InvalidToken`.
    """
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[JWT_ALGORITHM],
            options={"require": ["sub", "iat", "exp"]},
        )
    except jwt.PyJWTError:
        raise InvalidToken() from None
    subject = payload.get("sub")
    if not isinstance(subject, str):
        raise InvalidToken()
    try:
        return AccessClaims(
            subject=subject,
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
    except (OverflowError, OSError, ValueError):
        raise InvalidToken() from None


def random_code(nbytes: int = DESKTOP_CODE_BYTES) -> str:
    """Return a URL-safe, unpadded random code with `nbytes` of entropy."""
    return secrets.token_urlsafe(nbytes)


def hash_code(raw_code: str) -> str:
    """Deterministic SHA-256 hex digest of a raw desktop code.

    Codes are single-use and high-entropy, so an unsalted digest is enough
    and lets the store look a code up by equality.
    """
    return hashlib.sha256(raw_code.encode("utf-8")).hexdigest()
