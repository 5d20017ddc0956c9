"""Application settings and validation."""

import os
from datetime import timedelta
from functools import lru_cache
from pathlib import Path

DEFAULT_JWT_SECRET = "change_me_for_prod"
_DEFAULT_DB = Path(__file__).resolve().parent.parent / "colang.db"
# Upper bounds keep expiry arithmetic inside the datetime range.
MAX_JWT_TTL_SECONDS = 3650 * 24 * 3600
MAX_DESKTOP_CODE_TTL_SECONDS = 24 * 3600


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from None


class Settings:
    ENV: str
    DATABASE_URL: str
    JWT_SECRET: str
    JWT_TTL_SECONDS: int
    DESKTOP_CODE_TTL_SECONDS: int
    LOGIN_RATE_LIMIT_PER_MIN: int
    LOGIN_RATE_LIMIT_WINDOW_SECONDS: int
    ALLOW_INSECURE_JWT: bool
    ALLOW_DEV_CORS: bool
    LOG_LEVEL: str

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{_DEFAULT_DB}")
        self.JWT_SECRET = os.getenv("JWT_SECRET", DEFAULT_JWT_SECRET)
        self.JWT_TTL_SECONDS = _int_env("JWT_TTL_SECONDS", 7 * 24 * 3600)
        self.DESKTOP_CODE_TTL_SECONDS = _int_env("DESKTOP_CODE_TTL_SECONDS", 5 * 60)
        self.LOGIN_RATE_LIMIT_PER_MIN = _int_env("LOGIN_RATE_LIMIT_PER_MIN", 10)
        self.LOGIN_RATE_LIMIT_WINDOW_SECONDS = _int_env("LOGIN_RATE_LIMIT_WINDOW_SECONDS", 60)
        self.ALLOW_INSECURE_JWT = os.getenv("ALLOW_INSECURE_JWT", "false").lower() == "true"
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and not self.ALLOW_INSECURE_JWT and self.JWT_SECRET == DEFAULT_JWT_SECRET:
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        if not self.JWT_SECRET:
            raise RuntimeError("JWT_SECRET must not be empty")
        if self.JWT_TTL_SECONDS <= 0 or self.DESKTOP_CODE_TTL_SECONDS <= 0:
            raise RuntimeError("token and desktop code TTLs must be positive")
        if self.JWT_TTL_SECONDS > MAX_JWT_TTL_SECONDS:
            raise RuntimeError(f"JWT_TTL_SECONDS must be at most {MAX_JWT_TTL_SECONDS}")
        if self.DESKTOP_CODE_TTL_SECONDS > MAX_DESKTOP_CODE_TTL_SECONDS:
            raise RuntimeError(f"DESKTOP_CODE_TTL_SECONDS must be at most {MAX_DESKTOP_CODE_TTL_SECONDS}")
        if self.LOGIN_RATE_LIMIT_PER_MIN <= 0 or self.LOGIN_RATE_LIMIT_WINDOW_SECONDS <= 0:
            raise RuntimeError("login rate limit settings must be positive")

    @property
    def jwt_ttl(self) -> timedelta:
        return timedelta(seconds=self.JWT_TTL_SECONDS)

    @property
    def desktop_code_ttl(self) -> timedelta:
        return timedelta(seconds=self.DESKTOP_CODE_TTL_SECONDS)


@lru_cache
def get_settings() -> Settings:
    """Build the process settings once at startup."""
    return Settings()
