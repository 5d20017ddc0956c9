"""Pydantic request/response schemas used by the API.

Passwords are capped in length so hashing never fails because of the
input size; everything else about credential validity is decided by the
services.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

MAX_PASSWORD_LENGTH = 1024


class RegisterIn(BaseModel):
    """Payload for user registration."""
    name: str = ""
    email: str
    password: str = Field(max_length=MAX_PASSWORD_LENGTH)


class LoginIn(BaseModel):
    email: str
    password: str = Field(max_length=MAX_PASSWORD_LENGTH)


class UserOut(BaseModel):
    """Public view of a user; never includes credential material."""
    id: int
    name: str
    email: str
    created_at: datetime
    deactivated_at: Optional[datetime] = None


class AuthOut(BaseModel):
    """Authentication response containing the user and an access token."""
    user: UserOut
    access_token: str


class TokenOut(BaseModel):
    access_token: str


class DesktopCodeIn(BaseModel):
    redirect_uri: str
    state: str


class DesktopCodeOut(BaseModel):
    """The raw code is shown exactly once, here."""
    code: str
    redirect_uri: str
    state: str
    expires_at: datetime


class DesktopTokenIn(BaseModel):
    code: str
    redirect_uri: str


class PasswordChangeIn(BaseModel):
    current_password: str = Field(max_length=MAX_PASSWORD_LENGTH)
    new_password: str = Field(max_length=MAX_PASSWORD_LENGTH)


class DeactivateIn(BaseModel):
    password: str = Field(max_length=MAX_PASSWORD_LENGTH)


class StatusOut(BaseModel):
    ok: bool = True
