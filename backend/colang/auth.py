"""Authentication dependencies for FastAPI routes.

`get_current_user` validates the bearer token on a request and returns
the matching active `UserAccount`. Failures raise `AuthError`
subclasses, which the application's exception handler turns into a
generic 401 response.
"""

from typing import Optional

from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from . import services
from .config import Settings
from .credentials import Unauthorized
from .database import get_session
from .domain import UserAccount

bearer_scheme = HTTPBearer(auto_error=False)


def get_app_settings(request: Request) -> Settings:
    """Settings of the application serving this request."""
    return request.app.state.settings


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
) -> UserAccount:
    """FastAPI dependency that returns the authenticated user.

    A missing `Authorization: Bearer ...` header raises `Unauthorized`;
    a bad, expired or foreign token, a non-numeric subject and a
    deactivated or deleted account all raise `InvalidToken`.
    """
    if credentials is None or not credentials.credentials:
        raise Unauthorized("missing authorization")
    return services.AuthService(db, settings).resolve_token(credentials.credentials)
