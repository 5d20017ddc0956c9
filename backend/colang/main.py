"""FastAPI application factory and HTTP controllers.

Controllers are intentionally thin: they accept requests, delegate to the
services and return JSON. Credential failures propagate as `AuthError`
and are rendered by one exception handler as `{"detail": ...}` with the
error's status code, so no handler can leak which check failed.

Endpoints implemented:
- GET /api/health
- POST /api/auth/register
- POST /api/auth/login
- GET /api/auth/me
- POST /api/auth/desktop/code
- POST /api/auth/desktop/token
- PUT /api/account/password
- POST /api/account/deactivate

Run locally from `backend/` with `python -m colang.main`.
"""

import json
import logging
import time
import uuid
from typing import Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlmodel import Session

from . import repositories, services
from .auth import get_app_settings, get_current_user
from .config import Settings, get_settings
from .credentials import AuthError
from .database import build_engine, create_db_and_tables, get_session
from .domain import UserAccount
from .schemas import (
    AuthOut,
    DeactivateIn,
    DesktopCodeIn,
    DesktopCodeOut,
    DesktopTokenIn,
    LoginIn,
    PasswordChangeIn,
    RegisterIn,
    StatusOut,
    TokenOut,
    UserOut,
)
from .utils.rate_limit import AttemptLimiter

logger = logging.getLogger("colang.api")

router = APIRouter(prefix="/api")


def _user_out(user: UserAccount) -> UserOut:
    return UserOut(
        id=user.id,
        name=user.name,
        email=user.email,
        created_at=user.created_at,
        deactivated_at=user.deactivated_at,
    )


def _limit_key(request: Request) -> str:
    return f"{request.client.host if request.client else 'unknown'}:{request.url.path}"


def _enforce_rate_limit(request: Request) -> None:
    settings: Settings = request.app.state.settings
    limiter: AttemptLimiter = request.app.state.limiter
    allowed, retry_after = limiter.allow(
        _limit_key(request),
        settings.LOGIN_RATE_LIMIT_PER_MIN,
        settings.LOGIN_RATE_LIMIT_WINDOW_SECONDS,
    )
    if not allowed:
        raise HTTPException(
            status_code=429,
            detail=f"too many attempts; retry after {retry_after}s",
            headers={"Retry-After": str(retry_after)},
        )


@router.get("/health")
def health():
    return {"ok": True}


@router.post("/auth/register", response_model=AuthOut)
def register(payload: RegisterIn, db: Session = Depends(get_session),
             settings: Settings = Depends(get_app_settings)):
    """Register a new user and log them straight in.

    Returns 400 for a blank email or a password shorter than 8
    characters and 409 when the email is taken.
    """
    user, token = services.AuthService(db, settings).register(payload.name, payload.email, payload.password)
    return AuthOut(user=_user_out(user), access_token=token)


@router.post("/auth/login", response_model=AuthOut)
def login(payload: LoginIn, request: Request, db: Session = Depends(get_session),
          settings: Settings = Depends(get_app_settings)):
    """Authenticate with email and password and return an access token.

    Every credential problem answers the same 401 `invalid credentials`.
    Repeated attempts from one client are throttled with 429.
    """
    _enforce_rate_limit(request)
    user, token = services.AuthService(db, settings).authenticate(payload.email, payload.password)
    request.app.state.limiter.reset(_limit_key(request))
    return AuthOut(user=_user_out(user), access_token=token)


@router.get("/auth/me", response_model=UserOut)
def me(user: UserAccount = Depends(get_current_user)):
    return _user_out(user)


@router.post("/auth/desktop/code", response_model=DesktopCodeOut)
def create_desktop_code(payload: DesktopCodeIn, db: Session = Depends(get_session),
                        settings: Settings = Depends(get_app_settings),
                        user: UserAccount = Depends(get_current_user)):
    """Create a one-time code the desktop client can exchange for a token.

    The raw code appears only in this response; the server keeps its
    SHA-256 digest. Codes expire after `DESKTOP_CODE_TTL_SECONDS`.
    """
    svc = services.DesktopCodeService(
        repositories.AuthCodeRepository(db), repositories.UserRepository(db), settings
    )
    issued = svc.issue(user.id, payload.redirect_uri, payload.state)
    return DesktopCodeOut(
        code=issued.code,
        redirect_uri=issued.redirect_uri,
        state=issued.state,
        expires_at=issued.expires_at,
    )


@router.post("/auth/desktop/token", response_model=TokenOut)
def exchange_desktop_code(payload: DesktopTokenIn, request: Request, db: Session = Depends(get_session),
                          settings: Settings = Depends(get_app_settings)):
    """Exchange a desktop code for an access token; each code works once."""
    _enforce_rate_limit(request)
    svc = services.DesktopCodeService(
        repositories.AuthCodeRepository(db), repositories.UserRepository(db), settings
    )
    return TokenOut(access_token=svc.consume(payload.code, payload.redirect_uri))


@router.put("/account/password", response_model=StatusOut)
def change_password(payload: PasswordChangeIn, db: Session = Depends(get_session),
                    settings: Settings = Depends(get_app_settings),
                    user: UserAccount = Depends(get_current_user)):
    services.AuthService(db, settings).change_password(user, payload.current_password, payload.new_password)
    return StatusOut()


@router.post("/account/deactivate", response_model=StatusOut)
def deactivate_account(payload: DeactivateIn, db: Session = Depends(get_session),
                       settings: Settings = Depends(get_app_settings),
                       user: UserAccount = Depends(get_current_user)):
    """Deactivate the caller's account; its tokens stop working immediately."""
    services.AuthService(db, settings).deactivate(user, payload.password)
    return StatusOut()


async def handle_auth_error(request: Request, exc: AuthError):
    if exc.status_code >= 500:
        logger.error("auth_internal_error %s path=%s", exc.__class__.__name__, request.url.path)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    log_it = request.url.path.startswith(("/api/auth", "/api/account"))
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception(
            "request_failed %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "duration_ms": elapsed_ms,
                },
                ensure_ascii=True,
            ),
        )
        raise
    response.headers["X-Request-ID"] = req_id
    if log_it:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.info(
            "request_done %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": response.status_code,
                    "duration_ms": elapsed_ms,
                    "client": request.client.host if request.client else "unknown",
                },
                ensure_ascii=True,
            ),
        )
    return response


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application around one explicit `Settings` object.

    Settings, the database engine and the attempt limiter are created
    here and kept on `app.state`; tables are created on first start.
    """
    settings = settings or get_settings()
    if not logging.getLogger().handlers:
        logging.basicConfig(level=settings.LOG_LEVEL)

    app = FastAPI(title="Colang API")
    app.state.settings = settings
    app.state.engine = build_engine(settings.DATABASE_URL)
    app.state.limiter = AttemptLimiter()
    create_db_and_tables(app.state.engine)

    # Dev only: open CORS for local desktop and web front-ends.
    if settings.ALLOW_DEV_CORS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    app.middleware("http")(request_context_middleware)
    app.add_exception_handler(AuthError, handle_auth_error)
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
