"""Database engine and helpers.

The engine is built from `Settings.DATABASE_URL` when the application is
created and kept on `app.state`; nothing here holds a module-level
connection. SQLite URLs get `check_same_thread=False` because FastAPI
runs synchronous handlers on a thread pool.
"""

from typing import Iterator

from fastapi import Request
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, Session, create_engine

from . import models  # noqa: F401  registers the tables on SQLModel.metadata


def build_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine for `url`."""
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
    return create_engine(url, echo=echo, connect_args=connect_args)


def create_db_and_tables(engine: Engine) -> None:
    """Create database tables using SQLModel metadata.

    Intended for local development and tests; deployments with existing
    data should manage the schema with a migration tool instead.
    """
    SQLModel.metadata.create_all(engine)


def get_session(request: Request) -> Iterator[Session]:
    """Yield a database `Session` for FastAPI dependency injection.

    The session is bound to the engine of the application serving the
    request and is closed when the request scope finishes.
    """
    with Session(request.app.state.engine) as session:
        yield session
