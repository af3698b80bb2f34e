"""Database configuration and session helpers."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator

from fastapi import Request
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine


def create_db_engine(database_url: str) -> Engine:
    """Create an engine; SQLite gets thread-safe settings for FastAPI."""

    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return create_engine(database_url, pool_pre_ping=True)

    if url.database in (None, "", ":memory:"):
        # One shared connection so every session sees the same in-memory DB.
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(database_url, connect_args={"check_same_thread": False})


def get_session(request: Request) -> Iterator[Session]:
    """FastAPI dependency that yields a database session."""

    with Session(request.app.state.engine) as session:
        yield session


__all__ = ["create_db_engine", "get_session"]
