"""Database model backing the server-side session store."""

from __future__ import annotations

from datetime import datetime

from sqlmodel import Field, SQLModel


class SessionRecord(SQLModel, table=True):
    """Opaque session blob keyed by session id."""

    __tablename__ = "session_record"

    id: str = Field(primary_key=True, max_length=64)
    data: str = Field(default="{}")
    revision: int = Field(default=1)
    expires_at: datetime = Field(index=True)


__all__ = ["SessionRecord"]
