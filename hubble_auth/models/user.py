"""Database model for platform accounts."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from ..core.time import utcnow


class User(SQLModel, table=True):
    """Local account; may have no usable password when created via federation."""

    __tablename__ = "user"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, nullable=False)
    username: str
    username_lower: str = Field(index=True, unique=True)
    email: Optional[str] = Field(default=None, index=True, unique=True)
    password_hash: Optional[str] = None
    has_set_password: bool = Field(default=True)
    is_admin: bool = Field(default=False)
    display_name: Optional[str] = None
    language: str = Field(default="en")
    theme: str = Field(default="dark")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    last_login: Optional[datetime] = None

    def snapshot(self) -> dict:
        """Session-safe view of the account."""

        return {
            "id": str(self.id),
            "username": self.username,
            "email": self.email,
            "isAdmin": bool(self.is_admin),
        }


__all__ = ["User"]
