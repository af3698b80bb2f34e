"""Database model for external identities linked to accounts."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from ..core.time import utcnow


class OAuthAccount(SQLModel, table=True):
    """Identity at a third-party provider, owned by exactly one user."""

    __tablename__ = "oauth_account"
    __table_args__ = (
        UniqueConstraint("provider", "provider_account_id", name="uq_oauth_provider_account"),
        UniqueConstraint("user_id", "provider", name="uq_oauth_user_provider"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, nullable=False)
    provider: str = Field(index=True)
    provider_account_id: str
    user_id: uuid.UUID = Field(foreign_key="user.id", index=True, ondelete="CASCADE")
    username: Optional[str] = None
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    profile_url: Optional[str] = None
    access_token: Optional[str] = None
    scope: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def to_public_dict(self) -> dict:
        return {
            "provider": self.provider,
            "username": self.username,
            "profileUrl": self.profile_url,
            "avatarUrl": self.avatar_url,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


__all__ = ["OAuthAccount"]
