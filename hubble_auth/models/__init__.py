"""Database model exports."""

from .oauth import OAuthAccount
from .session import SessionRecord
from .user import User

__all__ = [
    "OAuthAccount",
    "SessionRecord",
    "User",
]
