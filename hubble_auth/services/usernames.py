"""Username rules shared by local signup and federated signup."""

from __future__ import annotations

import re
from typing import Any, Dict, Optional

from sqlmodel import Session, select

from ..models import User
from ..providers.base import NormalizedIdentity
from .errors import AuthError, Reason
from .profanity import ProfanityFilter

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9.]+$")
MAX_USERNAME_LENGTH = 40

_DISALLOWED = re.compile(r"[^a-z0-9.]")


def canonical(username: str) -> str:
    """Comparison key; usernames are unique regardless of case."""

    return username.strip().lower()


def sanitize_username(raw: Optional[str]) -> str:
    return _DISALLOWED.sub("", (raw or "").lower())[:MAX_USERNAME_LENGTH]


def derive_base_username(identity: NormalizedIdentity) -> str:
    """Suggested username for a first-time federated login."""

    fallback = sanitize_username(f"{identity.provider}{identity.provider_account_id}")
    for candidate in (identity.username, identity.display_name):
        sanitized = sanitize_username(candidate)
        if sanitized:
            return sanitized
    return fallback


def find_user_by_username(session: Session, username: str) -> Optional[User]:
    return session.exec(
        select(User).where(User.username_lower == canonical(username))
    ).first()


def is_username_taken(session: Session, username: str) -> bool:
    return find_user_by_username(session, username) is not None


def validate_username(
    session: Session, username: Any, profanity: ProfanityFilter
) -> str:
    """Return the cleaned username or raise :class:`AuthError`."""

    if not isinstance(username, str) or not username.strip():
        raise AuthError(Reason.INVALID_USERNAME, "Username is required")
    username = username.strip()
    if len(username) > MAX_USERNAME_LENGTH:
        raise AuthError(
            Reason.INVALID_USERNAME,
            f"Username must be {MAX_USERNAME_LENGTH} characters or less",
        )
    if not USERNAME_PATTERN.match(username):
        raise AuthError(
            Reason.INVALID_USERNAME,
            "Username can only contain letters, numbers, and periods",
        )
    if profanity.contains_strict(username):
        raise AuthError(Reason.USERNAME_PROFANE, "Username contains disallowed language")
    if is_username_taken(session, username):
        raise AuthError(Reason.USERNAME_TAKEN, "Username is already taken")
    return username


def check_username(
    session: Session, username: Any, profanity: ProfanityFilter
) -> Dict[str, Any]:
    try:
        validate_username(session, username, profanity)
    except AuthError as exc:
        return {"available": False, "reason": exc.reason.value}
    return {"available": True}


__all__ = [
    "MAX_USERNAME_LENGTH",
    "USERNAME_PATTERN",
    "canonical",
    "check_username",
    "derive_base_username",
    "find_user_by_username",
    "is_username_taken",
    "sanitize_username",
    "validate_username",
]
