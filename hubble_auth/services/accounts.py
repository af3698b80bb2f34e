"""Local (password) accounts."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..core.time import utcnow
from ..models import OAuthAccount, User
from .errors import AuthError, Reason
from .identity import normalize_email
from .passwords import MIN_PASSWORD_LENGTH, PasswordHasher
from .profanity import ProfanityFilter
from .usernames import canonical, validate_username

logger = logging.getLogger(__name__)


def _require_password(password: Any) -> str:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise AuthError(
            Reason.INVALID_PASSWORD,
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
        )
    return password


def get_session_user(db: Session, session: Mapping[str, Any]) -> Optional[User]:
    """User recorded in the browser session, if it still exists."""

    raw = session.get("uid")
    if not raw:
        return None
    try:
        user_id = uuid.UUID(str(raw))
    except ValueError:
        return None
    return db.get(User, user_id)


class LocalAccounts:
    def __init__(
        self,
        db: Session,
        hasher: PasswordHasher,
        profanity: ProfanityFilter,
        super_user_emails: Iterable[str] = (),
    ) -> None:
        self.db = db
        self.hasher = hasher
        self.profanity = profanity
        self.super_user_emails = {email.lower() for email in super_user_emails}

    def register(self, name: Any, email: Any, password: Any) -> User:
        if not name or not email or not password:
            raise AuthError(Reason.MISSING_FIELDS, "All fields are required")
        password = _require_password(password)
        normalized_email = normalize_email(str(email))
        if not normalized_email or "@" not in normalized_email:
            raise AuthError(Reason.INVALID_EMAIL, "A valid email is required")

        existing = self.db.exec(
            select(User).where(func.lower(User.email) == normalized_email)
        ).first()
        if existing is not None:
            raise AuthError(Reason.EMAIL_TAKEN, "Email already registered")
        username = validate_username(self.db, name, self.profanity)

        user = User(
            username=username,
            username_lower=canonical(username),
            email=normalized_email,
            password_hash=self.hasher.hash(password),
            has_set_password=True,
            is_admin=normalized_email in self.super_user_emails,
            display_name=username,
            last_login=utcnow(),
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise AuthError(Reason.USERNAME_TAKEN, "Username or email already registered") from exc
        self.db.refresh(user)
        logger.info("Registered local user %s", user.id)
        return user

    def authenticate(self, identifier: Any, password: Any) -> User:
        """Look up by email or username and check the password."""

        if not identifier or not password:
            raise AuthError(
                Reason.INVALID_CREDENTIALS,
                "Email/username and password are required",
                status_code=400,
            )
        key = str(identifier).strip().lower()
        user = self.db.exec(
            select(User).where(
                or_(func.lower(User.email) == key, User.username_lower == key)
            )
        ).first()
        if user is None or not self.hasher.verify(str(password), user.password_hash):
            raise AuthError(Reason.INVALID_CREDENTIALS, "Invalid email/username or password")

        user.last_login = utcnow()
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def set_password(self, user: User, password: Any) -> None:
        """First password for an account created through a provider."""

        password = _require_password(password)
        linked = self.db.exec(
            select(func.count()).select_from(OAuthAccount).where(OAuthAccount.user_id == user.id)
        ).one()
        if not linked:
            raise AuthError(Reason.NOT_OAUTH_ACCOUNT, "Not an OAuth-only account")
        if user.has_set_password:
            raise AuthError(Reason.PASSWORD_ALREADY_SET, "Password already set")

        user.password_hash = self.hasher.hash(password)
        user.has_set_password = True
        user.updated_at = utcnow()
        self.db.add(user)
        self.db.commit()
        logger.info("User %s set a password", user.id)


__all__ = ["LocalAccounts", "get_session_user"]
