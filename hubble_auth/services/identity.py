"""Deciding what a verified external identity means for local accounts.

``IdentityResolver.resolve`` runs once per callback, after the provider has
returned a :class:`NormalizedIdentity`:

* ``link`` mode attaches the identity to the user who started the flow.
* ``login`` mode signs in the identity's owner, links it to an existing
  account with the same verified email, creates a new account, or defers
  creation when the derived username is taken.

Every branch that writes more than one row commits once, so a crash mid-way
leaves nothing behind.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from ..core.time import utcnow
from ..models import OAuthAccount, User
from ..providers.base import NormalizedIdentity
from .errors import AuthError, Reason
from .passwords import PasswordHasher
from .usernames import canonical, derive_base_username, is_username_taken

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    LINKED = "linked"
    LOGGED_IN = "logged_in"
    CREATED = "created"
    CONFLICT_DEFERRED = "conflict_deferred"


_AUTH_STATUS = {
    Outcome.LINKED: "linked",
    Outcome.LOGGED_IN: "success",
    Outcome.CREATED: "success",
    Outcome.CONFLICT_DEFERRED: "username_conflict",
}


@dataclass
class Resolution:
    outcome: Outcome
    user: Optional[User] = None
    base_username: Optional[str] = None

    @property
    def auth_status(self) -> str:
        return _AUTH_STATUS[self.outcome]

    @property
    def signs_in(self) -> bool:
        return self.outcome in (Outcome.LOGGED_IN, Outcome.CREATED)


def normalize_email(email: Optional[str]) -> Optional[str]:
    normalized = (email or "").strip().lower()
    return normalized or None


def _parse_user_id(raw: Optional[str]) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(raw))
    except (TypeError, ValueError):
        return None


class IdentityResolver:
    def __init__(
        self,
        session: Session,
        hasher: PasswordHasher,
        super_user_emails: Iterable[str] = (),
    ) -> None:
        self.session = session
        self.hasher = hasher
        self.super_user_emails = {email.lower() for email in super_user_emails}

    # Lookups -------------------------------------------------------------

    def find_account(self, provider: str, provider_account_id: str) -> Optional[OAuthAccount]:
        return self.session.exec(
            select(OAuthAccount)
            .where(OAuthAccount.provider == provider)
            .where(OAuthAccount.provider_account_id == provider_account_id)
        ).first()

    def account_for_user(self, user_id: uuid.UUID, provider: str) -> Optional[OAuthAccount]:
        return self.session.exec(
            select(OAuthAccount)
            .where(OAuthAccount.user_id == user_id)
            .where(OAuthAccount.provider == provider)
        ).first()

    def find_user_by_email(self, email: str) -> Optional[User]:
        return self.session.exec(
            select(User).where(func.lower(User.email) == email.lower())
        ).first()

    # Writes --------------------------------------------------------------

    def _commit(self) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

    @staticmethod
    def _apply_identity(account: OAuthAccount, identity: NormalizedIdentity) -> None:
        account.username = identity.username
        account.display_name = identity.display_name
        account.avatar_url = identity.avatar_url
        account.profile_url = identity.profile_url
        account.access_token = identity.access_token
        account.scope = identity.scope
        account.updated_at = utcnow()

    def _new_account(self, identity: NormalizedIdentity, user_id: uuid.UUID) -> OAuthAccount:
        account = OAuthAccount(
            provider=identity.provider,
            provider_account_id=identity.provider_account_id,
            user_id=user_id,
        )
        self._apply_identity(account, identity)
        return account

    def create_account_holder(self, identity: NormalizedIdentity, username: str) -> User:
        """Create a password-less user and its linked account in one commit."""

        email = normalize_email(identity.email)
        user = User(
            username=username,
            username_lower=canonical(username),
            email=email,
            password_hash=self.hasher.unusable_hash(),
            has_set_password=False,
            is_admin=bool(email and identity.email_verified and email in self.super_user_emails),
            display_name=identity.display_name or username,
            last_login=utcnow(),
        )
        self.session.add(user)
        self.session.flush()
        self.session.add(self._new_account(identity, user.id))
        self._commit()
        self.session.refresh(user)
        logger.info("Created user %s from %s identity", user.id, identity.provider)
        return user

    # Decision tree -------------------------------------------------------

    def resolve(
        self,
        identity: NormalizedIdentity,
        *,
        mode: str,
        initiating_user_id: Optional[str] = None,
    ) -> Resolution:
        if mode == "link":
            try:
                return self.link(identity, initiating_user_id)
            except IntegrityError as exc:
                self.session.rollback()
                raise AuthError(Reason.ALREADY_LINKED_ELSEWHERE) from exc

        try:
            return self.login(identity)
        except IntegrityError:
            # A concurrent callback for the same identity won the unique
            # constraint; its rows are visible now.
            self.session.rollback()
            logger.info("Concurrent %s sign-in detected, resolving again", identity.provider)
            return self.login(identity)

    def link(self, identity: NormalizedIdentity, initiating_user_id: Optional[str]) -> Resolution:
        user_id = _parse_user_id(initiating_user_id)
        user = self.session.get(User, user_id) if user_id else None
        if user is None:
            raise AuthError(Reason.MISSING_SESSION_USER)

        account = self.find_account(identity.provider, identity.provider_account_id)
        if account is not None and account.user_id != user.id:
            logger.info(
                "Refusing to link %s identity to user %s: owned by another user",
                identity.provider,
                user.id,
            )
            raise AuthError(Reason.ALREADY_LINKED_ELSEWHERE)

        if account is None:
            if self.account_for_user(user.id, identity.provider) is not None:
                raise AuthError(Reason.PROVIDER_ALREADY_LINKED)
            account = self._new_account(identity, user.id)
        else:
            self._apply_identity(account, identity)

        self.session.add(account)
        self._commit()
        return Resolution(Outcome.LINKED, user)

    def login(self, identity: NormalizedIdentity) -> Resolution:
        account = self.find_account(identity.provider, identity.provider_account_id)
        if account is not None:
            user = self.session.get(User, account.user_id)
            if user is None:
                raise AuthError(Reason.INTERNAL_ERROR)
            self._apply_identity(account, identity)
            user.last_login = utcnow()
            self.session.add(account)
            self.session.add(user)
            self._commit()
            self.session.refresh(user)
            return Resolution(Outcome.LOGGED_IN, user)

        email = normalize_email(identity.email)
        user = self.find_user_by_email(email) if email else None
        if user is not None:
            if not identity.email_verified:
                raise AuthError(
                    Reason.EMAIL_UNVERIFIED,
                    "An account with this email exists; sign in and link the provider instead",
                )
            if self.account_for_user(user.id, identity.provider) is not None:
                raise AuthError(Reason.PROVIDER_ALREADY_LINKED)
            self.session.add(self._new_account(identity, user.id))
            user.last_login = utcnow()
            self.session.add(user)
            self._commit()
            self.session.refresh(user)
            logger.info("Linked %s identity to user %s by verified email", identity.provider, user.id)
            return Resolution(Outcome.LOGGED_IN, user)

        base_username = derive_base_username(identity)
        if is_username_taken(self.session, base_username):
            return Resolution(Outcome.CONFLICT_DEFERRED, base_username=base_username)

        return Resolution(Outcome.CREATED, self.create_account_holder(identity, base_username))


__all__ = [
    "IdentityResolver",
    "Outcome",
    "Resolution",
    "normalize_email",
]
