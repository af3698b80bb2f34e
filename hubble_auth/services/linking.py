"""Unlinking providers without locking a user out."""

from __future__ import annotations

import logging
from typing import List

from sqlmodel import Session, select

from ..models import OAuthAccount, User
from .errors import AuthError, Reason

logger = logging.getLogger(__name__)


class AccountLinkingGuard:
    """A user keeps at least one way to sign in: a password or a provider."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def linked_accounts(self, user: User) -> List[OAuthAccount]:
        return list(
            self.session.exec(
                select(OAuthAccount)
                .where(OAuthAccount.user_id == user.id)
                .order_by(OAuthAccount.created_at)
            ).all()
        )

    def sign_in_methods(self, user: User) -> int:
        providers = {account.provider for account in self.linked_accounts(user)}
        return len(providers) + (1 if user.has_set_password else 0)

    def remaining_methods(self, user: User, without: str) -> int:
        providers = {account.provider for account in self.linked_accounts(user)}
        providers.discard(without)
        return len(providers) + (1 if user.has_set_password else 0)

    def unlink(self, user: User, provider: str) -> None:
        """Remove ``provider`` from ``user`` unless it is their last sign-in method.

        The user row is locked for the transaction (``SELECT ... FOR UPDATE``
        where the database supports it) and the count is checked again after
        the delete, so concurrent unlinks cannot leave the user with nothing.
        """

        db = self.session
        user_id = user.id
        owner = db.exec(
            select(User)
            .where(User.id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).one_or_none()
        if owner is None:
            raise AuthError(Reason.USER_NOT_FOUND)

        accounts = [a for a in self.linked_accounts(owner) if a.provider == provider]
        if not accounts:
            raise AuthError(Reason.NOT_LINKED)
        if self.remaining_methods(owner, provider) == 0:
            raise AuthError(Reason.CANNOT_UNLINK_ONLY_METHOD)

        for account in accounts:
            db.delete(account)
        db.flush()
        if self.sign_in_methods(owner) == 0:
            logger.warning("Unlinking %s would leave user %s without a sign-in method", provider, user_id)
            db.rollback()
            raise AuthError(Reason.CANNOT_UNLINK_ONLY_METHOD)
        db.commit()
        logger.info("Unlinked %s from user %s", provider, user_id)


__all__ = ["AccountLinkingGuard"]
