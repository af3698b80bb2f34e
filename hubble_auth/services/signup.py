"""Finishing a federated signup that stopped on a username collision."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session

from ..core.sessions import ServerSession, SessionConflict
from ..core.time import expires_in
from ..providers.base import NormalizedIdentity
from . import workflows
from .errors import AuthError, Reason
from .frontend import allowed_return_path
from .identity import IdentityResolver, normalize_email
from .profanity import ProfanityFilter
from .session_binder import SessionUserBinder
from .usernames import validate_username
from .workflows import PendingSignupWorkflow

logger = logging.getLogger(__name__)

KIND = "pending_signup"


class UsernameConflictNegotiator:
    """Holds the verified identity in the session until a username is chosen.

    No ``User`` row exists for a deferred signup; one user and one linked
    account are created together by :meth:`complete`.
    """

    def __init__(self, ttl_seconds: int, frontend_url: str) -> None:
        self.ttl_seconds = ttl_seconds
        self.frontend_url = frontend_url

    def defer(
        self,
        session: ServerSession,
        identity: NormalizedIdentity,
        base_username: str,
        return_to: Optional[str] = None,
    ) -> PendingSignupWorkflow:
        workflow = PendingSignupWorkflow(
            provider=identity.provider,
            identity=identity,
            base_username=base_username,
            return_to=return_to,
            expires_at=expires_in(self.ttl_seconds),
        )
        workflows.stash(session, workflow)
        logger.info("Deferred %s signup: username %r is taken", identity.provider, base_username)
        return workflow

    def pending(self, session: ServerSession, provider: str) -> PendingSignupWorkflow:
        workflow = workflows.peek(session, KIND)
        if workflow is None or workflow.provider != provider:
            raise AuthError(Reason.NO_PENDING_SIGNUP)
        return workflow

    async def complete(
        self,
        session: ServerSession,
        db: Session,
        provider: str,
        username: Any,
        *,
        resolver: IdentityResolver,
        profanity: ProfanityFilter,
        binder: SessionUserBinder,
    ) -> Dict[str, Any]:
        pending = self.pending(session, provider)
        identity = pending.identity

        # Validation failures keep the pending signup so the client can retry.
        username = validate_username(db, username, profanity)

        if resolver.find_account(identity.provider, identity.provider_account_id) is not None:
            workflows.discard(session, KIND)
            raise AuthError(Reason.ALREADY_LINKED_ELSEWHERE)
        email = normalize_email(identity.email)
        if email and resolver.find_user_by_email(email) is not None:
            workflows.discard(session, KIND)
            raise AuthError(Reason.EMAIL_TAKEN, "An account with this email already exists")

        try:
            user = resolver.create_account_holder(identity, username)
        except IntegrityError as exc:
            db.rollback()
            raise AuthError(Reason.USERNAME_TAKEN, "Username is already taken") from exc

        workflows.discard(session, KIND)
        try:
            await binder.bind(session, user)
        except (SQLAlchemyError, SessionConflict):
            # The user row is committed; a second failure surfaces to the client.
            logger.exception(
                "Created user %s from %s signup but the session write failed; retrying",
                user.id,
                provider,
            )
            await binder.bind(session, user)
        return {
            "success": True,
            "user": user.snapshot(),
            "returnTo": allowed_return_path(pending.return_to, self.frontend_url),
        }


__all__ = ["UsernameConflictNegotiator"]
