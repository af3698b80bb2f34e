"""Single-use anti-forgery state for the OAuth round trip."""

from __future__ import annotations

import logging
import secrets
from typing import Optional

from ..core.sessions import ServerSession, SessionConflict
from ..core.time import expires_in
from . import workflows
from .errors import AuthError, Reason
from .workflows import OAuthMode, OAuthStateWorkflow

logger = logging.getLogger(__name__)

STATE_BYTES = 16
KIND = "oauth_state"


class StateTokenManager:
    """Issues state tokens into the session and consumes them on callback."""

    def __init__(self, ttl_seconds: int) -> None:
        self.ttl_seconds = ttl_seconds

    def issue(
        self,
        session: ServerSession,
        *,
        provider: str,
        mode: OAuthMode,
        redirect_uri: str,
        return_to: Optional[str] = None,
    ) -> OAuthStateWorkflow:
        user_id = session.get("uid")
        if mode == "link" and not user_id:
            raise AuthError(Reason.MISSING_SESSION_USER)

        workflow = OAuthStateWorkflow(
            provider=provider,
            state=secrets.token_hex(STATE_BYTES),
            mode=mode,
            initiating_user_id=user_id,
            return_to=return_to,
            redirect_uri=redirect_uri,
            expires_at=expires_in(self.ttl_seconds),
        )
        workflows.stash(session, workflow)
        return workflow

    async def consume(self, session: ServerSession) -> Optional[OAuthStateWorkflow]:
        """Remove the stored state and persist the removal before anything else.

        Returns ``None`` when there was no live state, or when a concurrent
        request consumed it first.
        """

        workflow = workflows.take(session, KIND)
        if not session.dirty:
            return workflow
        try:
            await session.persist()
        except SessionConflict:
            logger.warning("OAuth state already consumed by a concurrent callback")
            return None
        return workflow

    @staticmethod
    def verify(
        workflow: Optional[OAuthStateWorkflow], provider: str, state_param: Optional[str]
    ) -> OAuthStateWorkflow:
        if (
            workflow is None
            or workflow.provider != provider
            or not state_param
            or not secrets.compare_digest(
                workflow.state.encode("utf-8"), state_param.encode("utf-8")
            )
        ):
            raise AuthError(Reason.INVALID_OAUTH_STATE)
        return workflow


__all__ = ["STATE_BYTES", "StateTokenManager"]
