"""Attaching an authenticated user to the browser session."""

from __future__ import annotations

import logging

from ..core.sessions import REMEMBER_KEY, ServerSession
from ..models import User

logger = logging.getLogger(__name__)


class SessionUserBinder:
    async def bind(self, session: ServerSession, user: User, *, remember: bool = False) -> None:
        """Record ``user`` in the session and wait for the store write.

        The client asks "who am I" immediately after the redirect we are
        about to send, so the write must land first. The session id is
        rotated on every sign-in. ``remember`` extends the session lifetime.
        """

        session.rotate()
        session["uid"] = str(user.id)
        session["user"] = user.snapshot()
        if remember:
            session[REMEMBER_KEY] = True
        else:
            session.pop(REMEMBER_KEY, None)
        await session.persist()
        logger.info("Session bound to user %s", user.id)

    async def unbind(self, session: ServerSession) -> None:
        session.clear()
        await session.persist()


__all__ = ["SessionUserBinder"]
