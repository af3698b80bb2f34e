"""Server-side sessions.

The browser only ever holds a signed, opaque session id (``itsdangerous``,
same scheme as Starlette's ``SessionMiddleware``); the session data itself is
a JSON blob in the ``session_record`` table with a TTL equal to the cookie
lifetime.

Every record carries a ``revision``. Saves are compare-and-swap on that
revision, so when two requests race on the same session only the first write
lands and the second gets :class:`SessionConflict`. The OAuth state check
relies on this to make state tokens single-use.
"""

from __future__ import annotations

import json
import logging
import secrets
from typing import Any, Dict, List, Optional, Tuple

import itsdangerous
from itsdangerous.exc import BadSignature
from sqlalchemy import delete, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import MutableHeaders
from starlette.requests import HTTPConnection
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..models.session import SessionRecord
from .time import as_aware, expires_in, utcnow

logger = logging.getLogger(__name__)

REMEMBER_KEY = "remember"


class SessionConflict(Exception):
    """The stored session changed since it was loaded."""


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


class SessionStore:
    """Keyed blob store with TTL backed by the application database."""

    def __init__(
        self, engine: Engine, ttl_seconds: int, remember_ttl_seconds: Optional[int] = None
    ) -> None:
        self.engine = engine
        self.ttl_seconds = ttl_seconds
        self.remember_ttl_seconds = remember_ttl_seconds or ttl_seconds

    def ttl_for(self, data: Dict[str, Any]) -> int:
        """Lifetime of a session holding ``data``; "remember me" sessions live longer."""

        return self.remember_ttl_seconds if data.get(REMEMBER_KEY) else self.ttl_seconds

    def load(self, session_id: str) -> Optional[Tuple[Dict[str, Any], int]]:
        with Session(self.engine) as db:
            record = db.get(SessionRecord, session_id)
            if record is None:
                return None
            if as_aware(record.expires_at) <= utcnow():
                db.delete(record)
                db.commit()
                return None
            try:
                data = json.loads(record.data)
            except ValueError:
                logger.warning("Discarding unreadable session %s...", session_id[:8])
                return None
            if not isinstance(data, dict):
                return None
            return data, record.revision

    def save(self, session_id: str, data: Dict[str, Any], revision: int) -> int:
        """Write ``data`` if the stored revision still equals ``revision``.

        ``revision == 0`` means the session has never been stored. Returns the
        new revision.
        """

        payload = json.dumps(data, separators=(",", ":"), sort_keys=True)
        expires_at = expires_in(self.ttl_for(data))
        with Session(self.engine) as db:
            if revision == 0:
                db.add(
                    SessionRecord(
                        id=session_id, data=payload, revision=1, expires_at=expires_at
                    )
                )
                try:
                    db.commit()
                except IntegrityError as exc:
                    db.rollback()
                    raise SessionConflict(session_id) from exc
                return 1

            result = db.execute(
                update(SessionRecord)
                .where(SessionRecord.id == session_id)
                .where(SessionRecord.revision == revision)
                .values(data=payload, revision=revision + 1, expires_at=expires_at)
            )
            db.commit()
            if result.rowcount != 1:
                raise SessionConflict(session_id)
            return revision + 1

    def delete(self, session_id: str, revision: Optional[int] = None) -> None:
        """Remove a session; with ``revision``, only if it is still current."""

        statement = delete(SessionRecord).where(SessionRecord.id == session_id)
        if revision is not None:
            statement = statement.where(SessionRecord.revision == revision)
        with Session(self.engine) as db:
            result = db.execute(statement)
            db.commit()
        if revision is not None and result.rowcount != 1:
            raise SessionConflict(session_id)

    def purge_expired(self) -> int:
        with Session(self.engine) as db:
            result = db.execute(
                delete(SessionRecord).where(SessionRecord.expires_at <= utcnow())
            )
            db.commit()
            return result.rowcount or 0


class ServerSession(dict):
    """Dict-like session exposed as ``request.session``."""

    def __init__(
        self,
        store: SessionStore,
        session_id: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        revision: int = 0,
    ) -> None:
        super().__init__(data or {})
        self.store = store
        self.session_id = session_id
        self.revision = revision
        self._stale_ids: List[str] = []
        self._saved = self._fingerprint()

    def _fingerprint(self) -> str:
        return json.dumps(self, sort_keys=True, default=str)

    @property
    def dirty(self) -> bool:
        return bool(self._stale_ids) or self._fingerprint() != self._saved

    @property
    def stored(self) -> bool:
        return bool(self.session_id) and self.revision > 0

    def rotate(self) -> None:
        """Move the data to a fresh session id on the next persist."""

        if self.stored:
            self._stale_ids.append(self.session_id)
        self.session_id = None
        self.revision = 0

    def persist_sync(self) -> None:
        if not self:
            if self.stored:
                self.store.delete(self.session_id, self.revision)
            self.session_id = None
            self.revision = 0
        else:
            if not self.session_id:
                self.session_id = new_session_id()
            self.revision = self.store.save(self.session_id, dict(self), self.revision)
        for stale in self._stale_ids:
            self.store.delete(stale)
        self._stale_ids.clear()
        self._saved = self._fingerprint()

    async def persist(self) -> None:
        """Write the session to the store now; raises :class:`SessionConflict`."""

        await run_in_threadpool(self.persist_sync)


class ServerSessionMiddleware:
    def __init__(
        self,
        app: ASGIApp,
        store: SessionStore,
        secret_key: str,
        session_cookie: str = "sid",
        max_age: int = 14 * 24 * 60 * 60,
        path: str = "/",
        same_site: str = "lax",
        https_only: bool = False,
        domain: Optional[str] = None,
    ) -> None:
        self.app = app
        self.store = store
        self.signer = itsdangerous.TimestampSigner(str(secret_key))
        self.session_cookie = session_cookie
        self.max_age = max_age
        self.path = path
        self.security_flags = "httponly; samesite=" + same_site
        if https_only:
            self.security_flags += "; secure"
        if domain is not None:
            self.security_flags += f"; domain={domain}"

    async def _open(self, connection: HTTPConnection) -> ServerSession:
        raw = connection.cookies.get(self.session_cookie)
        if not raw:
            return ServerSession(self.store)
        try:
            session_id = self.signer.unsign(
                raw.encode("utf-8"), max_age=max(self.max_age, self.store.remember_ttl_seconds)
            ).decode("utf-8")
        except BadSignature:
            return ServerSession(self.store)
        loaded = await run_in_threadpool(self.store.load, session_id)
        if loaded is None:
            return ServerSession(self.store)
        data, revision = loaded
        return ServerSession(self.store, session_id, data, revision)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        connection = HTTPConnection(scope)
        session = await self._open(connection)
        initial_id = session.session_id
        scope["session"] = session

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                if session.dirty:
                    try:
                        await session.persist()
                    except SessionConflict:
                        logger.warning(
                            "Session changed concurrently; late write dropped (path=%s)",
                            scope.get("path"),
                        )
                headers = MutableHeaders(scope=message)
                if session.stored:
                    signed = self.signer.sign(session.session_id.encode("utf-8")).decode("utf-8")
                    headers.append(
                        "Set-Cookie",
                        f"{self.session_cookie}={signed}; path={self.path}; "
                        f"Max-Age={self.store.ttl_for(session)}; {self.security_flags}",
                    )
                elif initial_id:
                    headers.append(
                        "Set-Cookie",
                        f"{self.session_cookie}=null; path={self.path}; "
                        f"expires=Thu, 01 Jan 1970 00:00:00 GMT; {self.security_flags}",
                    )
            await send(message)

        await self.app(scope, receive, send_wrapper)


__all__ = [
    "REMEMBER_KEY",
    "ServerSession",
    "ServerSessionMiddleware",
    "SessionConflict",
    "SessionStore",
    "new_session_id",
]
