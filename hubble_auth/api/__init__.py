"""Router registration and JSON rendering of authentication failures."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..core.sessions import SessionConflict
from ..services.errors import AuthError, Reason
from .routers import ALL_ROUTERS

logger = logging.getLogger(__name__)


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    return JSONResponse(exc.to_dict(), status_code=exc.status_code, headers=exc.headers)


async def session_conflict_handler(request: Request, exc: SessionConflict) -> JSONResponse:
    logger.warning("Concurrent session write rejected on %s", request.url.path)
    return await auth_error_handler(request, AuthError(Reason.SESSION_CONFLICT))


def register_routes(app: FastAPI) -> None:
    """Attach the routers and the error handlers to ``app``."""

    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(SessionConflict, session_conflict_handler)
    for router in ALL_ROUTERS:
        app.include_router(router)


__all__ = ["auth_error_handler", "register_routes", "session_conflict_handler"]
