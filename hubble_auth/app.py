"""FastAPI application factory and configuration."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import SQLModel

from . import models  # noqa: F401 - ensure models are registered with SQLModel
from .api import register_routes
from .core import Settings, configure_logging, create_db_engine, get_settings
from .core.sessions import ServerSessionMiddleware, SessionStore
from .providers import build_registry
from .services.callback_urls import CallbackURLResolver
from .services.passwords import PasswordHasher
from .services.profanity import ProfanityFilter
from .services.ratelimit import AttemptLimiter
from .services.session_binder import SessionUserBinder
from .services.signup import UsernameConflictNegotiator
from .services.state import StateTokenManager

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    engine = app.state.engine
    if settings.db_reset:
        SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    purged = app.state.session_store.purge_expired()
    if purged:
        logger.info("Purged %d expired sessions", purged)
    configured = [name for name in app.state.registry if app.state.registry.get(name).configured]
    logger.info("OAuth providers configured: %s", ", ".join(configured) or "none")
    yield
    engine.dispose()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="Hubble Auth API", version="0.1.0", lifespan=lifespan)

    engine = create_db_engine(settings.database_url)
    store = SessionStore(engine, settings.session_ttl_seconds, settings.remember_me_ttl_seconds)

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_store = store
    app.state.registry = build_registry(settings)
    app.state.callback_urls = CallbackURLResolver(settings)
    app.state.state_tokens = StateTokenManager(settings.session_ttl_seconds)
    app.state.negotiator = UsernameConflictNegotiator(
        settings.session_ttl_seconds, settings.frontend_url
    )
    app.state.binder = SessionUserBinder()
    app.state.hasher = PasswordHasher(settings.password_hash_rounds)
    app.state.profanity = ProfanityFilter(settings.blocked_words)
    app.state.attempt_limiter = AttemptLimiter(
        settings.rate_limit_storage_uri, enabled=settings.rate_limit_enabled
    )

    app.add_middleware(
        ServerSessionMiddleware,
        store=store,
        secret_key=settings.secret_key,
        session_cookie=settings.session_cookie,
        max_age=settings.session_ttl_seconds,
        https_only=settings.cookie_secure,
        same_site=settings.cookie_samesite,
        domain=settings.cookie_domain,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.allowed_cors_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    register_routes(app)
    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("hubble_auth.app:create_app", factory=True, host="0.0.0.0", port=8000)
