"""Shared FastAPI dependencies."""

from __future__ import annotations

from fastapi import Depends, Request
from sqlmodel import Session

from ..core import Settings, get_session
from ..models import User
from ..providers import ProviderRegistry
from ..services.accounts import LocalAccounts, get_session_user
from ..services.errors import AuthError, Reason
from ..services.identity import IdentityResolver


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_registry(request: Request) -> ProviderRegistry:
    return request.app.state.registry


def get_resolver(request: Request, db: Session = Depends(get_session)) -> IdentityResolver:
    state = request.app.state
    return IdentityResolver(db, state.hasher, state.settings.super_user_emails)


def get_local_accounts(request: Request, db: Session = Depends(get_session)) -> LocalAccounts:
    state = request.app.state
    return LocalAccounts(db, state.hasher, state.profanity, state.settings.super_user_emails)


def rate_limited(scope: str):
    """Dependency counting one attempt against the ``<scope>_rate_limit`` setting."""

    def dependency(request: Request) -> None:
        state = request.app.state
        client = request.client.host if request.client else "unknown"
        state.attempt_limiter.hit(scope, getattr(state.settings, f"{scope}_rate_limit"), client)

    return dependency


def current_user(request: Request, db: Session = Depends(get_session)) -> User:
    """The signed-in user; a session pointing at a deleted user is cleared."""

    uid = request.session.get("uid")
    if not uid:
        raise AuthError(Reason.NOT_AUTHENTICATED)
    user = get_session_user(db, request.session)
    if user is None:
        request.session.clear()
        raise AuthError(Reason.USER_NOT_FOUND, "User not found", status_code=401)
    return user


__all__ = [
    "current_user",
    "get_app_settings",
    "get_local_accounts",
    "get_registry",
    "get_resolver",
    "rate_limited",
]
