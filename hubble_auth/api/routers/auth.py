"""OAuth sign-in, account linking and provider management routes."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse
from sqlmodel import Session

from ...core import Settings, get_session
from ...core.sessions import SessionConflict
from ...core.time import expires_in
from ...models import User
from ...providers import ProviderRegistry
from ...services import workflows
from ...services.accounts import LocalAccounts
from ...services.errors import AuthError, Reason
from ...services.frontend import allowed_return_path, frontend_redirect_url
from ...services.identity import IdentityResolver, Outcome
from ...services.linking import AccountLinkingGuard
from ...services.state import StateTokenManager
from ...services.workflows import OAuthDeviceWorkflow
from ..deps import (
    current_user,
    get_app_settings,
    get_local_accounts,
    get_registry,
    get_resolver,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


def _forwarded_for(request: Request) -> Optional[str]:
    raw = request.headers.get("x-forwarded-for") or ""
    first = raw.split(",")[0].strip()
    if first:
        return first
    return request.client.host if request.client else None


# Declared before the ``/auth/{provider}`` routes so "providers" is never
# taken for a provider name.
@router.get("/auth/providers")
def list_linked_providers(
    user: User = Depends(current_user), db: Session = Depends(get_session)
) -> Dict[str, Any]:
    accounts = AccountLinkingGuard(db).linked_accounts(user)
    return {"providers": [account.to_public_dict() for account in accounts]}


@router.delete("/auth/providers/{provider}")
def unlink_provider(
    provider: str,
    user: User = Depends(current_user),
    db: Session = Depends(get_session),
    registry: ProviderRegistry = Depends(get_registry),
) -> Dict[str, str]:
    name = registry.get(provider).name
    AccountLinkingGuard(db).unlink(user, name)
    return {"message": "Provider unlinked successfully"}


@router.post("/oauth/unlink")
def unlink_provider_legacy(
    body: Dict[str, Any],
    user: User = Depends(current_user),
    db: Session = Depends(get_session),
    registry: ProviderRegistry = Depends(get_registry),
) -> Dict[str, Any]:
    """Older clients post ``{"provider": ...}`` here; same rules as DELETE."""

    provider = body.get("provider")
    if not provider or not isinstance(provider, str):
        raise AuthError(Reason.UNSUPPORTED_PROVIDER, "Provider is required", status_code=400)
    name = registry.get(provider).name
    AccountLinkingGuard(db).unlink(user, name)
    return {"success": True, "message": "OAuth account unlinked successfully"}


@router.post("/auth/set-password")
def set_password(
    body: Dict[str, Any],
    user: User = Depends(current_user),
    accounts: LocalAccounts = Depends(get_local_accounts),
) -> Dict[str, str]:
    accounts.set_password(user, body.get("password"))
    return {"message": "Password set successfully"}


@router.post("/complete-{provider}-signup")
async def complete_signup(
    provider: str,
    body: Dict[str, Any],
    request: Request,
    db: Session = Depends(get_session),
    registry: ProviderRegistry = Depends(get_registry),
    resolver: IdentityResolver = Depends(get_resolver),
) -> Dict[str, Any]:
    state = request.app.state
    name = registry.get(provider).name
    return await state.negotiator.complete(
        request.session,
        db,
        name,
        body.get("username"),
        resolver=resolver,
        profanity=state.profanity,
        binder=state.binder,
    )


@router.get("/auth/{provider}")
async def oauth_start(
    provider: str,
    request: Request,
    mode: Optional[str] = None,
    return_to: Optional[str] = Query(default=None, alias="returnTo"),
    settings: Settings = Depends(get_app_settings),
    registry: ProviderRegistry = Depends(get_registry),
) -> RedirectResponse:
    client = registry.get(provider)
    if not client.configured:
        raise AuthError(Reason.PROVIDER_NOT_CONFIGURED)

    state = request.app.state
    session = request.session
    redirect_uri = state.callback_urls.resolve(client.name, request)
    workflow = state.state_tokens.issue(
        session,
        provider=client.name,
        mode="link" if mode == "link" else "login",
        redirect_uri=redirect_uri,
        return_to=allowed_return_path(return_to, settings.frontend_url),
    )

    device = client.device_hints(
        forwarded_for=_forwarded_for(request),
        hostname=request.url.hostname,
        user_agent=request.headers.get("user-agent"),
    )
    if device is not None:
        workflows.stash(
            session,
            OAuthDeviceWorkflow(
                provider=client.name,
                device=device,
                expires_at=expires_in(settings.session_ttl_seconds),
            ),
        )
    else:
        workflows.discard(session, "oauth_device")

    # The state must be stored before the browser reaches the provider.
    await session.persist()
    logger.info("Starting %s OAuth (%s mode)", client.name, workflow.mode)
    return RedirectResponse(
        client.authorization_url(state=workflow.state, redirect_uri=redirect_uri, device=device),
        status_code=302,
    )


@router.get("/auth/{provider}/callback")
async def oauth_callback(
    provider: str,
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    settings: Settings = Depends(get_app_settings),
    registry: ProviderRegistry = Depends(get_registry),
    resolver: IdentityResolver = Depends(get_resolver),
) -> RedirectResponse:
    app_state = request.app.state
    session = request.session
    name = (provider or "").lower()

    # Consumed before any other check so a state token is never reusable.
    stored = await app_state.state_tokens.consume(session)
    device_workflow = workflows.take(session, "oauth_device")
    return_to = stored.return_to if stored is not None else None

    message: Optional[str] = None
    try:
        client = registry.get(name)
        if not client.configured:
            raise AuthError(Reason.PROVIDER_NOT_CONFIGURED)
        workflow = StateTokenManager.verify(stored, client.name, state)
        if error:
            logger.warning("%s returned an authorization error: %s", client.name, error)
            raise AuthError(Reason.PROVIDER_ERROR)
        if not code:
            raise AuthError(Reason.MISSING_CODE)
        if not client.has_secret:
            logger.error("%s OAuth client secret is not configured", client.name)
            raise AuthError(Reason.SERVER_MISSING_SECRET)

        device = None
        if device_workflow is not None and device_workflow.provider == client.name:
            device = device_workflow.device
        identity = await client.identify(code, workflow.redirect_uri, device)

        resolution = resolver.resolve(
            identity, mode=workflow.mode, initiating_user_id=workflow.initiating_user_id
        )
        if resolution.outcome is Outcome.CONFLICT_DEFERRED:
            app_state.negotiator.defer(
                session, identity, resolution.base_username, workflow.return_to
            )
            message = resolution.base_username
        elif resolution.signs_in:
            await app_state.binder.bind(session, resolution.user)
        status = resolution.auth_status
    except AuthError as exc:
        logger.info("%s OAuth callback failed: %s", name, exc.reason.value)
        status, message = "error", exc.reason.value
    except SessionConflict:
        logger.warning("Session changed during %s OAuth callback", name)
        status, message = "error", Reason.SESSION_CONFLICT.value
    except Exception:
        logger.exception("Unexpected error in %s OAuth callback", name)
        status, message = "error", Reason.INTERNAL_ERROR.value

    target = frontend_redirect_url(
        settings.frontend_url,
        return_to,
        {"authProvider": name, "authStatus": status, "authMessage": message},
    )
    return RedirectResponse(target, status_code=302)


__all__ = ["router"]
