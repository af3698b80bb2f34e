"""Local account endpoints: register, login, logout and profile lookup."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlmodel import Session

from ...core import get_session
from ...models import User
from ...services.accounts import LocalAccounts
from ...services.errors import AuthError, Reason
from ...services.linking import AccountLinkingGuard
from ...services.usernames import check_username
from ..deps import current_user, get_local_accounts, rate_limited

router = APIRouter(tags=["account"])


def _user_payload(user: User) -> Dict[str, Any]:
    created_at = user.created_at.isoformat() if user.created_at else None
    return {
        **user.snapshot(),
        "displayName": user.display_name or user.username,
        "hasSetPassword": bool(user.has_set_password),
        "language": user.language,
        "theme": user.theme,
        "createdAt": created_at,
    }


@router.post("/register", dependencies=[Depends(rate_limited("register"))])
async def register(
    body: Dict[str, Any],
    request: Request,
    accounts: LocalAccounts = Depends(get_local_accounts),
) -> JSONResponse:
    user = accounts.register(body.get("name"), body.get("email"), body.get("password"))
    await request.app.state.binder.bind(request.session, user)
    return JSONResponse(
        {"message": "User registered successfully", "user": _user_payload(user)},
        status_code=201,
    )


@router.post("/login", dependencies=[Depends(rate_limited("login"))])
async def login(
    body: Dict[str, Any],
    request: Request,
    accounts: LocalAccounts = Depends(get_local_accounts),
) -> Dict[str, Any]:
    user = accounts.authenticate(body.get("email"), body.get("password"))
    await request.app.state.binder.bind(
        request.session, user, remember=bool(body.get("remember"))
    )
    return {"message": "Login successful", "user": user.snapshot()}


@router.post("/logout")
async def logout(request: Request) -> Dict[str, str]:
    await request.app.state.binder.unbind(request.session)
    return {"message": "Logged out successfully"}


@router.get("/me")
def me(user: User = Depends(current_user), db: Session = Depends(get_session)) -> Dict[str, Any]:
    payload = _user_payload(user)
    payload["providers"] = [
        account.provider for account in AccountLinkingGuard(db).linked_accounts(user)
    ]
    return {"user": payload}


@router.get("/check-username")
def check_username_availability(
    request: Request,
    username: Optional[str] = None,
    db: Session = Depends(get_session),
) -> Dict[str, Any]:
    if not username:
        raise AuthError(Reason.INVALID_USERNAME, "Username is required")
    return check_username(db, username, request.app.state.profanity)


__all__ = ["router"]
