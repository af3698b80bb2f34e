"""In-flight OAuth workflow state kept in the session.

Each step of an unfinished flow is one variant of ``PendingOAuthWorkflow``,
stored under ``session["workflows"][kind]`` with an explicit expiry equal to
the session TTL. Expired or unreadable entries read as absent.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated, Any, Literal, MutableMapping, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from ..core.time import as_aware, utcnow
from ..providers.base import DeviceHints, NormalizedIdentity

logger = logging.getLogger(__name__)

SESSION_KEY = "workflows"

OAuthMode = Literal["login", "link"]


class OAuthStateWorkflow(BaseModel):
    kind: Literal["oauth_state"] = "oauth_state"
    provider: str
    state: str
    mode: OAuthMode = "login"
    initiating_user_id: Optional[str] = None
    return_to: Optional[str] = None
    redirect_uri: str
    expires_at: datetime


class OAuthDeviceWorkflow(BaseModel):
    kind: Literal["oauth_device"] = "oauth_device"
    provider: str
    device: DeviceHints
    expires_at: datetime


class PendingSignupWorkflow(BaseModel):
    kind: Literal["pending_signup"] = "pending_signup"
    provider: str
    identity: NormalizedIdentity
    base_username: str
    return_to: Optional[str] = None
    expires_at: datetime


PendingOAuthWorkflow = Annotated[
    Union[OAuthStateWorkflow, OAuthDeviceWorkflow, PendingSignupWorkflow],
    Field(discriminator="kind"),
]

_adapter: TypeAdapter = TypeAdapter(PendingOAuthWorkflow)


def stash(session: MutableMapping[str, Any], workflow: BaseModel) -> None:
    workflows = dict(session.get(SESSION_KEY) or {})
    workflows[workflow.kind] = workflow.model_dump(mode="json")
    session[SESSION_KEY] = workflows


def _parse(kind: str, raw: Any):
    try:
        workflow = _adapter.validate_python(raw)
    except ValidationError:
        logger.warning("Dropping malformed %s workflow from session", kind)
        return None
    if workflow.kind != kind:
        return None
    if as_aware(workflow.expires_at) <= utcnow():
        logger.info("Ignoring expired %s workflow", kind)
        return None
    return workflow


def peek(session: MutableMapping[str, Any], kind: str):
    raw = (session.get(SESSION_KEY) or {}).get(kind)
    if raw is None:
        return None
    return _parse(kind, raw)


def discard(session: MutableMapping[str, Any], kind: str) -> bool:
    workflows = dict(session.get(SESSION_KEY) or {})
    existed = workflows.pop(kind, None) is not None
    if workflows:
        session[SESSION_KEY] = workflows
    else:
        session.pop(SESSION_KEY, None)
    return existed


def take(session: MutableMapping[str, Any], kind: str):
    """Remove the ``kind`` entry and return it if it was still valid."""

    raw = (session.get(SESSION_KEY) or {}).get(kind)
    discard(session, kind)
    if raw is None:
        return None
    return _parse(kind, raw)


__all__ = [
    "OAuthDeviceWorkflow",
    "OAuthMode",
    "OAuthStateWorkflow",
    "PendingOAuthWorkflow",
    "PendingSignupWorkflow",
    "discard",
    "peek",
    "stash",
    "take",
]
