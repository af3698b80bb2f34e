"""System-level API endpoints."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends

from ...core import Settings
from ...providers import ProviderRegistry
from ..deps import get_app_settings, get_registry

router = APIRouter(tags=["system"])


@router.get("/health")
def health() -> Dict[str, bool]:
    """Simple readiness probe."""

    return {"ok": True}


@router.get("/config")
def get_config(
    settings: Settings = Depends(get_app_settings),
    registry: ProviderRegistry = Depends(get_registry),
) -> Dict[str, Any]:
    """Which sign-in providers the frontend should offer."""

    return {
        "frontend_url": settings.frontend_url,
        "providers": [name for name in registry if registry.get(name).configured],
    }


__all__ = ["router"]
