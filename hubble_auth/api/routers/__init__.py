"""Aggregate API routers."""

from fastapi import APIRouter

from .account import router as account_router
from .auth import router as auth_router
from .system import router as system_router

ALL_ROUTERS: tuple[APIRouter, ...] = (
    system_router,
    account_router,
    auth_router,
)

__all__ = ["ALL_ROUTERS"]
