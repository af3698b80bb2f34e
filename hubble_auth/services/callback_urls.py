"""Redirect URI construction for the OAuth round trip."""

from __future__ import annotations

import logging

from starlette.requests import HTTPConnection

from ..core.config import Settings

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/auth/{provider}/callback"


class CallbackURLResolver:
    """Resolves a provider's ``redirect_uri``; first match wins.

    1. the provider's explicit override (``GITHUB_CALLBACK_URL`` ...)
    2. ``PUBLIC_BASE_URL`` plus the callback path
    3. the request's forwarded scheme and host (development only)

    The result is stored with the state token and replayed on the code
    exchange, so both legs send the same string.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def resolve(self, provider: str, connection: HTTPConnection) -> str:
        override = self.settings.provider(provider).callback_url
        if override:
            return override

        path = CALLBACK_PATH.format(provider=provider)
        if self.settings.public_base_url:
            return f"{self.settings.public_base_url}{path}"

        headers = connection.headers
        proto = (headers.get("x-forwarded-proto") or connection.url.scheme or "http").split(",")[0]
        host = (headers.get("x-forwarded-host") or headers.get("host") or "localhost").split(",")[0]
        derived = f"{proto.strip()}://{host.strip()}{path}"
        logger.warning(
            "Derived %s callback URL from request headers: %s; set %s_CALLBACK_URL "
            "or PUBLIC_BASE_URL outside development",
            provider,
            derived,
            provider.upper(),
        )
        return derived


__all__ = ["CALLBACK_PATH", "CallbackURLResolver"]
