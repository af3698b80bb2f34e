"""Identity provider clients and the registry that selects them by name."""

from __future__ import annotations

from typing import Dict, Iterator, Type

from ..core.config import Settings
from ..services.errors import AuthError, Reason
from .base import DeviceHints, NormalizedIdentity, ProviderClient, TokenGrant
from .github import GitHubClient
from .google import GoogleClient

PROVIDER_CLASSES: Dict[str, Type[ProviderClient]] = {
    GitHubClient.name: GitHubClient,
    GoogleClient.name: GoogleClient,
}


class ProviderRegistry:
    """Provider clients keyed by name, built once from settings."""

    def __init__(self, clients: Dict[str, ProviderClient]) -> None:
        self._clients = dict(clients)

    def __contains__(self, name: object) -> bool:
        return name in self._clients

    def __iter__(self) -> Iterator[str]:
        return iter(self._clients)

    def get(self, name: str) -> ProviderClient:
        client = self._clients.get((name or "").lower())
        if client is None:
            raise AuthError(Reason.UNSUPPORTED_PROVIDER)
        return client


def build_registry(settings: Settings) -> ProviderRegistry:
    return ProviderRegistry(
        {
            name: cls(settings.provider(name), timeout=settings.http_timeout_seconds)
            for name, cls in PROVIDER_CLASSES.items()
        }
    )


__all__ = [
    "DeviceHints",
    "GitHubClient",
    "GoogleClient",
    "NormalizedIdentity",
    "PROVIDER_CLASSES",
    "ProviderClient",
    "ProviderRegistry",
    "TokenGrant",
    "build_registry",
]
