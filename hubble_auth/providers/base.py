"""Shared OAuth2 authorization-code client for identity providers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Dict, Optional

import httpx
from authlib.common.errors import AuthlibBaseError
from authlib.integrations.httpx_client import AsyncOAuth2Client
from authlib.oauth2.rfc6749.parameters import prepare_grant_uri
from pydantic import BaseModel, ConfigDict

from ..core.config import ProviderConfig
from ..services.errors import ProviderError

logger = logging.getLogger(__name__)


class TokenGrant(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    scope: Optional[str] = None


class DeviceHints(BaseModel):
    """Provider-specific device identification sent on both OAuth legs."""

    model_config = ConfigDict(frozen=True)

    device_id: str
    device_name: str


class NormalizedIdentity(BaseModel):
    """Provider profile reduced to the fields account resolution needs."""

    model_config = ConfigDict(frozen=True)

    provider: str
    provider_account_id: str
    username: Optional[str] = None
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    profile_url: Optional[str] = None
    email: Optional[str] = None
    email_verified: bool = False
    access_token: str
    scope: Optional[str] = None


def _raise_for_status(response: httpx.Response) -> httpx.Response:
    response.raise_for_status()
    return response


def _scope_string(scope: Any) -> Optional[str]:
    if isinstance(scope, (list, tuple)):
        return " ".join(str(item) for item in scope)
    return scope or None


class ProviderClient(ABC):
    """One identity provider's half of the authorization-code flow.

    Subclasses declare their endpoints and implement :meth:`fetch_profile`
    and :meth:`normalize`. Every outbound call carries the configured timeout
    and any failure surfaces as :class:`ProviderError`, without retries.
    """

    name: ClassVar[str]
    authorize_url: ClassVar[str]
    token_url: ClassVar[str]
    noreply_domain: ClassVar[str]

    def __init__(self, config: ProviderConfig, timeout: float = 10.0) -> None:
        self.config = config
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return self.config.configured

    @property
    def has_secret(self) -> bool:
        return self.config.has_secret

    def device_hints(
        self,
        *,
        forwarded_for: Optional[str] = None,
        hostname: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Optional[DeviceHints]:
        """Device identity sent with the authorize and token requests, if any."""

        return None

    def authorize_params(self, device: Optional[DeviceHints]) -> Dict[str, str]:
        return {}

    def token_params(self, device: Optional[DeviceHints]) -> Dict[str, str]:
        return {}

    def api_headers(self, access_token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {access_token}"}

    def placeholder_email(self, provider_account_id: str) -> str:
        return f"{self.name}_{provider_account_id}@{self.noreply_domain}"

    def authorization_url(
        self, *, state: str, redirect_uri: str, device: Optional[DeviceHints] = None
    ) -> str:
        return prepare_grant_uri(
            self.authorize_url,
            client_id=self.config.client_id,
            response_type="code",
            redirect_uri=redirect_uri,
            scope=self.config.scope,
            state=state,
            **self.authorize_params(device),
        )

    def _oauth_client(self, redirect_uri: str) -> AsyncOAuth2Client:
        client = AsyncOAuth2Client(
            client_id=self.config.client_id,
            client_secret=self.config.client_secret,
            redirect_uri=redirect_uri,
            token_endpoint_auth_method="client_secret_post",
            timeout=self.timeout,
        )
        client.register_compliance_hook("access_token_response", _raise_for_status)
        return client

    async def exchange_code(
        self, code: str, redirect_uri: str, device: Optional[DeviceHints] = None
    ) -> TokenGrant:
        try:
            async with self._oauth_client(redirect_uri) as client:
                token = await client.fetch_token(
                    self.token_url,
                    grant_type="authorization_code",
                    code=code,
                    redirect_uri=redirect_uri,
                    **self.token_params(device),
                )
        except (httpx.HTTPError, AuthlibBaseError, ValueError) as exc:
            logger.warning("%s token exchange failed: %r", self.name, exc)
            raise ProviderError(self.name, "token exchange") from exc

        access_token = token.get("access_token")
        if not access_token:
            logger.warning("%s token response carried no access token", self.name)
            raise ProviderError(self.name, "token exchange")
        return TokenGrant(
            access_token=access_token,
            scope=_scope_string(token.get("scope")) or self.config.scope,
        )

    async def api_get(self, url: str, access_token: str) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.get(url, headers=self.api_headers(access_token))

    async def get_json(self, url: str, access_token: str, step: str) -> Any:
        try:
            response = await self.api_get(url, access_token)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("%s %s failed: %r", self.name, step, exc)
            raise ProviderError(self.name, step) from exc

    @abstractmethod
    async def fetch_profile(self, access_token: str) -> Dict[str, Any]:
        """Return the provider's raw profile document."""

    @abstractmethod
    def normalize(self, raw: Dict[str, Any], grant: TokenGrant) -> NormalizedIdentity:
        """Map a raw profile onto :class:`NormalizedIdentity`."""

    async def identify(
        self, code: str, redirect_uri: str, device: Optional[DeviceHints] = None
    ) -> NormalizedIdentity:
        grant = await self.exchange_code(code, redirect_uri, device)
        raw = await self.fetch_profile(grant.access_token)
        return self.normalize(raw, grant)


__all__ = [
    "DeviceHints",
    "NormalizedIdentity",
    "ProviderClient",
    "TokenGrant",
]
