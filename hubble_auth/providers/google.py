"""Google OAuth client."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ..services.errors import ProviderError
from .base import DeviceHints, NormalizedIdentity, ProviderClient, TokenGrant

logger = logging.getLogger(__name__)

USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return value is True


class GoogleClient(ProviderClient):
    name = "google"
    authorize_url = "https://accounts.google.com/o/oauth2/v2/auth"
    token_url = "https://oauth2.googleapis.com/token"
    noreply_domain = "users.noreply.google.com"

    def device_hints(
        self,
        *,
        forwarded_for: Optional[str] = None,
        hostname: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> DeviceHints:
        """Configured device identity, else one derived from the request."""

        agent = (user_agent or "").split(" ")[0] or "Hubble"
        return DeviceHints(
            device_id=self.config.device_id or forwarded_for or hostname or "local-device",
            device_name=self.config.device_name or f"{agent}-dev",
        )

    def _device_params(self, device: Optional[DeviceHints]) -> Dict[str, str]:
        if device is None:
            return {}
        return {"device_id": device.device_id, "device_name": device.device_name}

    def authorize_params(self, device: Optional[DeviceHints]) -> Dict[str, str]:
        return {"access_type": "offline", "prompt": "consent", **self._device_params(device)}

    def token_params(self, device: Optional[DeviceHints]) -> Dict[str, str]:
        return self._device_params(device)

    async def fetch_profile(self, access_token: str) -> Dict[str, Any]:
        profile = await self.get_json(USERINFO_URL, access_token, "profile fetch")
        if not isinstance(profile, dict) or not profile.get("sub"):
            logger.warning("Google userinfo response has no subject")
            raise ProviderError(self.name, "profile fetch")
        return profile

    def normalize(self, raw: Dict[str, Any], grant: TokenGrant) -> NormalizedIdentity:
        account_id = str(raw["sub"])
        email = raw.get("email") or None
        verified = bool(email) and _truthy(raw.get("email_verified"))
        if not email:
            email = self.placeholder_email(account_id)
        local_part = raw["email"].split("@")[0] if raw.get("email") else None
        return NormalizedIdentity(
            provider=self.name,
            provider_account_id=account_id,
            username=local_part,
            display_name=raw.get("name"),
            avatar_url=raw.get("picture"),
            profile_url=None,
            email=email,
            email_verified=verified,
            access_token=grant.access_token,
            scope=grant.scope,
        )


__all__ = ["GoogleClient"]
