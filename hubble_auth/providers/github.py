"""GitHub OAuth client."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ..services.errors import ProviderError
from .base import DeviceHints, NormalizedIdentity, ProviderClient, TokenGrant

logger = logging.getLogger(__name__)

API_BASE = "https://api.github.com"


def select_email(emails: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Pick primary+verified, then primary, then verified, then the first."""

    for predicate in (
        lambda item: item.get("primary") and item.get("verified"),
        lambda item: item.get("primary"),
        lambda item: item.get("verified"),
    ):
        for item in emails:
            if predicate(item):
                return item
    return emails[0] if emails else None


class GitHubClient(ProviderClient):
    name = "github"
    authorize_url = "https://github.com/login/oauth/authorize"
    token_url = "https://github.com/login/oauth/access_token"
    noreply_domain = "users.noreply.github.com"

    def authorize_params(self, device: Optional[DeviceHints]) -> Dict[str, str]:
        return {"allow_signup": "true"}

    def api_headers(self, access_token: str) -> Dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {access_token}",
            "User-Agent": self.config.user_agent,
        }

    async def fetch_profile(self, access_token: str) -> Dict[str, Any]:
        profile = await self.get_json(f"{API_BASE}/user", access_token, "profile fetch")
        if not isinstance(profile, dict) or not isinstance(profile.get("id"), int):
            logger.warning("GitHub profile response has no numeric id")
            raise ProviderError(self.name, "profile fetch")
        if not profile.get("email"):
            profile["emails"] = await self.fetch_emails(access_token)
        return profile

    async def fetch_emails(self, access_token: str) -> List[Dict[str, Any]]:
        """List the account's addresses; an empty list on any failure."""

        try:
            response = await self.api_get(f"{API_BASE}/user/emails", access_token)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("GitHub email list unavailable, falling back: %r", exc)
            return []
        if not isinstance(payload, list):
            return []
        return [
            item
            for item in payload
            if isinstance(item, dict) and isinstance(item.get("email"), str)
        ]

    def _choose_email(self, raw: Dict[str, Any]) -> Tuple[Optional[str], bool]:
        # GitHub only lets users publish a verified address on their profile.
        if isinstance(raw.get("email"), str) and raw["email"]:
            return raw["email"], True
        chosen = select_email(raw.get("emails") or [])
        if chosen is None:
            return None, False
        return chosen["email"], bool(chosen.get("verified"))

    def normalize(self, raw: Dict[str, Any], grant: TokenGrant) -> NormalizedIdentity:
        account_id = str(raw["id"])
        email, verified = self._choose_email(raw)
        if not email:
            email, verified = self.placeholder_email(account_id), False
        return NormalizedIdentity(
            provider=self.name,
            provider_account_id=account_id,
            username=raw.get("login"),
            display_name=raw.get("name"),
            avatar_url=raw.get("avatar_url"),
            profile_url=raw.get("html_url"),
            email=email,
            email_verified=verified,
            access_token=grant.access_token,
            scope=grant.scope,
        )


__all__ = ["GitHubClient", "select_email"]
