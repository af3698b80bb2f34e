"""Failure taxonomy for the authentication flows."""

from __future__ import annotations

from enum import Enum
from typing import Dict, Optional


class Reason(str, Enum):
    PROVIDER_NOT_CONFIGURED = "provider_not_configured"
    UNSUPPORTED_PROVIDER = "unsupported_provider"
    INVALID_OAUTH_STATE = "invalid_oauth_state"
    MISSING_CODE = "missing_code"
    MISSING_SESSION_USER = "missing_session_user"
    ALREADY_LINKED_ELSEWHERE = "already_linked_elsewhere"
    PROVIDER_ALREADY_LINKED = "provider_already_linked"
    EMAIL_UNVERIFIED = "email_unverified"
    SERVER_MISSING_SECRET = "server_missing_secret"
    PROVIDER_ERROR = "provider_error"
    NOT_LINKED = "not_linked"
    CANNOT_UNLINK_ONLY_METHOD = "cannot_unlink_only_method"
    NO_PENDING_SIGNUP = "no_pending_signup"
    INVALID_USERNAME = "invalid_username"
    USERNAME_TAKEN = "username_taken"
    USERNAME_PROFANE = "username_profane"
    EMAIL_TAKEN = "email_taken"
    INVALID_EMAIL = "invalid_email"
    MISSING_FIELDS = "missing_fields"
    INVALID_PASSWORD = "invalid_password"
    INVALID_CREDENTIALS = "invalid_credentials"
    PASSWORD_ALREADY_SET = "password_already_set"
    NOT_OAUTH_ACCOUNT = "not_oauth_account"
    NOT_AUTHENTICATED = "not_authenticated"
    USER_NOT_FOUND = "user_not_found"
    RATE_LIMITED = "rate_limited"
    SESSION_CONFLICT = "session_conflict"
    INTERNAL_ERROR = "internal_error"


_DEFAULT_STATUS = {
    Reason.PROVIDER_NOT_CONFIGURED: 503,
    Reason.UNSUPPORTED_PROVIDER: 404,
    Reason.MISSING_SESSION_USER: 401,
    Reason.NOT_AUTHENTICATED: 401,
    Reason.INVALID_CREDENTIALS: 401,
    Reason.NOT_LINKED: 404,
    Reason.USER_NOT_FOUND: 404,
    Reason.ALREADY_LINKED_ELSEWHERE: 409,
    Reason.SESSION_CONFLICT: 409,
    Reason.RATE_LIMITED: 429,
    Reason.PROVIDER_ERROR: 502,
    Reason.SERVER_MISSING_SECRET: 500,
    Reason.INTERNAL_ERROR: 500,
}

_DEFAULT_MESSAGES = {
    Reason.PROVIDER_NOT_CONFIGURED: "This sign-in provider is not configured",
    Reason.UNSUPPORTED_PROVIDER: "Unsupported provider",
    Reason.INVALID_OAUTH_STATE: "Sign-in request expired or was already used",
    Reason.MISSING_SESSION_USER: "You must be logged in to link accounts",
    Reason.ALREADY_LINKED_ELSEWHERE: "This account is already linked to another user",
    Reason.PROVIDER_ALREADY_LINKED: "A different account from this provider is already linked",
    Reason.NOT_LINKED: "Provider not linked",
    Reason.CANNOT_UNLINK_ONLY_METHOD: "Cannot unlink the only sign-in method",
    Reason.NO_PENDING_SIGNUP: "No pending signup found",
    Reason.NOT_AUTHENTICATED: "Authentication required",
    Reason.RATE_LIMITED: "Too many attempts, please try again later",
    Reason.SESSION_CONFLICT: "Session changed in another tab, please retry",
}


class AuthError(Exception):
    """A flow step failed with a client-safe reason code.

    ``message`` is shown to API clients; anything sensitive belongs in logs.
    """

    def __init__(
        self,
        reason: Reason,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.reason = Reason(reason)
        self.message = message or _DEFAULT_MESSAGES.get(self.reason, self.reason.value)
        self.status_code = status_code or _DEFAULT_STATUS.get(self.reason, 400)
        self.headers = headers
        super().__init__(f"{self.reason.value}: {self.message}")

    def to_dict(self) -> dict:
        return {"message": self.message, "reason": self.reason.value}


class ProviderError(AuthError):
    """Token exchange or profile fetch failed at the provider."""

    def __init__(self, provider: str, step: str) -> None:
        self.provider = provider
        self.step = step
        super().__init__(Reason.PROVIDER_ERROR, f"{provider} {step} failed")


__all__ = ["AuthError", "ProviderError", "Reason"]
