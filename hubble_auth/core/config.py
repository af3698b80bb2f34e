"""Application settings and environment helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from dotenv import load_dotenv

load_dotenv(override=False)

_PROJECT_ROOT = Path(__file__).resolve().parents[2]
_DEFAULT_DB_PATH = _PROJECT_ROOT / "data" / "app.db"

DEFAULT_SESSION_TTL = 14 * 24 * 60 * 60
REMEMBER_ME_TTL = 30 * 24 * 60 * 60


class ConfigurationError(RuntimeError):
    """Raised when the environment cannot produce a usable configuration."""


def _clean(raw: Optional[str]) -> Optional[str]:
    # Values pasted from dashboards often carry stray quotes.
    if raw is None:
        return None
    value = raw.strip().strip('"').strip()
    return value or None


def _require_env(env: Mapping[str, str], name: str) -> str:
    """Return a required environment variable or raise an error."""

    value = _clean(env.get(name))
    if not value:
        raise ConfigurationError(f"Missing required environment variable: {name}")
    return value


def _env_bool(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = _clean(env.get(name))
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer") from exc


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = _clean(env.get(name))
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number") from exc


def _split_csv(raw: str | None) -> List[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


def _unique(values: Iterable[str]) -> List[str]:
    seen = set()
    ordered: List[str] = []
    for value in values:
        if value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered


@dataclass(frozen=True)
class ProviderConfig:
    """Credentials and endpoints for one identity provider."""

    name: str
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    callback_url: Optional[str] = None
    scope: str = ""
    user_agent: str = "HubbleApp"
    device_id: Optional[str] = None
    device_name: Optional[str] = None

    @property
    def configured(self) -> bool:
        return bool(self.client_id)

    @property
    def has_secret(self) -> bool:
        return bool(self.client_secret)


@dataclass(frozen=True)
class Settings:
    """Immutable runtime configuration, built once at startup."""

    secret_key: str
    frontend_url: str
    database_url: str
    environment: str = "development"
    public_base_url: Optional[str] = None
    allowed_cors_origins: Tuple[str, ...] = ()
    super_user_emails: Tuple[str, ...] = ()
    session_cookie: str = "sid"
    session_ttl_seconds: int = DEFAULT_SESSION_TTL
    remember_me_ttl_seconds: int = REMEMBER_ME_TTL
    cookie_domain: Optional[str] = None
    cookie_secure: bool = False
    cookie_samesite: str = "lax"
    http_timeout_seconds: float = 10.0
    password_hash_rounds: int = 12
    log_level: str = "INFO"
    db_reset: bool = False
    blocked_words: Tuple[str, ...] = ()
    rate_limit_enabled: bool = True
    login_rate_limit: str = "10/5 minutes"
    register_rate_limit: str = "5/hour"
    rate_limit_storage_uri: str = "memory://"
    providers: Mapping[str, ProviderConfig] = field(default_factory=dict)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def provider(self, name: str) -> ProviderConfig:
        return self.providers.get(name) or ProviderConfig(name=name)


_local_dev_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]


def _provider_configs(env: Mapping[str, str]) -> Dict[str, ProviderConfig]:
    user_agent = _clean(env.get("GITHUB_USER_AGENT")) or "HubbleApp"
    github = ProviderConfig(
        name="github",
        client_id=_clean(env.get("GITHUB_CLIENT_ID")),
        client_secret=_clean(env.get("GITHUB_CLIENT_SECRET")),
        callback_url=_clean(env.get("GITHUB_CALLBACK_URL")),
        scope="read:user user:email",
        user_agent=user_agent,
    )
    google = ProviderConfig(
        name="google",
        client_id=_clean(env.get("GOOGLE_CLIENT_ID")),
        client_secret=_clean(env.get("GOOGLE_CLIENT_SECRET")),
        # Some deployments name it GOOGLE_CALLBACK_URL_RAW.
        callback_url=_clean(env.get("GOOGLE_CALLBACK_URL_RAW"))
        or _clean(env.get("GOOGLE_CALLBACK_URL")),
        scope="openid email profile",
        user_agent=user_agent,
        device_id=_clean(env.get("OAUTH_DEVICE_ID")),
        device_name=_clean(env.get("OAUTH_DEVICE_NAME")),
    )
    return {github.name: github, google.name: google}


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build :class:`Settings` from a mapping (defaults to ``os.environ``)."""

    env = os.environ if env is None else env

    secret_key = _require_env(env, "SECRET_KEY")

    # FRONTEND_URL can contain a comma-separated list for multi-domain deploys;
    # the first entry is where OAuth flows land.
    frontend_urls = [
        url.rstrip("/")
        for url in _split_csv(_clean(env.get("FRONTEND_URL")) or "http://localhost:5173")
    ]
    additional_origins = [
        url.rstrip("/") for url in _split_csv(env.get("ADDITIONAL_ALLOWED_ORIGINS"))
    ]

    settings = Settings(
        secret_key=secret_key,
        frontend_url=frontend_urls[0],
        database_url=_clean(env.get("DATABASE_URL")) or f"sqlite:///{_DEFAULT_DB_PATH}",
        environment=(_clean(env.get("APP_ENV")) or "development").lower(),
        public_base_url=(_clean(env.get("PUBLIC_BASE_URL")) or "").rstrip("/") or None,
        allowed_cors_origins=tuple(
            _unique([*frontend_urls, *additional_origins, *_local_dev_origins])
        ),
        super_user_emails=tuple(
            _unique(email.lower() for email in _split_csv(env.get("SUPER_USER_EMAILS")))
        ),
        session_cookie=_clean(env.get("SESSION_COOKIE")) or "sid",
        session_ttl_seconds=_env_int(env, "SESSION_TTL_SECONDS", DEFAULT_SESSION_TTL),
        remember_me_ttl_seconds=_env_int(env, "REMEMBER_ME_TTL_SECONDS", REMEMBER_ME_TTL),
        cookie_domain=_clean(env.get("COOKIE_DOMAIN")),
        cookie_secure=_env_bool(env, "COOKIE_SECURE", False),
        cookie_samesite=_clean(env.get("COOKIE_SAMESITE")) or "lax",
        http_timeout_seconds=_env_float(env, "OAUTH_HTTP_TIMEOUT", 10.0),
        password_hash_rounds=_env_int(env, "PASSWORD_HASH_ROUNDS", 12),
        log_level=(_clean(env.get("LOG_LEVEL")) or "INFO").upper(),
        db_reset=_env_bool(env, "DB_RESET", False),
        blocked_words=tuple(
            word.lower() for word in _split_csv(env.get("HIGH_SEVERITY_PROFANITY"))
        ),
        rate_limit_enabled=_env_bool(env, "RATE_LIMIT_ENABLED", True),
        login_rate_limit=_clean(env.get("LOGIN_RATE_LIMIT")) or "10/5 minutes",
        register_rate_limit=_clean(env.get("REGISTER_RATE_LIMIT")) or "5/hour",
        rate_limit_storage_uri=_clean(env.get("RATE_LIMIT_STORAGE_URI")) or "memory://",
        providers=_provider_configs(env),
    )
    _validate(settings)
    return settings


def _validate(settings: Settings) -> None:
    if settings.session_ttl_seconds <= 0:
        raise ConfigurationError("SESSION_TTL_SECONDS must be positive")
    if settings.remember_me_ttl_seconds < settings.session_ttl_seconds:
        raise ConfigurationError("REMEMBER_ME_TTL_SECONDS must be at least SESSION_TTL_SECONDS")
    if not 4 <= settings.password_hash_rounds <= 31:
        raise ConfigurationError("PASSWORD_HASH_ROUNDS must be between 4 and 31")
    if not settings.is_production:
        return
    # Deriving redirect URIs from request headers is a development fallback only.
    for provider in settings.providers.values():
        if provider.configured and not (provider.callback_url or settings.public_base_url):
            raise ConfigurationError(
                f"{provider.name} OAuth is configured but neither "
                f"{provider.name.upper()}_CALLBACK_URL nor PUBLIC_BASE_URL is set"
            )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, read from the environment on first use."""

    return load_settings()


__all__ = [
    "ConfigurationError",
    "DEFAULT_SESSION_TTL",
    "REMEMBER_ME_TTL",
    "ProviderConfig",
    "Settings",
    "get_settings",
    "load_settings",
]
