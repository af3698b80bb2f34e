"""Shared fixtures: an app on an in-memory database with both providers configured."""

from typing import Dict, Optional
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
import respx
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, select

from hubble_auth.app import create_app
from hubble_auth.core.config import load_settings
from hubble_auth.core.database import create_db_engine
from hubble_auth.models import OAuthAccount, User

FRONTEND_URL = "http://frontend.test"

GITHUB_TOKEN_URL = "https://github.com/login/oauth/access_token"
GITHUB_USER_URL = "https://api.github.com/user"
GITHUB_EMAILS_URL = "https://api.github.com/user/emails"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"

BASE_ENV = {
    "SECRET_KEY": "test-secret",
    "FRONTEND_URL": FRONTEND_URL,
    "DATABASE_URL": "sqlite://",
    "PUBLIC_BASE_URL": "http://testserver",
    "PASSWORD_HASH_ROUNDS": "4",
    "SUPER_USER_EMAILS": "admin@example.com",
    "RATE_LIMIT_ENABLED": "false",
    "GITHUB_CLIENT_ID": "gh-client",
    "GITHUB_CLIENT_SECRET": "gh-secret",
    "GOOGLE_CLIENT_ID": "google-client",
    "GOOGLE_CLIENT_SECRET": "google-secret",
}


def make_settings(**overrides: Optional[str]):
    env = dict(BASE_ENV)
    for key, value in overrides.items():
        if value is None:
            env.pop(key, None)
        else:
            env[key] = value
    return load_settings(env)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://")
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


def count_rows(app, model) -> int:
    with Session(app.state.engine) as session:
        return len(session.exec(select(model)).all())


def find_user(app, username: str) -> Optional[User]:
    with Session(app.state.engine) as session:
        return session.exec(select(User).where(User.username_lower == username.lower())).first()


def linked_accounts(app, user_id) -> list:
    with Session(app.state.engine) as session:
        return list(session.exec(select(OAuthAccount).where(OAuthAccount.user_id == user_id)).all())


def query_params(url: str) -> Dict[str, str]:
    return {key: values[0] for key, values in parse_qs(urlsplit(url).query).items()}


def start_flow(client: TestClient, provider: str = "github", **params) -> str:
    """Run ``GET /auth/{provider}`` and return the issued state token."""

    response = client.get(f"/auth/{provider}", params=params, follow_redirects=False)
    assert response.status_code == 302, response.text
    return query_params(response.headers["location"])["state"]


def finish_flow(client: TestClient, provider: str, state: str, code: str = "code-123"):
    response = client.get(
        f"/auth/{provider}/callback",
        params={"code": code, "state": state},
        follow_redirects=False,
    )
    assert response.status_code == 302
    return query_params(response.headers["location"])


def github_user(account_id: int = 1, login: str = "octocat", email: Optional[str] = "octocat@example.com", **extra):
    return {
        "id": account_id,
        "login": login,
        "name": extra.pop("name", "The Octocat"),
        "email": email,
        "avatar_url": f"https://avatars.example.com/{account_id}",
        "html_url": f"https://github.com/{login}",
        **extra,
    }


def mock_github(user: dict, emails: Optional[list] = None, token: str = "gho_test"):
    """Register GitHub routes on the active ``respx`` router."""

    respx.post(GITHUB_TOKEN_URL).mock(
        return_value=httpx.Response(
            200, json={"access_token": token, "token_type": "bearer", "scope": "read:user,user:email"}
        )
    )
    respx.get(GITHUB_USER_URL).mock(return_value=httpx.Response(200, json=user))
    if emails is not None:
        respx.get(GITHUB_EMAILS_URL).mock(return_value=httpx.Response(200, json=emails))


def mock_google(profile: dict, token: str = "ya29.test"):
    respx.post(GOOGLE_TOKEN_URL).mock(
        return_value=httpx.Response(
            200, json={"access_token": token, "token_type": "Bearer", "scope": "openid email profile"}
        )
    )
    respx.get(GOOGLE_USERINFO_URL).mock(return_value=httpx.Response(200, json=profile))


def register(client: TestClient, name: str = "alice", email: str = "alice@example.com", password: str = "hunter22"):
    response = client.post("/register", json={"name": name, "email": email, "password": password})
    assert response.status_code == 201, response.text
    return response.json()["user"]
