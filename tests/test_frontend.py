import pytest

from hubble_auth.services.frontend import allowed_return_path, frontend_redirect_url

FRONTEND = "https://app.example.com"


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, "/"),
        ("", "/"),
        ("/settings/accounts", "/settings/accounts"),
        ("/feed?tab=new#top", "/feed?tab=new#top"),
        ("https://app.example.com/profile?x=1", "/profile?x=1"),
        ("https://evil.example.com/profile", "/"),
        ("//evil.example.com", "/"),
        ("/\\evil.example.com", "/"),
        ("javascript:alert(1)", "/"),
        ("relative/path", "/"),
        ("/\t//evil.example.com/x", "/"),
        ("/\n/evil.example.com", "/"),
        ("/%09//evil.example.com", "/"),
        ("/%2F/evil.example.com", "/"),
        ("/%5Cevil.example.com", "/"),
        ("https://app.example.com//evil.example.com", "/"),
        ("https://app.example.com/\t//evil.example.com", "/"),
        ("/search?q=100%25", "/search?q=100%25"),
    ],
)
def test_allowed_return_path(value, expected):
    assert allowed_return_path(value, FRONTEND) == expected


def test_redirect_url_carries_only_non_empty_params():
    url = frontend_redirect_url(
        FRONTEND,
        "/settings?tab=accounts",
        {"authProvider": "github", "authStatus": "linked", "authMessage": None},
    )
    assert url == f"{FRONTEND}/settings?tab=accounts&authProvider=github&authStatus=linked"


def test_redirect_url_replaces_existing_auth_params_and_keeps_fragment():
    url = frontend_redirect_url(
        FRONTEND,
        "/page?authStatus=stale#section",
        {"authProvider": "google", "authStatus": "error", "authMessage": "invalid_oauth_state"},
    )
    assert url == (
        f"{FRONTEND}/page?authProvider=google&authStatus=error"
        "&authMessage=invalid_oauth_state#section"
    )


def test_redirect_url_respects_frontend_base_path():
    url = frontend_redirect_url("https://example.com/app", "/home", {"authStatus": "success"})
    assert url == "https://example.com/app/home?authStatus=success"


@pytest.mark.parametrize(
    "return_to", ["/\t//evil.example.com/x", "/\n//evil.example.com", "/%09//evil.example.com"]
)
def test_redirect_never_leaves_the_frontend_host(return_to):
    url = frontend_redirect_url(FRONTEND, return_to, {"authStatus": "success"})
    assert url == f"{FRONTEND}/?authStatus=success"
