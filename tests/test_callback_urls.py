from starlette.requests import Request

from conftest import make_settings
from hubble_auth.services.callback_urls import CallbackURLResolver


def request_with(headers):
    scope = {
        "type": "http",
        "method": "GET",
        "scheme": "http",
        "path": "/auth/github",
        "query_string": b"",
        "server": ("internal", 8000),
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
    }
    return Request(scope)


def test_provider_override_wins():
    settings = make_settings(GITHUB_CALLBACK_URL="https://api.example.com/custom/github")
    resolver = CallbackURLResolver(settings)
    assert resolver.resolve("github", request_with({"host": "ignored"})) == (
        "https://api.example.com/custom/github"
    )


def test_public_base_url_is_next():
    resolver = CallbackURLResolver(make_settings(PUBLIC_BASE_URL="https://api.example.com"))
    assert resolver.resolve("google", request_with({"host": "ignored"})) == (
        "https://api.example.com/auth/google/callback"
    )


def test_forwarded_headers_are_the_last_resort(caplog):
    resolver = CallbackURLResolver(make_settings(PUBLIC_BASE_URL=None))
    request = request_with(
        {"host": "internal:8000", "x-forwarded-proto": "https, http", "x-forwarded-host": "app.example.com"}
    )

    assert resolver.resolve("github", request) == "https://app.example.com/auth/github/callback"
    assert "GITHUB_CALLBACK_URL" in caplog.text


def test_host_header_without_proxy():
    resolver = CallbackURLResolver(make_settings(PUBLIC_BASE_URL=None))
    assert resolver.resolve("github", request_with({"host": "localhost:8000"})) == (
        "http://localhost:8000/auth/github/callback"
    )
