"""Frontend redirect targets for finished OAuth flows."""

from __future__ import annotations

import logging
import re
from typing import Mapping, Optional
from urllib.parse import parse_qsl, unquote, urlencode, urlsplit, urlunsplit

logger = logging.getLogger(__name__)

# Browsers drop tabs and newlines and read "\" as "/", so "/\t//host" and
# "/\host" both become protocol-relative.
_UNSAFE_CHARS = re.compile(r"[\x00-\x1f\x7f\\]")


def _is_local_path(path: str) -> bool:
    if not path.startswith("/") or path.startswith("//"):
        return False
    decoded = unquote(path)
    return not (_UNSAFE_CHARS.search(path) or _UNSAFE_CHARS.search(decoded) or decoded.startswith("//"))


def allowed_return_path(value: Optional[str], frontend_url: str) -> str:
    """Reduce ``value`` to a same-origin path; anything else becomes ``/``."""

    if not value:
        return "/"
    candidate = value
    if value.lower().startswith(("http://", "https://")):
        if _UNSAFE_CHARS.search(value):
            return "/"
        parsed = urlsplit(value)
        frontend = urlsplit(frontend_url)
        if (parsed.scheme, parsed.netloc) != (frontend.scheme, frontend.netloc):
            return "/"
        candidate = parsed.path or "/"
        if parsed.query:
            candidate += f"?{parsed.query}"
        if parsed.fragment:
            candidate += f"#{parsed.fragment}"
    return candidate if _is_local_path(candidate) else "/"


def frontend_redirect_url(
    frontend_url: str, return_to: Optional[str], params: Mapping[str, Optional[str]]
) -> str:
    """``frontend_url`` + the sanitized path, with ``params`` replacing any same-named query keys."""

    base = urlsplit(frontend_url)
    target = urlsplit(allowed_return_path(return_to, frontend_url))
    query = [pair for pair in parse_qsl(target.query, keep_blank_values=True) if pair[0] not in params]
    query.extend((key, value) for key, value in params.items() if value)

    url = urlunsplit(
        (base.scheme, base.netloc, base.path.rstrip("/") + target.path, urlencode(query), target.fragment)
    )
    if urlsplit(url).netloc != base.netloc:
        logger.warning("Discarding return path that changed the redirect host")
        return frontend_redirect_url(frontend_url, None, params)
    return url


__all__ = ["allowed_return_path", "frontend_redirect_url"]
