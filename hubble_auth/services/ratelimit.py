"""Per-client attempt limits for the password endpoints."""

from __future__ import annotations

import logging
import math
import time

from limits import parse
from limits.storage import storage_from_string
from limits.strategies import FixedWindowRateLimiter

from .errors import AuthError, Reason

logger = logging.getLogger(__name__)


class AttemptLimiter:
    """Fixed-window counters keyed by endpoint and client address.

    ``storage_uri`` is any ``limits`` storage (``memory://``,
    ``redis://host:6379``); use a shared one when running several workers.
    """

    def __init__(self, storage_uri: str = "memory://", enabled: bool = True) -> None:
        self.enabled = enabled
        self.storage = storage_from_string(storage_uri)
        self.strategy = FixedWindowRateLimiter(self.storage)

    def hit(self, scope: str, limit: str, client: str) -> None:
        """Count one attempt; raises ``rate_limited`` once ``limit`` is spent."""

        if not self.enabled:
            return
        item = parse(limit)
        if self.strategy.hit(item, scope, client):
            return
        reset_at, _ = self.strategy.get_window_stats(item, scope, client)
        retry_after = max(1, math.ceil(reset_at - time.time()))
        logger.warning("Rate limit %s exceeded for %s on %s", limit, client, scope)
        raise AuthError(Reason.RATE_LIMITED, headers={"Retry-After": str(retry_after)})


__all__ = ["AttemptLimiter"]
