"""Password hashing."""

from __future__ import annotations

import secrets
from typing import Optional

from passlib.context import CryptContext

MIN_PASSWORD_LENGTH = 6


class PasswordHasher:
    """bcrypt via passlib; ``rounds`` is the cost parameter."""

    def __init__(self, rounds: int = 12) -> None:
        self.context = CryptContext(
            schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds
        )

    def hash(self, plain: str) -> str:
        return self.context.hash(plain)

    def verify(self, plain: str, hashed: Optional[str]) -> bool:
        if not hashed:
            return False
        try:
            return self.context.verify(plain, hashed)
        except ValueError:
            # Malformed hash in storage; treat as a mismatch.
            return False

    def unusable_hash(self) -> str:
        """Hash of a random secret nobody knows, for federated accounts."""

        return self.hash(secrets.token_hex(32))


__all__ = ["MIN_PASSWORD_LENGTH", "PasswordHasher"]
