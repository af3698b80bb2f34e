"""Authentication services.

Submodules are imported directly (``from hubble_auth.services.identity
import IdentityResolver``); only the error taxonomy is re-exported here.
"""

from .errors import AuthError, ProviderError, Reason

__all__ = ["AuthError", "ProviderError", "Reason"]
