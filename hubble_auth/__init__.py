"""OAuth2 identity federation and account linking service."""

__version__ = "0.1.0"

__all__ = ["__version__"]
