"""Auth package — MSAL token acquisition."""

from .authenticator import AuthenticationError, Authenticator

__all__ = ["AuthenticationError", "Authenticator"]
