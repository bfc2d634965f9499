"""Graph package — async Microsoft Graph client and chunk retry policy."""

from .client import GraphAPIError, GraphClient
from .retry import RetryExhausted, call_with_retry

__all__ = ["GraphAPIError", "GraphClient", "RetryExhausted", "call_with_retry"]
