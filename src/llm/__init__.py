"""
LLM client module for OpenAI-compatible chat and embedding APIs.
"""

from .backoff import BackoffPolicy, is_rate_limit_error
from .client import OpenAICompatClient, create_client
from .errors import ProviderUnavailable, RetrievalError

__all__ = [
    "BackoffPolicy",
    "OpenAICompatClient",
    "ProviderUnavailable",
    "RetrievalError",
    "create_client",
    "is_rate_limit_error",
]
