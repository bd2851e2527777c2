"""
Root of the error taxonomy, shared by the provider clients and the retrieval pipeline.
"""

from __future__ import annotations


class RetrievalError(Exception):
    """Base class for retrieval pipeline errors."""


class ProviderUnavailable(RetrievalError):
    """A provider call failed for good (retries exhausted or non-retryable error)."""
