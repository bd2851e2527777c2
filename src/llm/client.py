"""
Async client for OpenAI-compatible APIs (Azure OpenAI, OpenAI, GLM, DeepSeek, etc.).

Serves both chat completions (query expansion) and embeddings (query vectors).
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, TypeVar

import openai
from dotenv import load_dotenv
from openai import AsyncAzureOpenAI, AsyncOpenAI

from .backoff import BackoffPolicy, is_rate_limit_error
from .errors import ProviderUnavailable

# Load .env file if it exists
project_root = Path(__file__).resolve().parents[2]
env_file = project_root / ".env"
if env_file.exists():
    load_dotenv(env_file)


DEFAULT_AZURE_API_VERSION = "2023-12-01-preview"
DEFAULT_CHAT_MODEL = os.getenv("LLM_MODEL", "gpt-4o-mini")
DEFAULT_EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-ada-002")

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ClientParams:
    """Resolved connection settings."""

    api_key: str
    base_url: Optional[str]
    chat_model: str
    embedding_model: str
    azure: bool = False
    api_version: str = DEFAULT_AZURE_API_VERSION


def _resolve_client_params(
    model_name: Optional[str] = None,
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    embedding_model: Optional[str] = None,
) -> ClientParams:
    """Resolve credentials from args or env (Azure when an endpoint is set, else OpenAI-compatible)."""
    azure_endpoint = os.getenv("AZURE_OPENAI_ENDPOINT")
    azure_key = os.getenv("AZURE_OPENAI_API_KEY") or os.getenv("AZURE_API_KEY")
    if azure_endpoint and (api_key or azure_key) and not base_url:
        return ClientParams(
            api_key=api_key or azure_key or "",
            base_url=azure_endpoint,
            chat_model=model_name or os.getenv("AZURE_CHAT_DEPLOYMENT", DEFAULT_CHAT_MODEL),
            embedding_model=embedding_model
            or os.getenv("AZURE_EMBEDDINGS_DEPLOYMENT", DEFAULT_EMBEDDING_MODEL),
            azure=True,
            api_version=os.getenv("AZURE_OPENAI_API_VERSION", DEFAULT_AZURE_API_VERSION),
        )
    key = api_key or os.getenv("LLM_API_KEY") or os.getenv("OPENAI_API_KEY") or ""
    base = base_url or os.getenv("LLM_BASE_URL") or None
    return ClientParams(
        api_key=key,
        base_url=base,
        chat_model=model_name or DEFAULT_CHAT_MODEL,
        embedding_model=embedding_model or DEFAULT_EMBEDDING_MODEL,
    )


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, (openai.RateLimitError, openai.APIConnectionError)):
        return True
    return is_rate_limit_error(exc)


class OpenAICompatClient:
    """Chat + embeddings client with one shared retry policy."""

    def __init__(
        self,
        model_name: Optional[str] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        embedding_model: Optional[str] = None,
        backoff: Optional[BackoffPolicy] = None,
        timeout: float = 30.0,
    ):
        self.params = _resolve_client_params(
            model_name=model_name,
            api_key=api_key,
            base_url=base_url,
            embedding_model=embedding_model,
        )
        if not self.params.api_key:
            raise ValueError(
                "API key required. Set AZURE_OPENAI_API_KEY (with AZURE_OPENAI_ENDPOINT), "
                "LLM_API_KEY or OPENAI_API_KEY."
            )
        self.model_name = self.params.chat_model
        self.embedding_model = self.params.embedding_model
        self.backoff = backoff or BackoffPolicy()
        if self.params.azure:
            self.client = AsyncAzureOpenAI(
                azure_endpoint=self.params.base_url or "",
                api_key=self.params.api_key,
                api_version=self.params.api_version,
                timeout=timeout,
                max_retries=0,
            )
        else:
            self.client = AsyncOpenAI(
                base_url=self.params.base_url,
                api_key=self.params.api_key,
                timeout=timeout,
                max_retries=0,
            )

    async def _with_retries(self, what: str, call: Callable[[], Awaitable[T]]) -> T:
        """Run call(), retrying rate-limit/transport errors per self.backoff."""
        delays = self.backoff.delays()
        attempt = 0
        while True:
            attempt += 1
            try:
                return await call()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if not _is_transient(e):
                    logger.error("Error calling %s API: %s", what, e)
                    raise ProviderUnavailable(f"{what} request failed: {e}") from e
                delay = next(delays, None)
                if delay is None:
                    logger.warning(
                        "Rate limit/transport error on %s after %s attempts. Giving up.",
                        what,
                        attempt,
                    )
                    raise ProviderUnavailable(
                        f"{what} request failed after {attempt} attempts: {e}"
                    ) from e
                logger.warning(
                    "Rate limit hit on %s. Retrying in %s s (attempt %s/%s)",
                    what,
                    round(delay, 1),
                    attempt,
                    self.backoff.max_attempts,
                )
                await asyncio.sleep(delay)

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 200,
        temperature: float = 0.7,
    ) -> str:
        """Return the assistant message for a system + user prompt pair."""

        async def _call():
            return await self.client.chat.completions.create(
                model=self.model_name,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                max_tokens=max_tokens,
                temperature=temperature,
            )

        response = await self._with_retries("chat completion", _call)
        if not response.choices:
            logger.warning("Empty response from chat completion API")
            return ""
        msg = response.choices[0].message
        text = msg.content or ""
        if not text.strip():
            logger.warning(
                "Empty content in completion (finish_reason=%s)",
                getattr(response.choices[0], "finish_reason", "?"),
            )
        return text.strip()

    async def embed(self, text: str) -> List[float]:
        """Return the embedding vector for text (already truncated by the caller)."""

        async def _call():
            return await self.client.embeddings.create(model=self.embedding_model, input=text)

        response = await self._with_retries("embedding", _call)
        if not response.data:
            raise ProviderUnavailable("embedding response contained no vectors")
        return list(response.data[0].embedding)


def create_client(
    model_name: Optional[str] = None,
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    backoff: Optional[BackoffPolicy] = None,
) -> OpenAICompatClient:
    """Create an OpenAI-compatible client (Azure OpenAI, OpenAI, GLM, etc.)."""
    return OpenAICompatClient(
        model_name=model_name,
        api_key=api_key,
        base_url=base_url,
        backoff=backoff,
    )
