"""
Tests for the OpenAI-compatible client: backoff policy, retries, response parsing.
"""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from src.llm import (
    BackoffPolicy,
    OpenAICompatClient,
    ProviderUnavailable,
    RetrievalError,
    create_client,
    is_rate_limit_error,
)
from src.rag import errors as rag_errors
from src.llm.backoff import NO_RETRY

_ENV_KEYS = (
    "AZURE_OPENAI_ENDPOINT",
    "AZURE_OPENAI_API_KEY",
    "AZURE_API_KEY",
    "LLM_API_KEY",
    "OPENAI_API_KEY",
    "LLM_BASE_URL",
)


@pytest.fixture
def clean_env(monkeypatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def client(clean_env) -> OpenAICompatClient:
    return OpenAICompatClient(
        api_key="test-key",
        base_url="http://localhost:9/v1",
        backoff=BackoffPolicy(initial_delay=0.0, max_attempts=3),
    )


def test_backoff_delays_grow_and_cap():
    assert list(BackoffPolicy().delays()) == [2.0, 4.0]
    policy = BackoffPolicy(initial_delay=10.0, multiplier=10.0, max_attempts=4, max_delay=50.0)
    assert list(policy.delays()) == [10.0, 50.0, 50.0]
    assert list(NO_RETRY.delays()) == []


def test_is_rate_limit_error():
    assert is_rate_limit_error(SimpleNamespace(status_code=429))
    assert is_rate_limit_error(Exception("Rate limit exceeded for model"))
    assert is_rate_limit_error(Exception("Error code: 429"))
    assert not is_rate_limit_error(Exception("invalid request"))


def test_missing_credentials_raise_value_error(clean_env):
    with pytest.raises(ValueError):
        create_client()


@pytest.mark.anyio
async def test_retries_rate_limit_then_succeeds(client: OpenAICompatClient):
    calls = []

    async def _call():
        calls.append(1)
        if len(calls) < 3:
            raise Exception("429 Too Many Requests")
        return "ok"

    assert await client._with_retries("embedding", _call) == "ok"
    assert len(calls) == 3


@pytest.mark.anyio
async def test_gives_up_after_max_attempts(client: OpenAICompatClient):
    calls = []

    async def _call():
        calls.append(1)
        raise Exception("rate limit")

    with pytest.raises(ProviderUnavailable):
        await client._with_retries("embedding", _call)
    assert len(calls) == 3


@pytest.mark.anyio
async def test_non_transient_error_is_not_retried(client: OpenAICompatClient):
    calls = []

    async def _call():
        calls.append(1)
        raise ValueError("bad request")

    with pytest.raises(ProviderUnavailable):
        await client._with_retries("chat completion", _call)
    assert len(calls) == 1


@pytest.mark.anyio
async def test_provider_unavailable_is_a_retrieval_error(client: OpenAICompatClient):
    async def _call():
        raise ValueError("bad request")

    assert issubclass(ProviderUnavailable, RetrievalError)
    assert rag_errors.RetrievalError is RetrievalError
    with pytest.raises(RetrievalError):
        await client._with_retries("embedding", _call)


@pytest.mark.anyio
async def test_complete_and_embed_parse_responses(client: OpenAICompatClient):
    async def _create_completion(**kwargs):
        assert kwargs["messages"][0]["role"] == "system"
        choice = SimpleNamespace(message=SimpleNamespace(content="  windmill\nbattle "), finish_reason="stop")
        return SimpleNamespace(choices=[choice])

    async def _create_embedding(**kwargs):
        assert kwargs["input"] == "windmill"
        return SimpleNamespace(data=[SimpleNamespace(embedding=[0.5, 0.25])])

    client.client = SimpleNamespace(
        chat=SimpleNamespace(completions=SimpleNamespace(create=_create_completion)),
        embeddings=SimpleNamespace(create=_create_embedding),
    )

    assert await client.complete("sys", "user") == "windmill\nbattle"
    assert await client.embed("windmill") == [0.5, 0.25]


@pytest.mark.anyio
async def test_embed_without_vectors_is_provider_unavailable(client: OpenAICompatClient):
    async def _create_embedding(**kwargs):
        return SimpleNamespace(data=[])

    client.client = SimpleNamespace(embeddings=SimpleNamespace(create=_create_embedding))

    with pytest.raises(ProviderUnavailable):
        await client.embed("windmill")
