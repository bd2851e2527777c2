"""
Tests for the local sentence-transformers embedding client (model is faked).
"""

from __future__ import annotations

import numpy as np
import pytest

from src.rag import EmbeddingProvider, dense


class _FakeModel:
    def __init__(self, name: str):
        self.name = name
        self.calls = []

    def get_sentence_embedding_dimension(self) -> int:
        return 3

    def encode(self, texts, convert_to_numpy=True, normalize_embeddings=True):
        self.calls.append(list(texts))
        return np.array([[float(len(t)), 0.0, 1.0] for t in texts])


@pytest.fixture
def embedder(monkeypatch) -> dense.SentenceTransformerEmbedder:
    monkeypatch.setattr(dense, "SentenceTransformer", _FakeModel)
    return dense.SentenceTransformerEmbedder("fake-model")


def test_encode_returns_plain_lists(embedder):
    vectors = embedder.encode(["ab", "abcd"])

    assert embedder.dimension == 3
    assert vectors == [[2.0, 0.0, 1.0], [4.0, 0.0, 1.0]]
    assert embedder.model.name == "fake-model"


@pytest.mark.anyio
async def test_local_embedder_plugs_into_provider(embedder):
    provider = EmbeddingProvider(embedder, dimension=embedder.dimension, min_interval=0)

    result = await provider.embed_with_status("windmill")

    assert result.used_fallback is False
    assert result.vector == [8.0, 0.0, 1.0]
