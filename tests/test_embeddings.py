"""Tests for embedding services and vector helpers."""

from types import SimpleNamespace

import pytest

from townsfolk.config import DEFAULT_OLLAMA_BASE_URL, Config
from townsfolk.embeddings import (
    HashingEmbeddingService,
    OpenAIEmbeddingService,
    build_embedding_service,
    cosine_distance,
)
from townsfolk.generation import OllamaGenerationService


def test_cosine_distance_edge_cases():
    assert cosine_distance([1.0, 0.0], [1.0, 0.0]) == pytest.approx(0.0)
    assert cosine_distance([1.0, 0.0], [0.0, 1.0]) == pytest.approx(1.0)
    assert cosine_distance([1.0], [1.0, 0.0]) == 1.0
    assert cosine_distance([0.0, 0.0], [1.0, 0.0]) == 1.0
    assert cosine_distance([], []) == 1.0


@pytest.mark.asyncio
async def test_hashing_embeddings_are_deterministic_and_normalized():
    service = HashingEmbeddingService(dimension=64)

    first = await service.embed("The baker opened the shop")
    second = await service.embed("the BAKER opened the shop")

    assert first == second
    assert len(first) == 64
    assert sum(value * value for value in first) == pytest.approx(1.0)
    assert await service.embed("") == [0.0] * 64

    with pytest.raises(ValueError):
        HashingEmbeddingService(dimension=0)


@pytest.mark.asyncio
async def test_openai_embeddings_use_client_and_degrade_to_zero_vector():
    calls = []

    class FakeEmbeddings:
        async def create(self, *, model, input, dimensions):
            calls.append((model, input, dimensions))
            if input == "boom":
                raise ConnectionError("offline")
            return SimpleNamespace(data=[SimpleNamespace(embedding=[0.1, 0.2, 0.3])])

    service = OpenAIEmbeddingService(
        model="text-embedding-3-small", dimension=3, client=SimpleNamespace(embeddings=FakeEmbeddings())
    )

    assert await service.embed("hello") == [0.1, 0.2, 0.3]
    assert await service.embed("boom") == [0.0, 0.0, 0.0]
    assert calls[0] == ("text-embedding-3-small", "hello", 3)


def test_build_embedding_service_from_config(monkeypatch):
    monkeypatch.setattr(Config, "EMBEDDING_PROVIDER", "hashing")
    monkeypatch.setattr(Config, "EMBEDDING_DIMENSION", 32)
    assert build_embedding_service().dimension == 32

    monkeypatch.setattr(Config, "EMBEDDING_PROVIDER", "word2vec")
    with pytest.raises(ValueError):
        build_embedding_service()


def test_config_validation(monkeypatch):
    monkeypatch.setattr(Config, "LLM_PROVIDER", "anthropic")
    monkeypatch.setattr(Config, "ANTHROPIC_API_KEY", None)
    with pytest.raises(ValueError, match="ANTHROPIC_API_KEY"):
        Config.validate()

    monkeypatch.setattr(Config, "LLM_PROVIDER", "ollama")
    monkeypatch.setattr(Config, "EMBEDDING_PROVIDER", "hashing")
    Config.validate()
    assert "LLM Provider: ollama" in Config.display()


def test_ollama_without_base_url_uses_default_server(monkeypatch):
    monkeypatch.setattr(Config, "LLM_PROVIDER", "ollama")
    monkeypatch.setattr(Config, "EMBEDDING_PROVIDER", "hashing")
    monkeypatch.setattr(Config, "LOCAL_LLM_BASE_URL", None)

    Config.validate()
    assert OllamaGenerationService(model="llama3.1").base_url == DEFAULT_OLLAMA_BASE_URL
