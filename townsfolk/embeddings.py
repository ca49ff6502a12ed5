"""Embedding services used for semantic dedup and contextual retrieval.

``EmbeddingService`` is the swappable contract. Two implementations ship with
the library:

1. HashingEmbeddingService - deterministic bag-of-words hashing, no network
2. OpenAIEmbeddingService - remote embeddings (text-embedding-3-small by default)
"""

from __future__ import annotations

import hashlib
import math
import re
from typing import List, Optional, Protocol, Sequence

from .config import Config
from .logging_utils import log_error

_TOKEN_PATTERN = re.compile(r"[a-z0-9']+")


class EmbeddingService(Protocol):
    """Produces fixed-length vectors for memory text."""

    dimension: int

    async def embed(self, text: str) -> List[float]:
        ...


def cosine_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """Return ``1 - cosine_similarity``.

    Mismatched lengths and zero vectors are treated as maximally distant so a
    failed embedding can never cause a memory to be deduplicated away.
    """

    if len(a) != len(b) or not a:
        return 1.0
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    if norm_a == 0.0 or norm_b == 0.0:
        return 1.0
    return 1.0 - dot / (math.sqrt(norm_a) * math.sqrt(norm_b))


class HashingEmbeddingService:
    """Deterministic hashed bag-of-words embeddings.

    Each token is hashed into one of ``dimension`` buckets with a signed
    weight; the vector is L2-normalised. Identical texts produce identical
    vectors and texts with disjoint vocabularies are close to orthogonal,
    which is all the dedup filters need when no embedding model is reachable.
    """

    def __init__(self, dimension: int = 256) -> None:
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        self.dimension = dimension

    async def embed(self, text: str) -> List[float]:
        vector = [0.0] * self.dimension
        for token in _TOKEN_PATTERN.findall(text.lower()):
            digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
            bucket = int.from_bytes(digest[:4], "big") % self.dimension
            sign = 1.0 if digest[4] & 1 else -1.0
            vector[bucket] += sign
        norm = math.sqrt(sum(value * value for value in vector))
        if norm == 0.0:
            return vector
        return [value / norm for value in vector]


class OpenAIEmbeddingService:
    """Remote embeddings through the OpenAI embeddings endpoint.

    Embedding failures fall back to a zero vector (logged) so that observation
    intake keeps flowing while the provider is degraded.
    """

    def __init__(
        self,
        *,
        model: Optional[str] = None,
        dimension: Optional[int] = None,
        api_key: Optional[str] = None,
        client=None,
    ) -> None:
        self.model = model or Config.EMBEDDING_MODEL
        self.dimension = dimension or Config.EMBEDDING_DIMENSION
        if client is None:
            from openai import AsyncOpenAI

            client = AsyncOpenAI(api_key=api_key or Config.OPENAI_API_KEY)
        self.client = client

    async def embed(self, text: str) -> List[float]:
        try:
            response = await self.client.embeddings.create(
                model=self.model,
                input=text,
                dimensions=self.dimension,
            )
        except Exception as exc:  # provider/network failures surface as many types
            log_error(f"[Embeddings] {self.model} failed ({exc}); using zero vector")
            return [0.0] * self.dimension
        return list(response.data[0].embedding)


def build_embedding_service() -> EmbeddingService:
    """Construct the embedding service selected by ``Config.EMBEDDING_PROVIDER``."""

    provider = Config.EMBEDDING_PROVIDER.lower()
    if provider == "openai":
        return OpenAIEmbeddingService()
    if provider == "hashing":
        return HashingEmbeddingService(dimension=Config.EMBEDDING_DIMENSION)
    raise ValueError(
        f"Unknown EMBEDDING_PROVIDER '{Config.EMBEDDING_PROVIDER}'. "
        "Use 'hashing' or 'openai'."
    )
