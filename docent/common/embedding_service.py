"""
Embedding Service

Turns query and passage text into dense vectors. Two providers:

- fastembed: on-device ONNX models, keeps data local (default)
- openai: hosted ``text-embedding-3-*`` models

fastembed is synchronous, so calls run in a worker thread to keep the
event loop free. Any provider failure surfaces as EmbeddingFailed.
"""

import asyncio
import logging
from typing import List, Optional

import numpy as np

from .errors import EmbeddingFailed

logger = logging.getLogger("docent.common.embedding_service")

# Known output sizes, so dimensions() works before the first call
KNOWN_DIMENSIONS = {
    "BAAI/bge-small-en-v1.5": 384,
    "BAAI/bge-base-en-v1.5": 768,
    "sentence-transformers/all-MiniLM-L6-v2": 384,
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class EmbeddingService:
    """Base class for embedding providers."""

    provider_name = "base"

    def __init__(self, model: str, dimensions: int = 0):
        self.model = model
        self._dimensions = dimensions or KNOWN_DIMENSIONS.get(model, 0)

    async def embed(self, text: str) -> List[float]:
        """
        Generate an embedding for a single text.

        Args:
            text: String to embed

        Returns:
            Embedding vector
        """
        if not text or not text.strip():
            raise EmbeddingFailed("Cannot embed empty text")
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        raise NotImplementedError

    def dimensions(self) -> int:
        return self._dimensions

    def _remember_dimensions(self, vectors: List[List[float]]) -> None:
        if vectors and not self._dimensions:
            self._dimensions = len(vectors[0])


class FastEmbedEmbeddingService(EmbeddingService):
    """
    On-device embeddings via fastembed.

    The model is loaded lazily on first use; loading downloads weights
    the first time and can take a few seconds.
    """

    provider_name = "fastembed"

    def __init__(self, model: str = "BAAI/bge-small-en-v1.5", dimensions: int = 0):
        super().__init__(model, dimensions)
        self._model_instance = None

    def _load(self):
        if self._model_instance is None:
            from fastembed import TextEmbedding

            logger.info("Loading fastembed model %s", self.model)
            self._model_instance = TextEmbedding(model_name=self.model)
        return self._model_instance

    def _embed_sync(self, texts: List[str]) -> List[List[float]]:
        model = self._load()
        return [np.asarray(v, dtype=np.float32).tolist() for v in model.embed(texts)]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        try:
            vectors = await asyncio.to_thread(self._embed_sync, list(texts))
        except Exception as e:
            logger.error("fastembed embedding failed: %s", e)
            raise EmbeddingFailed(
                f"Embedding generation failed: {e}",
                details={"provider": self.provider_name, "model": self.model},
            ) from e
        self._remember_dimensions(vectors)
        return vectors


class OpenAIEmbeddingService(EmbeddingService):
    """Hosted embeddings via the OpenAI API."""

    provider_name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        dimensions: int = 0,
        timeout: float = 30.0,
    ):
        super().__init__(model, dimensions)
        from openai import AsyncOpenAI

        self._client = AsyncOpenAI(api_key=api_key)
        self._requested_dimensions = dimensions or None
        self.timeout = timeout

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        kwargs = {"model": self.model, "input": list(texts), "timeout": self.timeout}
        if self._requested_dimensions:
            kwargs["dimensions"] = self._requested_dimensions
        try:
            response = await self._client.embeddings.create(**kwargs)
        except Exception as e:
            logger.error("OpenAI embedding failed: %s", e)
            raise EmbeddingFailed(
                f"Embedding generation failed: {e}",
                details={"provider": self.provider_name, "model": self.model},
            ) from e

        vectors = [list(item.embedding) for item in response.data]
        if len(vectors) != len(texts):
            raise EmbeddingFailed(
                f"Expected {len(texts)} embeddings, got {len(vectors)}",
                details={"provider": self.provider_name, "model": self.model},
            )
        self._remember_dimensions(vectors)
        return vectors


def cosine_similarity(vec1: List[float], vec2: List[float]) -> float:
    """
    Cosine similarity between two vectors, clamped to [0, 1].

    Raises:
        ValueError: on dimension mismatch
    """
    v1 = np.asarray(vec1, dtype=np.float32)
    v2 = np.asarray(vec2, dtype=np.float32)
    if v1.shape != v2.shape:
        raise ValueError(f"Vector dimension mismatch: {v1.shape} vs {v2.shape}")

    denom = float(np.linalg.norm(v1) * np.linalg.norm(v2))
    if denom == 0.0:
        return 0.0
    return max(0.0, min(1.0, float(np.dot(v1, v2)) / denom))


def batch_cosine_similarity(
    query_vec: List[float],
    matrix: "np.ndarray",
    norms: Optional["np.ndarray"] = None,
) -> "np.ndarray":
    """
    Cosine similarity between a query and every row of a matrix.

    Args:
        query_vec: Query embedding
        matrix: (n, d) array of stored embeddings
        norms: Precomputed row norms of ``matrix`` (optional)

    Returns:
        (n,) array of similarities clamped to [0, 1]
    """
    if matrix.size == 0:
        return np.zeros(0, dtype=np.float32)

    query = np.asarray(query_vec, dtype=np.float32)
    if query.shape[0] != matrix.shape[1]:
        raise ValueError(
            f"Vector dimension mismatch: {query.shape[0]} vs {matrix.shape[1]}"
        )
    if norms is None:
        norms = np.linalg.norm(matrix, axis=1)
    query_norm = float(np.linalg.norm(query))
    denom = norms * query_norm
    with np.errstate(divide="ignore", invalid="ignore"):
        sims = np.where(denom > 0, matrix @ query / denom, 0.0)
    return np.clip(sims, 0.0, 1.0)
