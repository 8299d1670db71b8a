"""
Retriever

Embeds a query and searches the vector store, escalating once to hybrid
(vector + full-text) search when the plain search comes back empty.
An empty result is a normal outcome, not an error.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional

from ..common.config import RetrievalConfig
from ..common.embedding_service import EmbeddingService
from ..common.errors import DocentError, EmbeddingFailed, RetrievalError
from ..common.types import RetrievalResult, SearchMode
from ..common.vector_store import HybridWeights, SearchFilters, VectorStore

logger = logging.getLogger("docent.retriever.retriever")


@dataclass
class RetrievalOptions:
    """Per-request retrieval options. None falls back to RetrievalConfig."""
    top_k: Optional[int] = None
    similarity_threshold: Optional[float] = None
    content_types: List[str] = field(default_factory=list)
    sections: List[str] = field(default_factory=list)
    collections: List[str] = field(default_factory=list)
    hybrid: bool = False


class Retriever:
    """
    Query embedding plus vector search with a single hybrid escalation.

    Cascade:
    1. Plain vector search (top_k above threshold, facet filters)
    2. If empty and the caller did not already ask for hybrid, one hybrid
       retry with the escalation weights, reusing the query embedding
    3. If still empty, an explicit empty result

    A failure of step 1 raises RetrievalError. A failure of step 2 is
    recorded on the result so the caller can report it as a fallback.
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        vector_store: VectorStore,
        config: Optional[RetrievalConfig] = None,
    ):
        self._embedding = embedding_service
        self._store = vector_store
        self._config = config or RetrievalConfig()

    async def retrieve(
        self,
        query: str,
        options: Optional[RetrievalOptions] = None,
    ) -> RetrievalResult:
        options = options or RetrievalOptions()
        start = time.perf_counter()

        top_k = options.top_k or self._config.top_k
        threshold = (
            options.similarity_threshold
            if options.similarity_threshold is not None
            else self._config.similarity_threshold
        )
        filters = SearchFilters(
            similarity_threshold=threshold,
            content_types=list(options.content_types),
            sections=list(options.sections),
            collections=list(options.collections),
        )

        vector = await self._embed(query)

        if options.hybrid:
            weights = HybridWeights(
                vector=self._config.vector_weight, text=self._config.text_weight
            )
            chunks = await self._primary(
                self._store.hybrid_search(vector, query, top_k, weights, filters),
                "Hybrid search failed",
            )
            return self._result(chunks, SearchMode.HYBRID, start)

        chunks = await self._primary(
            self._store.search(vector, top_k, filters),
            "Vector search failed",
        )
        if chunks:
            logger.debug(
                "Retrieved %d chunks (top score %.3f)", len(chunks), chunks[0].score
            )
            return self._result(chunks, SearchMode.PLAIN, start)

        logger.debug(
            "No chunks above threshold %.2f; escalating to hybrid search", threshold
        )
        weights = HybridWeights(
            vector=self._config.escalation_vector_weight,
            text=self._config.escalation_text_weight,
        )
        try:
            chunks = await self._store.hybrid_search(vector, query, top_k, weights, filters)
        except Exception as e:
            logger.warning("Hybrid escalation failed: %s", e)
            result = self._result([], SearchMode.HYBRID, start)
            result.escalated = True
            result.escalation_error = str(e)
            return result

        if not chunks:
            logger.info("Hybrid escalation also returned no chunks for query: %.80s", query)
        result = self._result(chunks, SearchMode.HYBRID, start)
        result.escalated = True
        return result

    async def _embed(self, query: str) -> List[float]:
        try:
            return await self._embedding.embed(query)
        except EmbeddingFailed:
            raise
        except Exception as e:
            raise EmbeddingFailed(f"Embedding generation failed: {e}") from e

    async def _primary(self, search, message: str):
        try:
            return await search
        except DocentError as e:
            if isinstance(e, RetrievalError):
                raise
            raise RetrievalError(f"{message}: {e.message}") from e
        except Exception as e:
            raise RetrievalError(f"{message}: {e}") from e

    def _result(self, chunks, mode: SearchMode, start: float) -> RetrievalResult:
        chunks = sorted(chunks, key=lambda c: c.score, reverse=True)
        return RetrievalResult(
            chunks=chunks,
            mode=mode,
            retrieval_time_ms=(time.perf_counter() - start) * 1000,
        )
