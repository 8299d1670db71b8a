"""
Tests for the Retriever cascade.

Plain search, single hybrid escalation on empty results, and how
failures at each step surface.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from docent.common.config import RetrievalConfig
from docent.common.errors import EmbeddingFailed, RetrievalError
from docent.common.types import SearchMode
from docent.retriever.retriever import RetrievalOptions, Retriever

from conftest import FakeEmbeddingService, make_chunk


def _store(plain=None, hybrid=None, plain_error=None, hybrid_error=None):
    store = MagicMock()
    store.search = AsyncMock(return_value=plain or [], side_effect=plain_error)
    store.hybrid_search = AsyncMock(return_value=hybrid or [], side_effect=hybrid_error)
    return store


class TestPlainSearch:
    @pytest.mark.asyncio
    async def test_found_without_escalation(self):
        store = _store(plain=[make_chunk("a", 0.6), make_chunk("b", 0.9)])
        retriever = Retriever(FakeEmbeddingService(), store, RetrievalConfig())

        result = await retriever.retrieve("how do I enroll a student")

        assert [c.id for c in result.chunks] == ["b", "a"]
        assert result.mode == SearchMode.PLAIN
        assert not result.escalated
        store.hybrid_search.assert_not_called()

    @pytest.mark.asyncio
    async def test_options_become_filters(self):
        store = _store(plain=[make_chunk("a", 0.6)])
        retriever = Retriever(FakeEmbeddingService(), store, RetrievalConfig(top_k=10))

        await retriever.retrieve(
            "grades", RetrievalOptions(top_k=4, similarity_threshold=0.5, collections=["schoology"])
        )

        vector, top_k, filters = store.search.call_args.args
        assert top_k == 4
        assert filters.similarity_threshold == 0.5
        assert filters.collections == ["schoology"]

    @pytest.mark.asyncio
    async def test_config_defaults_used(self):
        store = _store(plain=[make_chunk("a", 0.6)])
        retriever = Retriever(FakeEmbeddingService(), store, RetrievalConfig(top_k=7, similarity_threshold=0.25))

        await retriever.retrieve("grades")

        _, top_k, filters = store.search.call_args.args
        assert top_k == 7
        assert filters.similarity_threshold == 0.25


class TestEscalation:
    @pytest.mark.asyncio
    async def test_empty_escalates_once_with_same_vector(self):
        embedding = FakeEmbeddingService()
        store = _store(plain=[], hybrid=[make_chunk("h", 0.4)])
        retriever = Retriever(embedding, store, RetrievalConfig())

        result = await retriever.retrieve("enrollment steps")

        assert result.escalated
        assert result.mode == SearchMode.HYBRID
        assert [c.id for c in result.chunks] == ["h"]
        assert embedding.calls == 1
        store.hybrid_search.assert_called_once()
        weights = store.hybrid_search.call_args.args[3]
        assert (weights.vector, weights.text) == (0.5, 0.5)

    @pytest.mark.asyncio
    async def test_both_empty(self):
        store = _store()
        retriever = Retriever(FakeEmbeddingService(), store, RetrievalConfig())

        result = await retriever.retrieve("quantum gradebooks")

        assert result.escalated
        assert result.is_empty
        assert result.escalation_error is None

    @pytest.mark.asyncio
    async def test_hybrid_failure_recorded_not_raised(self, caplog):
        import logging
        store = _store(hybrid_error=RuntimeError("fts index missing"))
        retriever = Retriever(FakeEmbeddingService(), store, RetrievalConfig())

        with caplog.at_level(logging.WARNING, logger="docent.retriever.retriever"):
            result = await retriever.retrieve("enrollment")

        assert result.escalated
        assert result.is_empty
        assert "fts index missing" in result.escalation_error
        assert "Hybrid escalation failed" in caplog.text

    @pytest.mark.asyncio
    async def test_direct_hybrid_does_not_escalate(self):
        store = _store(hybrid=[])
        retriever = Retriever(FakeEmbeddingService(), store, RetrievalConfig())

        result = await retriever.retrieve("enrollment", RetrievalOptions(hybrid=True))

        assert result.mode == SearchMode.HYBRID
        assert not result.escalated
        store.search.assert_not_called()
        weights = store.hybrid_search.call_args.args[3]
        assert (weights.vector, weights.text) == (0.7, 0.3)


class TestFailures:
    @pytest.mark.asyncio
    async def test_primary_search_failure_raises(self):
        store = _store(plain_error=ConnectionError("db down"))
        retriever = Retriever(FakeEmbeddingService(), store, RetrievalConfig())

        with pytest.raises(RetrievalError) as exc_info:
            await retriever.retrieve("enrollment")
        assert exc_info.value.code == "RETRIEVAL_FAILED"
        assert "db down" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_embedding_failure_raises_embedding_failed(self):
        embedding = MagicMock()
        embedding.embed = AsyncMock(side_effect=TimeoutError("model timeout"))
        retriever = Retriever(embedding, _store(), RetrievalConfig())

        with pytest.raises(EmbeddingFailed):
            await retriever.retrieve("enrollment")
