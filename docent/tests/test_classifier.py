"""Tests for keyword heuristics and the LLM query classifier."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from docent.gateway.classifier import (
    QueryClassifier,
    keyword_collection,
    keyword_intent,
)


def _llm(response=None, error=None):
    llm = MagicMock()
    llm.is_available = True
    llm.generate = AsyncMock(return_value=response, side_effect=error)
    return llm


class TestKeywordIntent:
    @pytest.mark.parametrize("query,intent", [
        ("How to enroll a student", "instructions"),
        ("step by step guide for scheduling", "instructions"),
        ("What is a reporting term?", "details"),
        ("Explain the gradebook", "details"),
        ("hello there", "other"),
    ])
    def test_keywords(self, query, intent):
        assert keyword_intent(query) == intent

    def test_steps_in_answer_mean_instructions(self):
        assert keyword_intent("hello there", has_steps=True) == "instructions"


class TestKeywordCollection:
    def test_pssis_terms(self):
        result = keyword_collection("how do I enroll a student")
        assert result.collection == "pssis"
        assert result.collection_name == "pssis-admin"

    def test_schoology_terms(self):
        assert keyword_collection("create an assignment").collection == "schoology"

    def test_mixed_terms_use_channel(self):
        result = keyword_collection("student assignment", channel_hint="schoology-help")
        assert result.collection == "schoology"
        assert result.confidence == 0.8

    def test_nothing_means_both(self):
        assert keyword_collection("hello").collection == "both"


class TestQueryClassifier:
    @pytest.mark.asyncio
    async def test_llm_collection(self):
        classifier = QueryClassifier(_llm('{"collection": "both", "confidence": 1.7, "reasoning": "either"}'))
        result = await classifier.classify_collection("tell me about terms")
        assert result.collection_name == "both"
        assert result.confidence == 1.0

    @pytest.mark.asyncio
    async def test_fenced_collection(self):
        classifier = QueryClassifier(_llm('```json\n{"collection": "schoology"}\n```'))
        result = await classifier.classify_collection("course materials", channel_hint="general")
        assert result.collection_name == "schoology"
        user_prompt = classifier._llm.generate.call_args.args[0][1].content
        assert 'Channel context: "general"' in user_prompt

    @pytest.mark.asyncio
    async def test_schema_mismatch_falls_back(self):
        classifier = QueryClassifier(_llm('{"collection": "banana"}'))
        result = await classifier.classify_collection("how to enroll a student")
        assert result.collection == "pssis"
        assert result.reasoning == "Contains PSSIS-related keywords"

    @pytest.mark.asyncio
    async def test_llm_error_falls_back(self):
        classifier = QueryClassifier(_llm(error=RuntimeError("timeout")))
        result = await classifier.classify_collection("student enrollment")
        assert result.collection == "pssis"

    @pytest.mark.asyncio
    async def test_no_llm(self):
        classifier = QueryClassifier()
        assert not classifier.is_available
        result = await classifier.classify_collection("hello")
        assert result.collection == "both"
        assert result.confidence == 0.5
