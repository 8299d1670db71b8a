"""Shared fakes for Docent tests."""

from typing import List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from docent.common.embedding_service import EmbeddingService
from docent.common.types import Chunk, ChunkMetadata


class FakeEmbeddingService(EmbeddingService):
    """Returns a fixed vector, or a per-text vector from ``vectors``."""

    provider_name = "fake"

    def __init__(self, vector: Optional[List[float]] = None, vectors: Optional[dict] = None):
        super().__init__("fake-model", dimensions=3)
        self.vector = vector or [1.0, 0.0, 0.0]
        self.vectors = vectors or {}
        self.calls = 0

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        self.calls += 1
        return [list(self.vectors.get(t, self.vector)) for t in texts]


def make_chunk(
    chunk_id: str,
    score: float,
    content: str = "Navigate to Start Page > Student Selection to find a student.",
    title: str = "Student Selection",
    url: Optional[str] = None,
    section: Optional[str] = None,
    collection: Optional[str] = None,
) -> Chunk:
    return Chunk(
        id=chunk_id,
        content=content,
        score=score,
        metadata=ChunkMetadata(
            url=url if url is not None else f"https://docs.example.com/{chunk_id}",
            title=title,
            section=section,
            collection=collection,
        ),
    )


def make_llm(text: str = "") -> MagicMock:
    llm = MagicMock()
    llm.generate = AsyncMock(return_value=text)
    llm.is_available = True
    llm.provider = "fake"
    llm.model = "fake-llm"
    return llm


LLM_ANSWER = """## Summary
Students are enrolled from the Start Page using the Enroll New Student function.

## Overview
Enrollment adds a new student record to the current school. It is used at the start of a term or when a student transfers in.

## Step-by-Step Instructions
1. Navigate to Start Page > Enroll New Student
2. Enter the student's demographic information
3. Click Submit

## References
- [Enroll New Student](https://docs.example.com/enroll)"""


@pytest.fixture
def embedding():
    return FakeEmbeddingService()


@pytest.fixture
def llm():
    return make_llm(LLM_ANSWER)
