"""
Vector store contract and an in-memory implementation.

The in-memory store keeps embeddings in a numpy matrix and is meant for
development, tests and small corpora. Hybrid search blends cosine
similarity with a term-overlap text rank.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np

from .embedding_service import batch_cosine_similarity
from .errors import RetrievalError
from .types import Chunk, ChunkMetadata

logger = logging.getLogger("docent.common.vector_store")

# A row qualifies for hybrid results on a text match or cosine distance < 0.5
HYBRID_MIN_COSINE = 0.5

_TOKEN_RE = re.compile(r"[a-z0-9]+")
_STOPWORDS = frozenset(
    "a an and are as at be by do does for from how i in is it me my of on or "
    "the this to what when where which who why with you your".split()
)


@dataclass
class SearchFilters:
    """Facet filters applied before ranking. Empty lists mean no filter."""
    similarity_threshold: float = 0.0
    content_types: List[str] = field(default_factory=list)
    sections: List[str] = field(default_factory=list)
    collections: List[str] = field(default_factory=list)

    def matches(self, metadata: ChunkMetadata) -> bool:
        if self.content_types and metadata.content_type not in self.content_types:
            return False
        if self.sections and metadata.section not in self.sections:
            return False
        if self.collections and metadata.collection not in self.collections:
            return False
        return True


@dataclass
class HybridWeights:
    vector: float = 0.7
    text: float = 0.3


@dataclass
class StoredDocument:
    """A chunk as stored, with its embedding"""
    id: str
    content: str
    embedding: List[float]
    metadata: ChunkMetadata


class VectorStore(ABC):
    """Similarity search over stored chunks. Failures raise RetrievalError."""

    @abstractmethod
    async def search(
        self,
        vector: List[float],
        top_k: int,
        filters: Optional[SearchFilters] = None,
    ) -> List[Chunk]:
        ...

    @abstractmethod
    async def hybrid_search(
        self,
        vector: List[float],
        text: str,
        top_k: int,
        weights: HybridWeights,
        filters: Optional[SearchFilters] = None,
    ) -> List[Chunk]:
        ...

    @abstractmethod
    async def health(self) -> bool:
        ...


def tokenize(text: str) -> List[str]:
    return [t for t in _TOKEN_RE.findall(text.lower()) if t not in _STOPWORDS]


def text_rank(query_terms: Sequence[str], doc_terms: Sequence[str]) -> float:
    """Fraction of distinct query terms that occur in the document, in [0, 1]."""
    unique = set(query_terms)
    if not unique:
        return 0.0
    present = unique.intersection(doc_terms)
    return len(present) / len(unique)


class InMemoryVectorStore(VectorStore):
    """numpy-backed store. Not shared across processes."""

    def __init__(self, max_documents: int = 10000):
        self.max_documents = max_documents
        self._docs: Dict[str, StoredDocument] = {}
        self._terms: Dict[str, List[str]] = {}
        self._matrix: Optional[np.ndarray] = None
        self._norms: Optional[np.ndarray] = None
        self._ids: List[str] = []
        self._dimensions = 0

    async def upsert(self, documents: Sequence[StoredDocument]) -> None:
        self._add(documents)

    def load_json(self, path) -> int:
        """
        Load a JSON dump of pre-embedded documents.

        The file holds a list of {"id", "content", "embedding", "metadata"}
        objects. Returns the number of documents loaded.
        """
        with open(path, "r") as f:
            records = json.load(f)
        if not isinstance(records, list):
            raise RetrievalError(
                f"Document dump {path} must hold a list", code="INVALID_DOCUMENT"
            )
        documents = [
            StoredDocument(
                id=str(r["id"]),
                content=r.get("content", ""),
                embedding=[float(x) for x in r.get("embedding") or []],
                metadata=ChunkMetadata.from_dict(r.get("metadata") or {}),
            )
            for r in records
        ]
        self._add(documents)
        return len(documents)

    def _add(self, documents: Sequence[StoredDocument]) -> None:
        if not documents:
            return

        new_ids = {d.id for d in documents if d.id not in self._docs}
        if len(self._docs) + len(new_ids) > self.max_documents:
            raise RetrievalError(
                f"Memory vector store capacity exceeded: "
                f"{len(self._docs) + len(new_ids)} > {self.max_documents}",
                code="MEMORY_CAPACITY_EXCEEDED",
                details={"current": len(self._docs), "max": self.max_documents},
            )

        # Whole batch is checked before anything is stored
        dimensions = self._dimensions
        for doc in documents:
            if not doc.embedding:
                raise RetrievalError(
                    f"Document {doc.id} has no embedding", code="INVALID_DOCUMENT"
                )
            if dimensions and len(doc.embedding) != dimensions:
                raise RetrievalError(
                    f"Document {doc.id} has {len(doc.embedding)} dimensions, "
                    f"store holds {dimensions}",
                    code="INVALID_DOCUMENT",
                )
            dimensions = len(doc.embedding)

        self._dimensions = dimensions
        for doc in documents:
            self._docs[doc.id] = doc
            self._terms[doc.id] = tokenize(f"{doc.metadata.title} {doc.content}")

        self._matrix = None
        logger.debug("Upserted %d documents (total %d)", len(documents), len(self._docs))

    async def delete(self, ids: Sequence[str]) -> int:
        removed = 0
        for doc_id in ids:
            if self._docs.pop(doc_id, None) is not None:
                self._terms.pop(doc_id, None)
                removed += 1
        if removed:
            self._matrix = None
        if not self._docs:
            self._dimensions = 0
        return removed

    def count(self) -> int:
        return len(self._docs)

    def stats(self) -> Dict[str, object]:
        collections: Dict[str, int] = {}
        for doc in self._docs.values():
            key = doc.metadata.collection or "default"
            collections[key] = collections.get(key, 0) + 1
        return {
            "documents": len(self._docs),
            "dimensions": self._dimensions,
            "collections": collections,
        }

    async def health(self) -> bool:
        return True

    def _index(self):
        if self._matrix is None:
            self._ids = list(self._docs)
            if self._ids:
                self._matrix = np.asarray(
                    [self._docs[i].embedding for i in self._ids], dtype=np.float32
                )
            else:
                self._matrix = np.zeros((0, max(self._dimensions, 1)), dtype=np.float32)
            self._norms = np.linalg.norm(self._matrix, axis=1)
        return self._ids, self._matrix, self._norms

    def _similarities(self, vector: List[float]) -> np.ndarray:
        if not vector:
            raise RetrievalError("Query embedding cannot be empty", code="EMPTY_QUERY_EMBEDDING")
        ids, matrix, norms = self._index()
        if not ids:
            return np.zeros(0, dtype=np.float32)
        try:
            return batch_cosine_similarity(vector, matrix, norms)
        except ValueError as e:
            raise RetrievalError(str(e), code="MEMORY_SEARCH_FAILED") from e

    def _to_chunk(self, doc_id: str, score: float) -> Chunk:
        doc = self._docs[doc_id]
        return Chunk(
            id=doc.id,
            content=doc.content,
            score=float(max(0.0, min(1.0, score))),
            metadata=doc.metadata,
        )

    async def search(
        self,
        vector: List[float],
        top_k: int,
        filters: Optional[SearchFilters] = None,
    ) -> List[Chunk]:
        if top_k <= 0:
            raise RetrievalError("top_k must be greater than 0", code="INVALID_TOP_K")
        filters = filters or SearchFilters()

        sims = self._similarities(vector)
        scored = []
        for idx, doc_id in enumerate(self._ids):
            score = float(sims[idx])
            if score < filters.similarity_threshold:
                continue
            if not filters.matches(self._docs[doc_id].metadata):
                continue
            scored.append((score, doc_id))

        scored.sort(key=lambda item: item[0], reverse=True)
        return [self._to_chunk(doc_id, score) for score, doc_id in scored[:top_k]]

    async def hybrid_search(
        self,
        vector: List[float],
        text: str,
        top_k: int,
        weights: HybridWeights,
        filters: Optional[SearchFilters] = None,
    ) -> List[Chunk]:
        if top_k <= 0:
            raise RetrievalError("top_k must be greater than 0", code="INVALID_TOP_K")
        filters = filters or SearchFilters()

        sims = self._similarities(vector)
        query_terms = tokenize(text)
        scored = []
        for idx, doc_id in enumerate(self._ids):
            if not filters.matches(self._docs[doc_id].metadata):
                continue
            cosine = float(sims[idx])
            rank = text_rank(query_terms, self._terms[doc_id])
            if rank <= 0.0 and cosine <= HYBRID_MIN_COSINE:
                continue
            scored.append((weights.vector * cosine + weights.text * rank, doc_id))

        scored.sort(key=lambda item: item[0], reverse=True)
        return [self._to_chunk(doc_id, score) for score, doc_id in scored[:top_k]]
