"""
Docent Common Module

Shared infrastructure for the retriever and gateway packages: config,
errors, records, and the embedding / LLM / vector-store collaborators.
"""

from .config import DocentConfig, load_config
from .embedding_service import EmbeddingService
from .errors import (
    BudgetError,
    ConfigurationError,
    DocentError,
    EmbeddingFailed,
    GenerationError,
    PipelineError,
    RetrievalError,
    ValidationError,
)
from .llm_client import LLMClient
from .vector_store import InMemoryVectorStore, VectorStore

__all__ = [
    "DocentConfig",
    "load_config",
    "EmbeddingService",
    "LLMClient",
    "VectorStore",
    "InMemoryVectorStore",
    "DocentError",
    "ValidationError",
    "BudgetError",
    "RetrievalError",
    "EmbeddingFailed",
    "GenerationError",
    "ConfigurationError",
    "PipelineError",
]
