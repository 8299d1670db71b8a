"""
Error taxonomy for Docent.

Every domain error carries a machine-readable ``code`` that the Orchestrator
maps to a user-safe message. Only ConfigurationError is fatal; everything else
is recoverable per request.
"""

from typing import Any, Dict, Optional


class DocentError(Exception):
    """Base class for all Docent errors."""

    default_code = "DOCENT_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class ValidationError(DocentError):
    """Query is empty or too short. Raised before any collaborator call."""

    default_code = "INVALID_QUERY"


class BudgetError(DocentError):
    """Estimated prompt + completion tokens exceed the model context window."""

    default_code = "CONTEXT_BUDGET_EXCEEDED"


class RetrievalError(DocentError):
    """Embedding or vector-store failure (not the same as an empty result)."""

    default_code = "RETRIEVAL_FAILED"


class EmbeddingFailed(RetrievalError):
    """Embedding collaborator failure."""

    default_code = "EMBEDDING_FAILED"


class GenerationError(DocentError):
    """LLM call failed or returned empty output."""

    default_code = "LLM_GENERATION_FAILED"


class ConfigurationError(DocentError):
    """Missing credentials or unknown provider. Raised at construction time."""

    default_code = "CONFIGURATION_ERROR"


class PipelineError(DocentError):
    """
    Wraps a retrieval or generation failure at the Pipeline boundary.

    Keeps the original error code so the Orchestrator's message catalog
    still applies, and adds the failing stage plus the debug info
    accumulated before the failure.
    """

    default_code = "PIPELINE_FAILED"

    def __init__(
        self,
        message: str,
        stage: str,
        debug_info: Optional[Dict[str, Any]] = None,
        code: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(
            message,
            code=code,
            details={"stage": stage, "debug_info": debug_info or {}},
        )
        self.stage = stage
        self.debug_info = debug_info or {}
        self.cause = cause
