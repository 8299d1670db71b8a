"""
Orchestrator

Single entry point for Slack, Teams and the HTTP API. Normalizes the
question, derives platform hints, runs the RAG pipeline and wraps the
answer with confidence, intent and merged sources.

handle_query() never raises: every failure becomes an OrchestratorResult
with a user-safe message and confidence 0.
"""

import logging
import re
import secrets
import time
from typing import Any, Dict, List, Optional

from ..common.config import OrchestratorConfig
from ..common.errors import DocentError, ValidationError
from ..common.types import (
    OrchestratorResult,
    PipelineResult,
    PlatformHints,
    PlatformQueryContext,
    Source,
)
from ..retriever.pipeline import PipelineOptions, RAGPipeline
from .classifier import QueryClassifier, has_how_to_keywords, keyword_intent

logger = logging.getLogger("docent.gateway.orchestrator")

MIN_QUERY_LENGTH = 3
CITATION_SCORE = 0.5
TITLE_MATCH_CHARS = 20

_MENTION_PATTERNS = [
    re.compile(r"<@[UW][A-Z0-9]+(?:\|[^>]*)?>"),  # Slack user
    re.compile(r"<#C[A-Z0-9]+(?:\|[^>]*)?>"),  # Slack channel
    re.compile(r"<at>.*?</at>", re.IGNORECASE | re.DOTALL),  # Teams
    re.compile(r"&lt;at&gt;.*?&lt;/at&gt;", re.IGNORECASE | re.DOTALL),  # Teams, escaped
]
_WHITESPACE_RE = re.compile(r"\s+")

ERROR_MESSAGES = {
    "INVALID_QUERY": "Please provide a more detailed question.",
    "EMPTY_RETRIEVAL_RESULTS": (
        "I couldn't find relevant information for your query. Try rephrasing your question."
    ),
    "LLM_GENERATION_FAILED": (
        "I'm having trouble generating a response right now. Please try again."
    ),
    "RETRIEVAL_FAILED": "Documentation search is temporarily unavailable. Please try again shortly.",
    "EMBEDDING_FAILED": "Documentation search is temporarily unavailable. Please try again shortly.",
    "CONTEXT_BUDGET_EXCEEDED": "That question pulls in too much material at once. Please narrow it down.",
}
GENERIC_ERROR_MESSAGE = "Something went wrong. Please try again or rephrase your question."


def normalize_query(query: str) -> str:
    """Strip platform mention markup and collapse whitespace. Idempotent."""
    text = query or ""
    while True:
        stripped = text
        for pattern in _MENTION_PATTERNS:
            stripped = pattern.sub(" ", stripped)
        stripped = _WHITESPACE_RE.sub(" ", stripped).strip()
        if stripped == text:
            return stripped
        text = stripped


def calculate_confidence(result: PipelineResult) -> float:
    confidence = 0.5
    if result.citations:
        confidence += 0.2
    if len(result.retrieved_docs) >= 3:
        confidence += 0.1
    if len(result.answer) > 200:
        confidence += 0.1
    if result.steps:
        confidence += 0.1
    if result.debug_info.is_fallback:
        confidence = max(0.2, confidence - 0.3)
    return round(min(1.0, max(0.0, confidence)), 4)


def merge_sources(result: PipelineResult) -> List[Source]:
    """
    Retrieved docs first, each matched to the best citation; then any
    citation whose URL is not represented yet.
    """
    sources: List[Source] = []

    for index, doc in enumerate(result.retrieved_docs):
        doc_id = doc.id.lower()
        match = None
        for citation in result.citations:
            prefix = citation.title[:TITLE_MATCH_CHARS]
            if (doc_id and doc_id in citation.title.lower()) or (prefix and prefix in doc.excerpt):
                match = citation
                break
        sources.append(Source(
            id=doc.id,
            title=match.title if match else f"Source {index + 1}",
            url=match.url if match else "#",
            snippet=doc.excerpt,
            retrieval_score=doc.score,
        ))

    seen_urls = {s.url for s in sources}
    for citation in result.citations:
        if citation.url in seen_urls:
            continue
        seen_urls.add(citation.url)
        sources.append(Source(
            id=f"citation_{len(sources)}",
            title=citation.title,
            url=citation.url,
            snippet=citation.title,
            retrieval_score=CITATION_SCORE,
        ))

    return sources


class Orchestrator:
    """
    Platform-agnostic query handling on top of RAGPipeline.

    Args:
        pipeline: The RAG pipeline
        config: Orchestrator tuning (budgets, channel collection map)
        classifier: Optional LLM classifier, consulted for the collection
            only when ``config.use_llm_classifier`` is set
        similarity_threshold: Passed through to retrieval
    """

    def __init__(
        self,
        pipeline: RAGPipeline,
        config: Optional[OrchestratorConfig] = None,
        classifier: Optional[QueryClassifier] = None,
        similarity_threshold: float = 0.3,
    ):
        self._pipeline = pipeline
        self._config = config or OrchestratorConfig()
        self._classifier = classifier
        self.similarity_threshold = similarity_threshold
        self._started_at = time.monotonic()
        self._handled = 0
        self._errors = 0

    async def handle_query(self, context: PlatformQueryContext) -> OrchestratorResult:
        started = time.perf_counter()
        context_id = self.generate_context_id(context)
        self._handled += 1

        try:
            query = normalize_query(context.query)
            if len(query) < MIN_QUERY_LENGTH:
                raise ValidationError(
                    "Query too short or empty", details={"length": len(query)}
                )

            hints = await self.extract_platform_hints(context, query)
            options = self.build_pipeline_options(context, hints)
            result = await self._pipeline.process(query, options)

            orchestrated = OrchestratorResult(
                text=result.answer,
                summary=result.summary,
                sources=merge_sources(result),
                confidence=calculate_confidence(result),
                intent=keyword_intent(query, has_steps=bool(result.steps)),
                platform_hints=hints,
                metadata=self._metadata(context, context_id, started),
            )
            logger.info(
                "[%s] %s answered (confidence %.2f, intent %s, %d sources, %.0f ms)",
                context.platform, context_id, orchestrated.confidence,
                orchestrated.intent, len(orchestrated.sources),
                orchestrated.metadata["processing_time_ms"],
            )
            return orchestrated

        except Exception as e:
            self._errors += 1
            return self._error_result(e, context, context_id, started)

    @staticmethod
    def generate_context_id(context: PlatformQueryContext) -> str:
        return (
            f"{context.platform}_{context.user_id}_{int(time.time() * 1000)}"
            f"_{secrets.token_hex(4)}"
        )

    async def extract_platform_hints(self, context: PlatformQueryContext, query: str) -> PlatformHints:
        metadata = context.metadata or {}
        hints = PlatformHints(
            prefer_steps=bool(metadata.get("prefer_steps")) or has_how_to_keywords(query)
        )

        if metadata.get("collection"):
            hints.collection = str(metadata["collection"])
        else:
            channel_name = str(metadata.get("channel_name") or "").lower()
            for keyword, collection in self._config.channel_collections.items():
                if channel_name and keyword in channel_name:
                    hints.collection = collection
                    break

            if hints.collection is None and self._config.use_llm_classifier and self._classifier:
                classification = await self._classifier.classify_collection(
                    query, metadata.get("channel_name")
                )
                hints.collection = classification.collection_name

        if metadata.get("parent_context_id"):
            hints.thread_context = str(metadata["parent_context_id"])

        return hints

    def build_pipeline_options(self, context: PlatformQueryContext, hints: PlatformHints) -> PipelineOptions:
        options = PipelineOptions(
            prefer_steps=hints.prefer_steps,
            top_k=self._config.top_k,
            context_window_tokens=self._config.context_window_tokens,
            similarity_threshold=self.similarity_threshold,
        )
        if hints.collection and hints.collection != "both":
            options.collections = [hints.collection]
        if (context.metadata or {}).get("parent_context_id"):
            # follow-ups get more context
            options.top_k = self._config.followup_top_k
            options.context_window_tokens = self._config.followup_context_window_tokens
        return options

    def _metadata(self, context: PlatformQueryContext, context_id: str, started: float) -> Dict[str, Any]:
        metadata = {
            "context_id": context_id,
            "processing_time_ms": round((time.perf_counter() - started) * 1000, 2),
            "platform": context.platform,
            "user_id": context.user_id,
            "channel_id": context.channel_id,
        }
        parent = (context.metadata or {}).get("parent_context_id")
        if parent:
            metadata["parent_context_id"] = parent
        return metadata

    def _error_result(
        self,
        error: Exception,
        context: PlatformQueryContext,
        context_id: str,
        started: float,
    ) -> OrchestratorResult:
        code = error.code if isinstance(error, DocentError) else None
        message = ERROR_MESSAGES.get(code, GENERIC_ERROR_MESSAGE)
        if isinstance(error, DocentError):
            logger.warning("[%s] %s failed: %s", context.platform, context_id, error)
        else:
            logger.exception("[%s] %s failed with unexpected error", context.platform, context_id)

        return OrchestratorResult(
            text=message,
            summary="Error processing query",
            sources=[],
            confidence=0.0,
            intent="other",
            platform_hints=PlatformHints(),
            metadata=self._metadata(context, context_id, started),
            error_code=code or "UNKNOWN_ERROR",
        )

    async def health_check(self) -> Dict[str, Any]:
        pipeline_health = await self._pipeline.health_check()
        healthy = pipeline_health["status"] == "healthy"
        return {
            "status": "healthy" if healthy else "unhealthy",
            "orchestrator": True,
            "rag_pipeline": healthy,
            "details": {
                "rag_components": pipeline_health["components"],
                "rag_details": pipeline_health.get("details", {}),
            },
        }

    def stats(self) -> Dict[str, Any]:
        return {
            "platform": "unified",
            "rag_pipeline": self._pipeline.stats(),
            "uptime_ms": round((time.monotonic() - self._started_at) * 1000),
            "queries_handled": self._handled,
            "queries_failed": self._errors,
        }
