"""
RAG Pipeline

Retrieve -> pack context -> build prompt -> generate -> parse, with a
local fallback answer when retrieval finds nothing.

State machine:

    INIT -> RETRIEVING -> FOUND ----------------------------+
                       -> EMPTY -> HYBRID_RETRY -> FOUND ---+
                                               -> EMPTY2 -> FALLBACK
    -> CONTEXT_BUILT -> PROMPTED -> GENERATING -> PARSED -> DONE

FAILED is reachable from any state. Retrieval and generation failures
are wrapped in a single PipelineError carrying the failing stage and the
debug info gathered so far. BudgetError and ValidationError propagate
as-is.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from ..common.config import DEFAULT_FALLBACK_CITATIONS
from ..common.embedding_service import EmbeddingService
from ..common.errors import (
    BudgetError,
    DocentError,
    PipelineError,
    ValidationError,
)
from ..common.llm_client import LLMClient
from ..common.types import (
    ChatMessage,
    Chunk,
    Citation,
    DebugInfo,
    FallbackReason,
    GenerateOptions,
    PipelineResult,
    RetrievalResult,
    RetrievedDoc,
)
from ..common.vector_store import VectorStore
from .context_builder import build_context, estimate_tokens
from .prompt_builder import PromptBuilder, PromptOptions
from .response_parser import ResponseParser
from .retriever import RetrievalOptions, Retriever

logger = logging.getLogger("docent.retriever.pipeline")

MIN_QUERY_LENGTH = 3
EXCERPT_LENGTH = 200
DEFAULT_TEMPERATURE = 0.1
DEFAULT_TOP_P = 0.9


class PipelineStage(str, Enum):
    INIT = "init"
    RETRIEVING = "retrieving"
    EMPTY = "empty"
    HYBRID_RETRY = "hybrid_retry"
    EMPTY2 = "empty2"
    FOUND = "found"
    FALLBACK = "fallback"
    CONTEXT_BUILT = "context_built"
    PROMPTED = "prompted"
    GENERATING = "generating"
    PARSED = "parsed"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PipelineOptions:
    """Per-request options. None falls back to pipeline defaults."""
    prefer_steps: bool = False
    include_references: bool = True
    max_tokens: Optional[int] = None
    top_k: Optional[int] = None
    context_window_tokens: Optional[int] = None
    similarity_threshold: Optional[float] = None
    content_types: List[str] = field(default_factory=list)
    sections: List[str] = field(default_factory=list)
    collections: List[str] = field(default_factory=list)
    hybrid: bool = False


# (trigger keywords, suggestion) for the fallback answer
FALLBACK_SUGGESTIONS = [
    (("enroll", "enrollment"),
     'Try searching for "student enrollment", "school enrollment", or "mass register"'),
    (("schedule", "class"),
     'Try "course requests", "scheduling", or "class management"'),
    (("grade", "report"),
     'Try "grade reporting", "report cards", or "academic reports"'),
    (("student",),
     'Try "student information", "student records", or "student management"'),
]

FALLBACK_ISSUES = {
    FallbackReason.HYBRID_SEARCH_ALSO_EMPTY: "Both vector and text search returned no results.",
    FallbackReason.HYBRID_SEARCH_FAILED: "Search system encountered an error.",
}


def create_excerpt(content: str, max_length: int = EXCERPT_LENGTH) -> str:
    """
    Shorten content for display.

    Cuts at the last sentence end if it falls past 60% of the limit, else
    at the last space past 80%, else hard.
    """
    if len(content) <= max_length:
        return content.strip()

    truncated = content[:max_length]
    sentence_end = max(truncated.rfind("."), truncated.rfind("!"), truncated.rfind("?"))
    if sentence_end > max_length * 0.6:
        return truncated[: sentence_end + 1].strip()

    last_space = truncated.rfind(" ")
    if last_space > max_length * 0.8:
        return truncated[:last_space].strip() + "..."

    return truncated.strip() + "..."


def format_retrieved_docs(chunks: Sequence[Chunk]) -> List[RetrievedDoc]:
    return [
        RetrievedDoc(id=c.id, score=round(c.score, 3), excerpt=create_excerpt(c.content))
        for c in chunks
    ]


class RAGPipeline:
    """
    End-to-end question answering over the indexed documentation.

    Collaborators are injected; the pipeline owns only the sequencing,
    the fallback answer, and the debug record.
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        vector_store: VectorStore,
        llm_client: LLMClient,
        retriever: Optional[Retriever] = None,
        prompt_builder: Optional[PromptBuilder] = None,
        response_parser: Optional[ResponseParser] = None,
        fallback_citations: Optional[Sequence[Citation]] = None,
        max_tokens: int = 1500,
        context_window_tokens: int = 3000,
        model_context_tokens: int = 128000,
    ):
        self._embedding = embedding_service
        self._store = vector_store
        self._llm = llm_client
        self._retriever = retriever or Retriever(embedding_service, vector_store)
        if fallback_citations is None:
            fallback_citations = [Citation(title=c["title"], url=c["url"]) for c in DEFAULT_FALLBACK_CITATIONS]
        self._fallback_citations = list(fallback_citations)
        self._prompts = prompt_builder or PromptBuilder()
        self._parser = response_parser or ResponseParser()
        self.max_tokens = max_tokens
        self.context_window_tokens = context_window_tokens
        self.model_context_tokens = model_context_tokens

    async def process(self, query: str, options: Optional[PipelineOptions] = None) -> PipelineResult:
        options = options or PipelineOptions()
        query = (query or "").strip()
        if len(query) < MIN_QUERY_LENGTH:
            raise ValidationError(
                f"Query must be at least {MIN_QUERY_LENGTH} characters",
                details={"length": len(query)},
            )

        started = time.perf_counter()
        debug = DebugInfo()
        self._advance(debug, PipelineStage.INIT)

        try:
            # Retrieval (the hybrid escalation happens inside the retriever)
            self._advance(debug, PipelineStage.RETRIEVING)
            retrieval = await self._retriever.retrieve(
                query,
                RetrievalOptions(
                    top_k=options.top_k,
                    similarity_threshold=options.similarity_threshold,
                    content_types=list(options.content_types),
                    sections=list(options.sections),
                    collections=list(options.collections),
                    hybrid=options.hybrid,
                ),
            )
            debug.timings["retrieval_ms"] = retrieval.retrieval_time_ms
            debug.search_mode = retrieval.mode.value
            debug.docs_found = len(retrieval)

            reason = self._record_retrieval(debug, retrieval)
            if reason is not None:
                return self._fallback(query, reason, debug, started)

            # Context packing
            mark = time.perf_counter()
            budget = options.context_window_tokens or self.context_window_tokens
            window = build_context(retrieval.chunks, budget)
            debug.timings["context_ms"] = (time.perf_counter() - mark) * 1000
            self._advance(debug, PipelineStage.CONTEXT_BUILT)
            logger.debug(
                "Packed %d/%d chunks (%d/%d tokens)",
                len(window.used_chunks), len(retrieval), window.token_count, budget,
            )

            # Prompt
            prompt_options = PromptOptions(
                prefer_steps=options.prefer_steps,
                include_references=options.include_references,
            )
            bundle = self._prompts.build_prompt(query, window, prompt_options)
            self._advance(debug, PipelineStage.PROMPTED)

            max_tokens = options.max_tokens or self.max_tokens
            self._check_budget(bundle.system_prompt, bundle.user_prompt, max_tokens)

            # Generation
            self._advance(debug, PipelineStage.GENERATING)
            mark = time.perf_counter()
            raw = await self._llm.generate(
                [
                    ChatMessage(role="system", content=bundle.system_prompt),
                    ChatMessage(role="user", content=bundle.user_prompt),
                ],
                GenerateOptions(
                    max_tokens=max_tokens,
                    temperature=DEFAULT_TEMPERATURE,
                    top_p=DEFAULT_TOP_P,
                ),
            )
            debug.timings["generation_ms"] = (time.perf_counter() - mark) * 1000

            # Parse + advisory validation
            parsed = self._parser.parse(raw)
            self._parser.validate(raw)
            self._prompts.validate_structure(raw, prompt_options)
            answer = self._parser.clean(raw)
            self._advance(debug, PipelineStage.PARSED)

            self._advance(debug, PipelineStage.DONE)
            debug.timings["total_ms"] = (time.perf_counter() - started) * 1000
            logger.info(
                "Answered query with %d citations in %.0f ms",
                len(bundle.citations), debug.timings["total_ms"],
            )
            return PipelineResult(
                answer=answer,
                summary=parsed.summary,
                steps=parsed.steps,
                citations=bundle.citations,
                retrieved_docs=format_retrieved_docs(window.used_chunks),
                debug_info=debug,
            )

        except (BudgetError, ValidationError):
            raise
        except DocentError as e:
            raise self._fail(debug, started, e, e.code) from e
        except Exception as e:
            raise self._fail(debug, started, e, None) from e

    def _record_retrieval(self, debug: DebugInfo, retrieval: RetrievalResult) -> Optional[FallbackReason]:
        """Replay the retrieval cascade onto the stage history; return a fallback reason if empty."""
        if retrieval.escalated:
            self._advance(debug, PipelineStage.EMPTY)
            self._advance(debug, PipelineStage.HYBRID_RETRY)
            if retrieval.escalation_error is not None:
                return FallbackReason.HYBRID_SEARCH_FAILED
            if retrieval.is_empty:
                self._advance(debug, PipelineStage.EMPTY2)
                return FallbackReason.HYBRID_SEARCH_ALSO_EMPTY
        elif retrieval.is_empty:
            # caller asked for hybrid directly, so there is no escalation
            self._advance(debug, PipelineStage.EMPTY)
            return FallbackReason.EMPTY_RETRIEVAL_RESULTS

        self._advance(debug, PipelineStage.FOUND)
        return None

    def _check_budget(self, system_prompt: str, user_prompt: str, max_tokens: int) -> None:
        prompt_tokens = estimate_tokens(system_prompt) + estimate_tokens(user_prompt)
        if prompt_tokens + max_tokens > self.model_context_tokens:
            raise BudgetError(
                f"Prompt ({prompt_tokens}) + completion ({max_tokens}) tokens exceed "
                f"the model context window ({self.model_context_tokens})",
                details={
                    "prompt_tokens": prompt_tokens,
                    "max_tokens": max_tokens,
                    "context_window": self.model_context_tokens,
                },
            )

    def _advance(self, debug: DebugInfo, stage: PipelineStage) -> None:
        debug.stage = stage.value
        debug.stages.append(stage.value)
        logger.debug("Pipeline stage -> %s", stage.value)

    def _fail(self, debug: DebugInfo, started: float, error: Exception, code: Optional[str]) -> PipelineError:
        failed_stage = debug.stage
        self._advance(debug, PipelineStage.FAILED)
        debug.timings["total_ms"] = (time.perf_counter() - started) * 1000
        logger.error("Pipeline failed during %s: %s", failed_stage, error)
        message = error.message if isinstance(error, DocentError) else str(error)
        return PipelineError(
            f"Pipeline failed during {failed_stage}: {message}",
            stage=failed_stage,
            debug_info=debug.to_dict(),
            code=code,
            cause=error,
        )

    def _fallback(self, query: str, reason: FallbackReason, debug: DebugInfo, started: float) -> PipelineResult:
        self._advance(debug, PipelineStage.FALLBACK)
        debug.is_fallback = True
        debug.fallback_reason = reason.value
        debug.timings["total_ms"] = (time.perf_counter() - started) * 1000
        logger.info("Returning fallback answer (%s)", reason.value)

        product = self._prompts.product_name
        if reason is FallbackReason.HYBRID_SEARCH_ALSO_EMPTY:
            summary = f'No matching documentation found for "{query}" using advanced search methods.'
        elif reason is FallbackReason.HYBRID_SEARCH_FAILED:
            summary = f'Search temporarily unavailable for "{query}" - please try again.'
        else:
            summary = f'I couldn\'t find a documented answer for "{query}" in the {product} documentation.'

        return PipelineResult(
            answer=self.build_fallback_answer(query, FALLBACK_ISSUES.get(reason)),
            summary=summary,
            citations=list(self._fallback_citations),
            retrieved_docs=[],
            debug_info=debug,
        )

    def build_fallback_answer(self, query: str, issue: Optional[str] = None) -> str:
        """Guidance text with search suggestions keyed off words in the query."""
        lower = query.lower()
        product = self._prompts.product_name
        vendor = self._prompts.vendor_name

        suggestions = [
            suggestion
            for keywords, suggestion in FALLBACK_SUGGESTIONS
            if any(k in lower for k in keywords)
        ]
        if not suggestions:
            suggestions = [
                f"Try using more specific terms related to {vendor} features",
                f"Browse the {vendor} documentation sections directly",
            ]

        parts = [f'I couldn\'t find specific documentation for "{query}" in the {product} guides.']
        if issue:
            parts.append(f"**Issue**: {issue}")
        parts.append("**Try these alternative searches:**\n" + "\n".join(f"- {s}" for s in suggestions))
        parts.append(
            "**Resources to help:**\n"
            + "\n".join(f"- **{c.title}**: {c.url}" for c in self._fallback_citations)
        )
        parts.append(
            "**Search Tips:**\n"
            f'- Use specific {vendor} terminology (e.g., "student enrollment" instead of "add student")\n'
            "- Try broader terms first, then narrow down\n"
            f"- Check if the feature exists in your {vendor} version"
        )
        return "\n\n".join(parts)

    async def health_check(self) -> Dict[str, Any]:
        details: Dict[str, Any] = {}

        try:
            store_ok = bool(await self._store.health())
        except Exception as e:
            store_ok = False
            details["vector_store_error"] = str(e)

        try:
            vector = await self._embedding.embed("health check")
            embedding_ok = bool(vector)
            details["embedding_dimensions"] = len(vector)
        except Exception as e:
            embedding_ok = False
            details["embedding_error"] = str(e)

        llm_ok = bool(getattr(self._llm, "is_available", False))
        details["llm_model"] = getattr(self._llm, "model", "")

        components = {"vector_store": store_ok, "embedding": embedding_ok, "llm": llm_ok}
        return {
            "status": "healthy" if all(components.values()) else "unhealthy",
            "components": components,
            "details": details,
        }

    def stats(self) -> Dict[str, Any]:
        return {
            "embedding_model": getattr(self._embedding, "model", ""),
            "embedding_dimensions": self._embedding.dimensions(),
            "llm_provider": getattr(self._llm, "provider", ""),
            "llm_model": getattr(self._llm, "model", ""),
            "llm_max_tokens": self.max_tokens,
        }
