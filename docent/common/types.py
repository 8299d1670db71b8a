"""
Core data records shared by the retriever and gateway packages.

Chunks and generated answers are immutable. Everything here lives for
a single request and is discarded afterwards.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional


class SearchMode(str, Enum):
    """Which search entry point produced a RetrievalResult"""
    PLAIN = "plain"
    HYBRID = "hybrid"


class FallbackReason(str, Enum):
    """Why the pipeline synthesized a local answer instead of calling the LLM"""
    EMPTY_RETRIEVAL_RESULTS = "EMPTY_RETRIEVAL_RESULTS"
    HYBRID_SEARCH_ALSO_EMPTY = "HYBRID_SEARCH_ALSO_EMPTY"
    HYBRID_SEARCH_FAILED = "HYBRID_SEARCH_FAILED"


@dataclass(frozen=True)
class ChunkMetadata:
    """Source metadata attached to every chunk"""
    url: str
    title: str
    content_type: str = "text"  # text | code | heading | list | table
    section: Optional[str] = None
    subsection: Optional[str] = None
    collection: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChunkMetadata":
        return cls(
            url=data.get("url", ""),
            title=data.get("title", "Untitled"),
            content_type=data.get("content_type", data.get("contentType", "text")),
            section=data.get("section"),
            subsection=data.get("subsection"),
            collection=data.get("collection"),
        )


@dataclass(frozen=True)
class Chunk:
    """One retrievable passage with its similarity score in [0, 1]"""
    id: str
    content: str
    score: float
    metadata: ChunkMetadata


@dataclass
class RetrievalResult:
    """Chunks ordered by descending score, plus how they were found"""
    chunks: List[Chunk] = field(default_factory=list)
    mode: SearchMode = SearchMode.PLAIN
    escalated: bool = False  # plain search was empty and hybrid was tried
    escalation_error: Optional[str] = None  # hybrid attempt failed
    retrieval_time_ms: float = 0.0

    @property
    def is_empty(self) -> bool:
        return not self.chunks

    def __len__(self) -> int:
        return len(self.chunks)


@dataclass
class ContextWindow:
    """Token-bounded, order-preserving subset of a RetrievalResult"""
    used_chunks: List[Chunk] = field(default_factory=list)
    token_count: int = 0
    budget: int = 0
    text: str = ""


@dataclass(frozen=True)
class Citation:
    title: str
    url: str


@dataclass
class PromptBundle:
    system_prompt: str
    user_prompt: str
    citations: List[Citation] = field(default_factory=list)


@dataclass(frozen=True)
class GeneratedAnswer:
    """Parsed output of one LLM call"""
    raw_text: str
    summary: str
    answer: str
    steps: Optional[List[str]] = None


@dataclass
class ValidationReport:
    """Advisory quality check on generated text"""
    valid: bool
    issues: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class RetrievedDoc:
    id: str
    score: float
    excerpt: str


@dataclass
class DebugInfo:
    """Required diagnostic record carried by every PipelineResult"""
    stage: str = "init"
    is_fallback: bool = False
    fallback_reason: Optional[str] = None
    docs_found: int = 0
    search_mode: str = SearchMode.PLAIN.value
    timings: Dict[str, float] = field(default_factory=dict)
    stages: List[str] = field(default_factory=list)  # transitions, in order

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PipelineResult:
    answer: str
    summary: str
    citations: List[Citation]
    retrieved_docs: List[RetrievedDoc]
    debug_info: DebugInfo
    steps: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "answer": self.answer,
            "summary": self.summary,
            "citations": [asdict(c) for c in self.citations],
            "retrieved_docs": [asdict(d) for d in self.retrieved_docs],
            "debug_info": self.debug_info.to_dict(),
        }
        if self.steps:
            data["steps"] = list(self.steps)
        return data


@dataclass(frozen=True)
class ChatMessage:
    role: str  # system | user | assistant
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class GenerateOptions:
    """LLM sampling options. None means "use the client default"."""
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    stop: Optional[List[str]] = None


@dataclass(frozen=True)
class PlatformQueryContext:
    """One inbound chat-platform question. Read-only."""
    platform: str  # slack | teams | api
    user_id: str
    channel_id: str
    query: str
    thread_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Source:
    id: str
    title: str
    url: str
    snippet: str
    retrieval_score: float


@dataclass
class PlatformHints:
    prefer_steps: bool = False
    collection: Optional[str] = None
    thread_context: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v not in (None, False)}


@dataclass
class OrchestratorResult:
    """Platform-agnostic answer. Always produced, including on error."""
    text: str
    summary: str
    sources: List[Source]
    confidence: float
    intent: str  # instructions | details | other
    platform_hints: PlatformHints
    metadata: Dict[str, Any] = field(default_factory=dict)
    error_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "text": self.text,
            "summary": self.summary,
            "sources": [asdict(s) for s in self.sources],
            "confidence": self.confidence,
            "intent": self.intent,
            "platform_hints": self.platform_hints.to_dict(),
            "metadata": dict(self.metadata),
        }
        if self.error_code:
            data["error_code"] = self.error_code
        return data
