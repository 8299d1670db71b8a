"""
Query Classifier

LLM-assisted collection classification. The LLM's JSON is
validated against a strict pydantic model; anything that fails validation
(or an unavailable LLM) falls back to the keyword heuristics, which are
also what the orchestrator uses for intent.

Token budget: ~200 tokens per call.
"""

import logging
from typing import Literal, Optional

from pydantic import BaseModel, ValidationError as SchemaError, field_validator

from ..common.llm_client import LLMClient
from ..common.llm_utils import parse_llm_json
from ..common.types import ChatMessage, GenerateOptions

logger = logging.getLogger("docent.gateway.classifier")

HOW_TO_KEYWORDS = ("how to", "step", "guide", "tutorial")
DETAIL_KEYWORDS = ("what is", "explain", "detail")

PSSIS_KEYWORDS = ("student", "enrollment", "grade", "schedule", "report", "pssis", "sis")
SCHOOLOGY_KEYWORDS = ("course", "assignment", "gradebook", "schoology", "lms", "learning")

# classifier label -> vector store collection
COLLECTION_LABELS = {
    "pssis": "pssis-admin",
    "schoology": "schoology",
    "both": "both",
}

COLLECTION_POLICY = """You are a knowledge base classifier. Decide which documentation to search.

Collections:
- "pssis" - PowerSchool SIS administration: student records, enrollment, scheduling, grades, reports
- "schoology" - Schoology LMS: courses, assignments, gradebook, communication
- "both" - the query could apply to either system

Consider the channel context if provided.

Respond with JSON only: {"collection": "pssis|schoology|both", "confidence": 0.0-1.0, "reasoning": "brief explanation"}"""


class _Scored(BaseModel):
    confidence: float = 0.5
    reasoning: str = ""

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, value):
        if value is None:
            return 0.5
        return min(max(float(value), 0.0), 1.0)


class CollectionClassification(_Scored):
    collection: Literal["pssis", "schoology", "both"]

    @property
    def collection_name(self) -> str:
        return COLLECTION_LABELS[self.collection]


def has_how_to_keywords(query: str) -> bool:
    lower = query.lower()
    return any(k in lower for k in HOW_TO_KEYWORDS)


def keyword_intent(query: str, has_steps: bool = False) -> str:
    """instructions > details > other, by keyword."""
    if has_steps or has_how_to_keywords(query):
        return "instructions"
    lower = query.lower()
    if any(k in lower for k in DETAIL_KEYWORDS):
        return "details"
    return "other"


def keyword_collection(query: str, channel_hint: Optional[str] = None) -> CollectionClassification:
    lower = query.lower()
    channel = (channel_hint or "").lower()
    pssis = any(w in lower or w in channel for w in PSSIS_KEYWORDS)
    schoology = any(w in lower or w in channel for w in SCHOOLOGY_KEYWORDS)

    if pssis and not schoology:
        return CollectionClassification(
            collection="pssis", confidence=0.7, reasoning="Contains PSSIS-related keywords"
        )
    if schoology and not pssis:
        return CollectionClassification(
            collection="schoology", confidence=0.7, reasoning="Contains Schoology-related keywords"
        )
    if "pssis" in channel:
        return CollectionClassification(
            collection="pssis", confidence=0.8, reasoning="PSSIS channel context"
        )
    if "schoology" in channel:
        return CollectionClassification(
            collection="schoology", confidence=0.8, reasoning="Schoology channel context"
        )
    return CollectionClassification(
        collection="both", confidence=0.5, reasoning="No clear system indicators"
    )


class QueryClassifier:
    """
    Classifies queries with a small LLM call.

    Falls back to keyword heuristics when the LLM is unavailable, errors,
    or returns JSON that does not match the schema.
    """

    def __init__(self, llm_client: Optional[LLMClient] = None, max_tokens: int = 200):
        self._llm = llm_client
        self.max_tokens = max_tokens

    @property
    def is_available(self) -> bool:
        return self._llm is not None and getattr(self._llm, "is_available", True)

    async def _ask(self, system: str, user: str) -> Optional[dict]:
        if not self.is_available:
            return None
        try:
            raw = await self._llm.generate(
                [ChatMessage(role="system", content=system), ChatMessage(role="user", content=user)],
                GenerateOptions(max_tokens=self.max_tokens, temperature=0.1),
            )
        except Exception as e:
            logger.warning("Classifier LLM call failed, using keywords: %s", e)
            return None
        data = parse_llm_json(raw)
        if not data:
            logger.debug("Classifier returned no JSON: %.120s", raw)
        return data

    async def classify_collection(
        self, query: str, channel_hint: Optional[str] = None
    ) -> CollectionClassification:
        user = f'Query: "{query[:500]}"'
        if channel_hint:
            user += f'\nChannel context: "{channel_hint}"'

        data = await self._ask(COLLECTION_POLICY, user)
        if data:
            try:
                return CollectionClassification.model_validate(data)
            except SchemaError as e:
                logger.debug("Collection classification failed schema check: %s", e)

        return keyword_collection(query, channel_hint)
