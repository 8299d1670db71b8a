"""
Gateway - Chat Platform Front Door

Receives questions from Slack, Teams and the HTTP API and answers them
through the RAG pipeline.

Key Components:
- Orchestrator: Normalizes queries, derives hints, scores and wraps answers
- DeduplicationGuard: At most one in-flight answer per (user, query)
- QueryClassifier: LLM intent/collection classification with keyword fallback
- Handlers: Platform-specific webhook parsing (Slack, Teams)
- Delivery: Posting answers back (logging by default)
"""

from .classifier import QueryClassifier, keyword_intent
from .dedup import DedupDecision, DedupReason, DeduplicationGuard
from .delivery import Delivery, LoggingDelivery
from .orchestrator import Orchestrator, normalize_query

__all__ = [
    "QueryClassifier",
    "keyword_intent",
    "DedupDecision",
    "DedupReason",
    "DeduplicationGuard",
    "Delivery",
    "LoggingDelivery",
    "Orchestrator",
    "normalize_query",
]
