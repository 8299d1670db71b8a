"""
Retriever - Documentation Question Answering

Finds relevant documentation passages and turns them into a cited answer.

Key Components:
- Retriever: Query embedding + vector search with one hybrid escalation
- build_context: Token-bounded, rank-order context packing
- PromptBuilder: System/user prompts plus the citation list
- ResponseParser: Summary / answer / steps extraction and advisory checks
- RAGPipeline: The end-to-end state machine, including the fallback answer

Pipeline:
1. Embed the query and search (plain, then hybrid if empty)
2. Pack the top chunks into the context budget
3. Build prompts and generate with the LLM
4. Parse, validate and clean the response
"""

from .context_builder import build_context
from .pipeline import PipelineOptions, PipelineStage, RAGPipeline
from .prompt_builder import PromptBuilder, PromptOptions
from .response_parser import ResponseParser
from .retriever import RetrievalOptions, Retriever

__all__ = [
    "build_context",
    "PipelineOptions",
    "PipelineStage",
    "RAGPipeline",
    "PromptBuilder",
    "PromptOptions",
    "ResponseParser",
    "RetrievalOptions",
    "Retriever",
]
