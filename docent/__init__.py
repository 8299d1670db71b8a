"""
Docent

Documentation question answering for chat platforms.

Pipeline:
- Retriever: embeds the query and searches the vector store (hybrid escalation on empty results)
- ContextBuilder / PromptBuilder: pack ranked chunks into a bounded prompt
- ResponseParser: turns generated text into summary, answer and steps
- Orchestrator: platform-agnostic entry point that never raises
- DeduplicationGuard: suppresses duplicate webhook deliveries per (user, query)

Usage:
    from docent.common import load_config, create_llm_client, create_embedding_service
    from docent.retriever import RAGPipeline
    from docent.gateway import Orchestrator, DeduplicationGuard
"""

__version__ = "0.1.0"
