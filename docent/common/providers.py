"""
Provider registries.

LLM and embedding providers are closed enums mapped to constructors.
``validate_registries()`` runs at startup so a provider added to an enum
without a constructor (or a misspelled provider name in config) fails
before the first request instead of during one.
"""

import logging
from enum import Enum
from typing import Callable, Dict

from .config import DocentConfig, EmbeddingConfig, LLMConfig
from .embedding_service import (
    EmbeddingService,
    FastEmbedEmbeddingService,
    OpenAIEmbeddingService,
)
from .errors import ConfigurationError
from .llm_client import LLMClient

logger = logging.getLogger("docent.common.providers")


class LLMProvider(str, Enum):
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    GOOGLE = "google"


class EmbeddingProvider(str, Enum):
    FASTEMBED = "fastembed"
    OPENAI = "openai"


def _anthropic_llm(config: LLMConfig) -> LLMClient:
    return LLMClient(
        provider="anthropic",
        model=config.anthropic_model,
        anthropic_api_key=config.anthropic_api_key,
        timeout=config.timeout,
    )


def _openai_llm(config: LLMConfig) -> LLMClient:
    return LLMClient(
        provider="openai",
        model=config.openai_model,
        openai_api_key=config.openai_api_key,
        timeout=config.timeout,
    )


def _google_llm(config: LLMConfig) -> LLMClient:
    return LLMClient(
        provider="google",
        model=config.google_model,
        google_api_key=config.google_api_key,
        timeout=config.timeout,
    )


def _fastembed_embedding(config: EmbeddingConfig) -> EmbeddingService:
    return FastEmbedEmbeddingService(model=config.model, dimensions=config.dimensions)


def _openai_embedding(config: EmbeddingConfig) -> EmbeddingService:
    if not config.openai_api_key:
        raise ConfigurationError(
            "OpenAI embedding provider requires an API key",
            details={"provider": "openai"},
        )
    return OpenAIEmbeddingService(
        api_key=config.openai_api_key,
        model=config.openai_model,
        dimensions=config.dimensions,
    )


LLM_REGISTRY: Dict[LLMProvider, Callable[[LLMConfig], LLMClient]] = {
    LLMProvider.ANTHROPIC: _anthropic_llm,
    LLMProvider.OPENAI: _openai_llm,
    LLMProvider.GOOGLE: _google_llm,
}

EMBEDDING_REGISTRY: Dict[EmbeddingProvider, Callable[[EmbeddingConfig], EmbeddingService]] = {
    EmbeddingProvider.FASTEMBED: _fastembed_embedding,
    EmbeddingProvider.OPENAI: _openai_embedding,
}


def validate_registries() -> None:
    """Every enum member must have a constructor."""
    missing = [p.value for p in LLMProvider if p not in LLM_REGISTRY]
    missing += [p.value for p in EmbeddingProvider if p not in EMBEDDING_REGISTRY]
    if missing:
        raise ConfigurationError(
            f"No constructor registered for providers: {', '.join(missing)}",
            details={"missing": missing},
        )


def resolve_llm_provider(name: str) -> LLMProvider:
    try:
        return LLMProvider((name or "").lower())
    except ValueError:
        raise ConfigurationError(
            f"Unknown LLM provider: {name!r}",
            details={"known": [p.value for p in LLMProvider]},
        ) from None


def resolve_embedding_provider(name: str) -> EmbeddingProvider:
    try:
        return EmbeddingProvider((name or "").lower())
    except ValueError:
        raise ConfigurationError(
            f"Unknown embedding provider: {name!r}",
            details={"known": [p.value for p in EmbeddingProvider]},
        ) from None


def create_llm_client(config: DocentConfig, require_credentials: bool = True) -> LLMClient:
    """
    Build the configured LLM client.

    Raises:
        ConfigurationError: unknown provider, or missing credentials when
            ``require_credentials`` is set
    """
    provider = resolve_llm_provider(config.llm.provider)
    client = LLM_REGISTRY[provider](config.llm)
    if require_credentials and not client.is_available:
        raise ConfigurationError(
            f"LLM provider {provider.value!r} is not available (missing API key or SDK)",
            details={"provider": provider.value},
        )
    logger.info("LLM client ready (%s/%s)", provider.value, client.model)
    return client


def create_embedding_service(config: DocentConfig) -> EmbeddingService:
    provider = resolve_embedding_provider(config.embedding.provider)
    service = EMBEDDING_REGISTRY[provider](config.embedding)
    logger.info("Embedding service ready (%s/%s)", provider.value, service.model)
    return service
