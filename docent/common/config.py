"""
Configuration Management for Docent

Loads configuration from ~/.docent/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, List

logger = logging.getLogger("docent.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".docent"
CONFIG_PATH = CONFIG_DIR / "config.json"
LOGS_DIR = CONFIG_DIR / "logs"

DEFAULT_CHANNEL_COLLECTIONS = {
    "pssis": "pssis-admin",
    "powerschool": "pssis-admin",
    "schoology": "schoology",
    "lms": "schoology",
}

DEFAULT_FALLBACK_CITATIONS = [
    {"title": "PowerSchool Support", "url": "https://support.powerschool.com/"},
    {"title": "PowerSchool Community", "url": "https://community.powerschool.com/"},
]


@dataclass
class EmbeddingConfig:
    """Embedding provider configuration"""
    provider: str = "fastembed"  # on-device by default
    model: str = "BAAI/bge-small-en-v1.5"
    openai_api_key: str = ""
    openai_model: str = "text-embedding-3-small"
    dimensions: int = 0  # 0 = provider default


@dataclass
class LLMConfig:
    """Generation provider configuration"""
    provider: str = "anthropic"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    google_api_key: str = ""
    google_model: str = "gemini-2.0-flash"
    max_tokens: int = 1500
    context_window_tokens: int = 128000
    timeout: float = 30.0


@dataclass
class RetrievalConfig:
    """Retrieval cascade tuning. Empirically tuned; keep configurable."""
    top_k: int = 10
    similarity_threshold: float = 0.3  # recall over precision for doc QA
    vector_weight: float = 0.7  # used when a caller asks for hybrid directly
    text_weight: float = 0.3
    escalation_vector_weight: float = 0.5  # used for the empty-result retry
    escalation_text_weight: float = 0.5
    context_window_tokens: int = 3000
    documents_path: str = ""  # JSON dump of pre-embedded documents loaded at startup


@dataclass
class DedupConfig:
    """Duplicate-event suppression windows (seconds)"""
    slack_ttl_seconds: float = 3.0
    teams_ttl_seconds: float = 5.0
    processing_timeout_seconds: float = 30.0
    sweep_interval_seconds: float = 30.0
    sweep_batch_size: int = 500


@dataclass
class OrchestratorConfig:
    """Platform query handling"""
    top_k: int = 8
    context_window_tokens: int = 3000
    followup_top_k: int = 10
    followup_context_window_tokens: int = 4000
    channel_collections: Dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_CHANNEL_COLLECTIONS)
    )
    use_llm_classifier: bool = False


@dataclass
class FallbackConfig:
    """Static links returned when retrieval finds nothing"""
    product_name: str = "PowerSchool PSSIS-Admin"
    citations: List[Dict[str, str]] = field(
        default_factory=lambda: [dict(c) for c in DEFAULT_FALLBACK_CITATIONS]
    )


@dataclass
class ServerConfig:
    """Webhook server configuration"""
    host: str = "0.0.0.0"
    port: int = 3000


@dataclass
class DocentConfig:
    """Main Docent configuration"""
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    dedup: DedupConfig = field(default_factory=DedupConfig)
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    fallback: FallbackConfig = field(default_factory=FallbackConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    log_level: str = "INFO"
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_embedding_config(data: dict) -> EmbeddingConfig:
    """Parse embedding section from config dict"""
    embedding_data = data.get("embedding", {})
    defaults = EmbeddingConfig()
    return EmbeddingConfig(
        provider=embedding_data.get("provider", defaults.provider),
        model=embedding_data.get("model", defaults.model),
        openai_api_key=embedding_data.get("openai_api_key", ""),
        openai_model=embedding_data.get("openai_model", defaults.openai_model),
        dimensions=int(embedding_data.get("dimensions", 0)),
    )


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict"""
    llm_data = data.get("llm", {})
    defaults = LLMConfig()
    return LLMConfig(
        provider=llm_data.get("provider", defaults.provider),
        anthropic_api_key=llm_data.get("anthropic_api_key", ""),
        anthropic_model=llm_data.get("anthropic_model", defaults.anthropic_model),
        openai_api_key=llm_data.get("openai_api_key", ""),
        openai_model=llm_data.get("openai_model", defaults.openai_model),
        google_api_key=llm_data.get("google_api_key", ""),
        google_model=llm_data.get("google_model", defaults.google_model),
        max_tokens=int(llm_data.get("max_tokens", defaults.max_tokens)),
        context_window_tokens=int(
            llm_data.get("context_window_tokens", defaults.context_window_tokens)
        ),
        timeout=float(llm_data.get("timeout", defaults.timeout)),
    )


def _parse_retrieval_config(data: dict) -> RetrievalConfig:
    """Parse retrieval section from config dict"""
    retrieval_data = data.get("retrieval", {})
    defaults = RetrievalConfig()
    return RetrievalConfig(
        top_k=int(retrieval_data.get("top_k", defaults.top_k)),
        similarity_threshold=float(
            retrieval_data.get("similarity_threshold", defaults.similarity_threshold)
        ),
        vector_weight=float(retrieval_data.get("vector_weight", defaults.vector_weight)),
        text_weight=float(retrieval_data.get("text_weight", defaults.text_weight)),
        escalation_vector_weight=float(
            retrieval_data.get("escalation_vector_weight", defaults.escalation_vector_weight)
        ),
        escalation_text_weight=float(
            retrieval_data.get("escalation_text_weight", defaults.escalation_text_weight)
        ),
        context_window_tokens=int(
            retrieval_data.get("context_window_tokens", defaults.context_window_tokens)
        ),
        documents_path=retrieval_data.get("documents_path", defaults.documents_path) or "",
    )


def _parse_dedup_config(data: dict) -> DedupConfig:
    """Parse dedup section from config dict"""
    dedup_data = data.get("dedup", {})
    defaults = DedupConfig()
    return DedupConfig(
        slack_ttl_seconds=float(dedup_data.get("slack_ttl_seconds", defaults.slack_ttl_seconds)),
        teams_ttl_seconds=float(dedup_data.get("teams_ttl_seconds", defaults.teams_ttl_seconds)),
        processing_timeout_seconds=float(
            dedup_data.get("processing_timeout_seconds", defaults.processing_timeout_seconds)
        ),
        sweep_interval_seconds=float(
            dedup_data.get("sweep_interval_seconds", defaults.sweep_interval_seconds)
        ),
        sweep_batch_size=int(dedup_data.get("sweep_batch_size", defaults.sweep_batch_size)),
    )


def _parse_orchestrator_config(data: dict) -> OrchestratorConfig:
    """Parse orchestrator section from config dict"""
    orch_data = data.get("orchestrator", {})
    defaults = OrchestratorConfig()
    return OrchestratorConfig(
        top_k=int(orch_data.get("top_k", defaults.top_k)),
        context_window_tokens=int(
            orch_data.get("context_window_tokens", defaults.context_window_tokens)
        ),
        followup_top_k=int(orch_data.get("followup_top_k", defaults.followup_top_k)),
        followup_context_window_tokens=int(
            orch_data.get(
                "followup_context_window_tokens", defaults.followup_context_window_tokens
            )
        ),
        channel_collections=dict(
            orch_data.get("channel_collections", defaults.channel_collections)
        ),
        use_llm_classifier=bool(
            orch_data.get("use_llm_classifier", defaults.use_llm_classifier)
        ),
    )


def _parse_fallback_config(data: dict) -> FallbackConfig:
    """Parse fallback section from config dict"""
    fallback_data = data.get("fallback", {})
    defaults = FallbackConfig()
    return FallbackConfig(
        product_name=fallback_data.get("product_name", defaults.product_name),
        citations=list(fallback_data.get("citations", defaults.citations)),
    )


def _parse_server_config(data: dict) -> ServerConfig:
    """Parse server section from config dict"""
    server_data = data.get("server", {})
    return ServerConfig(
        host=server_data.get("host", "0.0.0.0"),
        port=int(server_data.get("port", 3000)),
    )


def load_config() -> DocentConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.docent/config.json)
    3. Default values
    """
    config = DocentConfig()

    # Load from config file if exists
    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.embedding = _parse_embedding_config(data)
            config.llm = _parse_llm_config(data)
            config.retrieval = _parse_retrieval_config(data)
            config.dedup = _parse_dedup_config(data)
            config.orchestrator = _parse_orchestrator_config(data)
            config.fallback = _parse_fallback_config(data)
            config.server = _parse_server_config(data)
            config.log_level = data.get("log_level", "INFO")
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file: %s", e)

    # Environment variable overrides
    if os.getenv("EMBEDDING_PROVIDER"):
        config.embedding.provider = os.getenv("EMBEDDING_PROVIDER")
    if os.getenv("EMBEDDING_MODEL"):
        config.embedding.model = os.getenv("EMBEDDING_MODEL")

    if os.getenv("DOCENT_TOP_K"):
        config.retrieval.top_k = int(os.getenv("DOCENT_TOP_K"))
    if os.getenv("DOCENT_SIMILARITY_THRESHOLD"):
        config.retrieval.similarity_threshold = float(os.getenv("DOCENT_SIMILARITY_THRESHOLD"))
    if os.getenv("DOCENT_PORT"):
        config.server.port = int(os.getenv("DOCENT_PORT"))
    if os.getenv("DOCENT_LOG_LEVEL"):
        config.log_level = os.getenv("DOCENT_LOG_LEVEL")

    # LLM env var overrides (target config.llm, track env-sourced keys)
    _env_llm_map = {
        "ANTHROPIC_API_KEY": "anthropic_api_key",
        "ANTHROPIC_MODEL": "anthropic_model",
        "OPENAI_API_KEY": "openai_api_key",
        "OPENAI_MODEL": "openai_model",
        "GOOGLE_API_KEY": "google_api_key",
        "GEMINI_API_KEY": "google_api_key",
        "GOOGLE_MODEL": "google_model",
        "LLM_PROVIDER": "provider",
    }
    for env_var, attr in _env_llm_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.llm, attr, val)
            config._env_sourced_keys.add(attr)

    # LLM_MODEL applies to whichever provider is active
    if os.getenv("LLM_MODEL"):
        model_attr = f"{config.llm.provider}_model"
        if hasattr(config.llm, model_attr):
            setattr(config.llm, model_attr, os.getenv("LLM_MODEL"))

    # OpenAI key doubles as the embedding key unless one is configured
    if os.getenv("OPENAI_API_KEY") and not config.embedding.openai_api_key:
        config.embedding.openai_api_key = os.getenv("OPENAI_API_KEY")
        config._env_sourced_keys.add("embedding.openai_api_key")

    return config


def save_config(config: DocentConfig) -> None:
    """Save configuration to file.

    API key fields that were sourced from environment variables are written
    as empty strings so that secrets are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    _llm_api_key_fields = {
        "anthropic_api_key", "openai_api_key", "google_api_key",
    }
    llm_section = {
        "provider": config.llm.provider,
        "anthropic_api_key": config.llm.anthropic_api_key,
        "anthropic_model": config.llm.anthropic_model,
        "openai_api_key": config.llm.openai_api_key,
        "openai_model": config.llm.openai_model,
        "google_api_key": config.llm.google_api_key,
        "google_model": config.llm.google_model,
        "max_tokens": config.llm.max_tokens,
        "context_window_tokens": config.llm.context_window_tokens,
        "timeout": config.llm.timeout,
    }
    for key in _llm_api_key_fields:
        if key in env_sourced:
            llm_section[key] = ""

    embedding_key = config.embedding.openai_api_key
    if "embedding.openai_api_key" in env_sourced:
        embedding_key = ""

    data = {
        "embedding": {
            "provider": config.embedding.provider,
            "model": config.embedding.model,
            "openai_api_key": embedding_key,
            "openai_model": config.embedding.openai_model,
            "dimensions": config.embedding.dimensions,
        },
        "llm": llm_section,
        "retrieval": {
            "top_k": config.retrieval.top_k,
            "similarity_threshold": config.retrieval.similarity_threshold,
            "vector_weight": config.retrieval.vector_weight,
            "text_weight": config.retrieval.text_weight,
            "escalation_vector_weight": config.retrieval.escalation_vector_weight,
            "escalation_text_weight": config.retrieval.escalation_text_weight,
            "context_window_tokens": config.retrieval.context_window_tokens,
            "documents_path": config.retrieval.documents_path,
        },
        "dedup": {
            "slack_ttl_seconds": config.dedup.slack_ttl_seconds,
            "teams_ttl_seconds": config.dedup.teams_ttl_seconds,
            "processing_timeout_seconds": config.dedup.processing_timeout_seconds,
            "sweep_interval_seconds": config.dedup.sweep_interval_seconds,
            "sweep_batch_size": config.dedup.sweep_batch_size,
        },
        "orchestrator": {
            "top_k": config.orchestrator.top_k,
            "context_window_tokens": config.orchestrator.context_window_tokens,
            "followup_top_k": config.orchestrator.followup_top_k,
            "followup_context_window_tokens": config.orchestrator.followup_context_window_tokens,
            "channel_collections": config.orchestrator.channel_collections,
            "use_llm_classifier": config.orchestrator.use_llm_classifier,
        },
        "fallback": {
            "product_name": config.fallback.product_name,
            "citations": config.fallback.citations,
        },
        "server": {
            "host": config.server.host,
            "port": config.server.port,
        },
        "log_level": config.log_level,
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)


def ensure_directories() -> None:
    """Ensure required directories exist"""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
