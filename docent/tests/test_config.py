"""Tests for config loading, env overrides and save."""

import json
import os
import pytest
from unittest.mock import patch


class TestDefaults:
    def test_retrieval_defaults(self):
        from docent.common.config import RetrievalConfig
        cfg = RetrievalConfig()
        assert cfg.top_k == 10
        assert cfg.similarity_threshold == 0.3
        assert (cfg.vector_weight, cfg.text_weight) == (0.7, 0.3)
        assert (cfg.escalation_vector_weight, cfg.escalation_text_weight) == (0.5, 0.5)
        assert cfg.context_window_tokens == 3000
        assert cfg.documents_path == ""

    def test_dedup_defaults(self):
        from docent.common.config import DedupConfig
        cfg = DedupConfig()
        assert cfg.slack_ttl_seconds == 3.0
        assert cfg.teams_ttl_seconds == 5.0
        assert cfg.processing_timeout_seconds == 30.0

    def test_channel_collections_not_shared(self):
        from docent.common.config import OrchestratorConfig
        a = OrchestratorConfig()
        b = OrchestratorConfig()
        a.channel_collections["extra"] = "x"
        assert "extra" not in b.channel_collections

    def test_fallback_citations_default(self):
        from docent.common.config import FallbackConfig
        cfg = FallbackConfig()
        assert len(cfg.citations) == 2
        assert all(c["url"].startswith("https://") for c in cfg.citations)


class TestLoadConfig:
    @pytest.fixture(autouse=True)
    def clean_env(self):
        keys = [
            "EMBEDDING_PROVIDER", "EMBEDDING_MODEL", "DOCENT_TOP_K",
            "DOCENT_SIMILARITY_THRESHOLD", "DOCENT_PORT", "DOCENT_LOG_LEVEL",
            "ANTHROPIC_API_KEY", "ANTHROPIC_MODEL", "OPENAI_API_KEY", "OPENAI_MODEL",
            "GOOGLE_API_KEY", "GEMINI_API_KEY", "GOOGLE_MODEL", "LLM_PROVIDER", "LLM_MODEL",
        ]
        with patch.dict(os.environ, {}, clear=False):
            for key in keys:
                os.environ.pop(key, None)
            yield

    def test_missing_file_gives_defaults(self, tmp_path):
        from docent.common.config import load_config
        with patch("docent.common.config.CONFIG_PATH", tmp_path / "missing.json"):
            cfg = load_config()
        assert cfg.llm.provider == "anthropic"
        assert cfg.embedding.provider == "fastembed"
        assert cfg.server.port == 3000

    def test_file_sections_parsed(self, tmp_path):
        from docent.common.config import load_config
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({
            "llm": {"provider": "openai", "openai_api_key": "sk-test", "max_tokens": 800},
            "retrieval": {"top_k": 5, "similarity_threshold": 0.5, "documents_path": "~/docs.json"},
            "dedup": {"teams_ttl_seconds": 7},
            "orchestrator": {"channel_collections": {"sis": "pssis-admin"}},
            "fallback": {"product_name": "Acme Docs", "citations": []},
            "log_level": "DEBUG",
        }))

        with patch("docent.common.config.CONFIG_PATH", config_file):
            cfg = load_config()

        assert cfg.llm.provider == "openai"
        assert cfg.llm.openai_api_key == "sk-test"
        assert cfg.llm.max_tokens == 800
        assert cfg.retrieval.top_k == 5
        assert cfg.retrieval.similarity_threshold == 0.5
        assert cfg.retrieval.vector_weight == 0.7
        assert cfg.retrieval.documents_path == "~/docs.json"
        assert cfg.dedup.teams_ttl_seconds == 7.0
        assert cfg.orchestrator.channel_collections == {"sis": "pssis-admin"}
        assert cfg.fallback.product_name == "Acme Docs"
        assert cfg.log_level == "DEBUG"

    def test_corrupt_file_logs_warning(self, tmp_path, caplog):
        import logging
        from docent.common.config import load_config
        config_file = tmp_path / "config.json"
        config_file.write_text("{not json")

        with caplog.at_level(logging.WARNING, logger="docent.common.config"):
            with patch("docent.common.config.CONFIG_PATH", config_file):
                cfg = load_config()

        assert cfg.llm.provider == "anthropic"
        assert "Failed to load config file" in caplog.text

    def test_env_overrides_file(self, tmp_path):
        from docent.common.config import load_config
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"llm": {"anthropic_api_key": "from-file"}}))

        env = {"ANTHROPIC_API_KEY": "from-env", "DOCENT_TOP_K": "3", "DOCENT_PORT": "8080"}
        with patch.dict(os.environ, env):
            with patch("docent.common.config.CONFIG_PATH", config_file):
                cfg = load_config()

        assert cfg.llm.anthropic_api_key == "from-env"
        assert "anthropic_api_key" in cfg._env_sourced_keys
        assert cfg.retrieval.top_k == 3
        assert cfg.server.port == 8080

    def test_gemini_key_alias(self, tmp_path):
        from docent.common.config import load_config
        with patch.dict(os.environ, {"GEMINI_API_KEY": "gm-key"}):
            with patch("docent.common.config.CONFIG_PATH", tmp_path / "none.json"):
                cfg = load_config()
        assert cfg.llm.google_api_key == "gm-key"

    def test_llm_model_targets_active_provider(self, tmp_path):
        from docent.common.config import load_config
        env = {"LLM_PROVIDER": "openai", "LLM_MODEL": "gpt-4.1"}
        with patch.dict(os.environ, env):
            with patch("docent.common.config.CONFIG_PATH", tmp_path / "none.json"):
                cfg = load_config()
        assert cfg.llm.provider == "openai"
        assert cfg.llm.openai_model == "gpt-4.1"
        assert cfg.llm.anthropic_model == "claude-sonnet-4-20250514"

    def test_openai_key_shared_with_embedding(self, tmp_path):
        from docent.common.config import load_config
        with patch.dict(os.environ, {"OPENAI_API_KEY": "sk-env"}):
            with patch("docent.common.config.CONFIG_PATH", tmp_path / "none.json"):
                cfg = load_config()
        assert cfg.embedding.openai_api_key == "sk-env"


class TestSaveConfig:
    def test_env_sourced_keys_not_persisted(self, tmp_path):
        from docent.common.config import DocentConfig, save_config
        cfg = DocentConfig()
        cfg.llm.anthropic_api_key = "secret-from-env"
        cfg.llm.openai_api_key = "sk-from-file"
        cfg._env_sourced_keys.add("anthropic_api_key")

        config_path = tmp_path / "config.json"
        with patch("docent.common.config.CONFIG_DIR", tmp_path), \
                patch("docent.common.config.CONFIG_PATH", config_path):
            save_config(cfg)

        data = json.loads(config_path.read_text())
        assert data["llm"]["anthropic_api_key"] == ""
        assert data["llm"]["openai_api_key"] == "sk-from-file"
        assert oct(config_path.stat().st_mode & 0o777) == "0o600"

    def test_save_then_load(self, tmp_path):
        from docent.common.config import DocentConfig, load_config, save_config
        cfg = DocentConfig()
        cfg.retrieval.top_k = 4
        cfg.dedup.slack_ttl_seconds = 2.5

        config_path = tmp_path / "config.json"
        with patch("docent.common.config.CONFIG_DIR", tmp_path), \
                patch("docent.common.config.CONFIG_PATH", config_path), \
                patch.dict(os.environ, {}, clear=True):
            save_config(cfg)
            loaded = load_config()

        assert loaded.retrieval.top_k == 4
        assert loaded.dedup.slack_ttl_seconds == 2.5
