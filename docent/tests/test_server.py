"""
Tests for the FastAPI server

The orchestrator is replaced with a mock; handlers, guards and delivery
are the real ones.
"""

import logging

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from fastapi.testclient import TestClient

from docent.common.config import DocentConfig
from docent.common.types import OrchestratorResult, PlatformHints


def _answer(error_code=None):
    return OrchestratorResult(
        text="## Summary\nUse Enroll New Student.",
        summary="Use Enroll New Student.",
        sources=[],
        confidence=0.7,
        intent="instructions",
        platform_hints=PlatformHints(prefer_steps=True),
        metadata={"context_id": "api_u_1_ab"},
        error_code=error_code,
    )


@pytest.fixture
def orchestrator():
    orch = MagicMock()
    orch.handle_query = AsyncMock(return_value=_answer())
    orch.health_check = AsyncMock(return_value={"status": "healthy", "rag_pipeline": True})
    orch.stats.return_value = {"queries_handled": 0}
    return orch


@pytest.fixture
def client(orchestrator):
    from docent.gateway import server
    with patch.object(server, "load_config", return_value=DocentConfig()), \
            patch.object(server, "ensure_directories"), \
            patch.object(server, "configure_logging"), \
            patch.object(server, "build_orchestrator", return_value=orchestrator):
        with TestClient(server.app) as test_client:
            yield test_client


def _slack_event(event_type="app_mention", event_id="Ev1", text="<@UBOT> how do I enroll a student?"):
    return {
        "type": "event_callback",
        "event_id": event_id,
        "event": {
            "type": event_type,
            "user": "U123",
            "text": text,
            "channel": "C456",
            "ts": "1700000000.000100",
        },
    }


class TestHealthAndStats:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "docent"

    def test_unhealthy_is_503(self, client, orchestrator):
        orchestrator.health_check.return_value = {"status": "unhealthy"}
        assert client.get("/health").status_code == 503

    def test_stats_include_guards(self, client):
        data = client.get("/stats").json()
        assert set(data["dedup"]) == {"slack", "teams"}
        assert data["dedup"]["teams"]["ttl_seconds"] == 5.0
        assert data["orchestrator"] == {"queries_handled": 0}


class TestAsk:
    def test_ask(self, client, orchestrator):
        response = client.post("/ask", json={"query": "How do I enroll?", "collection": "pssis-admin"})

        assert response.status_code == 200
        assert response.json()["summary"] == "Use Enroll New Student."
        context = orchestrator.handle_query.call_args.args[0]
        assert context.platform == "api"
        assert context.metadata["collection"] == "pssis-admin"
        assert context.metadata["prefer_steps"] is False

    def test_invalid_query_is_400(self, client, orchestrator):
        orchestrator.handle_query.return_value = _answer(error_code="INVALID_QUERY")
        response = client.post("/ask", json={"query": "hi"})
        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_QUERY"

    def test_empty_query_rejected_by_schema(self, client):
        assert client.post("/ask", json={"query": ""}).status_code == 422


class TestSlackEvents:
    def test_url_verification(self, client):
        response = client.post("/slack/events", json={"type": "url_verification", "challenge": "xyz"})
        assert response.json() == {"challenge": "xyz"}

    def test_event_answered_in_background(self, client, orchestrator):
        response = client.post("/slack/events", json=_slack_event())

        assert response.json() == {"ok": True}
        orchestrator.handle_query.assert_awaited_once()
        context = orchestrator.handle_query.call_args.args[0]
        assert context.platform == "slack"
        assert context.thread_id == "1700000000.000100"

    def test_mention_and_message_twin_answered_once(self, client, orchestrator):
        client.post("/slack/events", json=_slack_event("app_mention", "Ev1"))
        client.post("/slack/events", json=_slack_event("message", "Ev2"))

        assert orchestrator.handle_query.await_count == 1
        stats = client.get("/stats").json()["dedup"]["slack"]
        assert stats["suppressed"] == 1

    def test_too_short_after_normalizing(self, client, orchestrator):
        client.post("/slack/events", json=_slack_event(text="<@UBOT> hi"))
        orchestrator.handle_query.assert_not_called()

    def test_invalid_json(self, client):
        response = client.post("/slack/events", content=b"not json",
                               headers={"content-type": "application/json"})
        assert response.status_code == 400


class TestTeamsMessages:
    def test_message_answered(self, client, orchestrator):
        activity = {
            "type": "message",
            "id": "1700000000001",
            "text": "<at>Docent</at> what is a reporting term?",
            "from": {"id": "29:abc", "aadObjectId": "aad-1"},
            "conversation": {"id": "19:chan"},
        }
        response = client.post("/teams/messages", json=activity)

        assert response.json() == {"ok": True}
        context = orchestrator.handle_query.call_args.args[0]
        assert context.platform == "teams"
        assert context.user_id == "aad-1"

    def test_non_message_ignored(self, client, orchestrator):
        client.post("/teams/messages", json={"type": "conversationUpdate"})
        orchestrator.handle_query.assert_not_called()


class TestBuildOrchestrator:
    def _build(self, cfg):
        from docent.gateway import server
        with patch.object(server, "create_embedding_service", return_value=MagicMock()), \
                patch.object(server, "create_llm_client", return_value=MagicMock()):
            return server.build_orchestrator(cfg)

    def test_loads_document_dump(self, tmp_path, caplog):
        dump = tmp_path / "docs.json"
        dump.write_text(
            '[{"id": "enroll", "content": "Enroll New Student", "embedding": [1.0, 0.0],'
            ' "metadata": {"url": "https://d/enroll", "title": "Enroll"}}]'
        )
        cfg = DocentConfig()
        cfg.retrieval.documents_path = str(dump)

        with caplog.at_level(logging.INFO, logger="docent.gateway.server"):
            assert self._build(cfg) is not None
        assert "Loaded 1 documents" in caplog.text

    def test_empty_store_warns(self, caplog):
        with caplog.at_level(logging.WARNING, logger="docent.gateway.server"):
            self._build(DocentConfig())
        assert "vector store is empty" in caplog.text
