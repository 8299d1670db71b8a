"""
Docent Server

FastAPI server for chat-platform webhooks and direct questions.

Endpoints:
- POST /slack/events: Slack Events API endpoint
- POST /teams/messages: Microsoft Teams (Bot Framework) endpoint
- POST /ask: Ask a question directly
- GET /health: Health check
- GET /stats: Pipeline and guard statistics

Pipeline:
1. Receive webhook event and acknowledge immediately
2. Parse with the platform handler
3. Claim the (user, query) fingerprint in the platform's dedup guard
4. Answer through the orchestrator
5. Deliver, then release the fingerprint
"""

import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv
from fastapi import BackgroundTasks, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .. import __version__
from ..common.config import LOGS_DIR, DocentConfig, ensure_directories, load_config
from ..common.logging_setup import configure_logging
from ..common.providers import (
    create_embedding_service,
    create_llm_client,
    validate_registries,
)
from ..common.types import Citation, PlatformQueryContext
from ..common.vector_store import InMemoryVectorStore
from ..retriever.pipeline import RAGPipeline
from ..retriever.prompt_builder import PromptBuilder
from ..retriever.retriever import Retriever
from .classifier import QueryClassifier
from .dedup import DeduplicationGuard
from .delivery import Delivery, LoggingDelivery
from .handlers import InboundEvent, SlackHandler, TeamsHandler
from .orchestrator import MIN_QUERY_LENGTH, Orchestrator, normalize_query

logger = logging.getLogger("docent.gateway.server")


# Global state
config: Optional[DocentConfig] = None
orchestrator: Optional[Orchestrator] = None
delivery: Optional[Delivery] = None
slack_handler: Optional[SlackHandler] = None
teams_handler: Optional[TeamsHandler] = None
guards: Dict[str, DeduplicationGuard] = {}


def build_orchestrator(cfg: DocentConfig) -> Orchestrator:
    """
    Wire collaborators from config.

    The in-memory store starts empty unless retrieval.documents_path points
    at a JSON dump of pre-embedded documents; until then every query gets
    the fallback answer.

    Raises:
        ConfigurationError: unknown provider or missing credentials
    """
    validate_registries()
    embedding_service = create_embedding_service(cfg)
    llm_client = create_llm_client(cfg)
    vector_store = InMemoryVectorStore()
    if cfg.retrieval.documents_path:
        loaded = vector_store.load_json(Path(cfg.retrieval.documents_path).expanduser())
        logger.info("Loaded %d documents from %s", loaded, cfg.retrieval.documents_path)
    else:
        logger.warning("No documents_path configured; vector store is empty")

    citations = [Citation(title=c["title"], url=c["url"]) for c in cfg.fallback.citations]
    pipeline = RAGPipeline(
        embedding_service,
        vector_store,
        llm_client,
        retriever=Retriever(embedding_service, vector_store, cfg.retrieval),
        prompt_builder=PromptBuilder(cfg.fallback.product_name),
        fallback_citations=citations,
        max_tokens=cfg.llm.max_tokens,
        context_window_tokens=cfg.retrieval.context_window_tokens,
        model_context_tokens=cfg.llm.context_window_tokens,
    )
    classifier = QueryClassifier(llm_client) if cfg.orchestrator.use_llm_classifier else None
    return Orchestrator(
        pipeline,
        cfg.orchestrator,
        classifier=classifier,
        similarity_threshold=cfg.retrieval.similarity_threshold,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize components on startup"""
    global config, orchestrator, delivery, slack_handler, teams_handler, guards

    load_dotenv()
    ensure_directories()
    config = load_config()
    configure_logging(config.log_level, LOGS_DIR)
    logger.info("Starting up (llm: %s, embedding: %s)", config.llm.provider, config.embedding.provider)

    orchestrator = build_orchestrator(config)
    delivery = LoggingDelivery()
    slack_handler = SlackHandler()
    teams_handler = TeamsHandler()

    guards = {
        platform: DeduplicationGuard.from_config(config.dedup, platform)
        for platform in ("slack", "teams")
    }
    for guard in guards.values():
        guard.start()

    logger.info("Ready to receive events")

    yield

    logger.info("Shutting down...")
    for guard in guards.values():
        await guard.stop()


app = FastAPI(
    title="Docent",
    description="Documentation question answering for Slack and Teams",
    version=__version__,
    lifespan=lifespan,
)


# =============================================================================
# Request Models
# =============================================================================

class AskRequest(BaseModel):
    """Direct question request"""
    query: str = Field(..., min_length=1, max_length=2000)
    prefer_steps: bool = False
    collection: Optional[str] = None  # "pssis-admin", "schoology", "both"
    user_id: str = "api"
    channel_id: str = "api"
    parent_context_id: Optional[str] = None


# =============================================================================
# Background Tasks
# =============================================================================

async def process_event(event: InboundEvent, guard: DeduplicationGuard) -> None:
    """
    Answer one platform event behind its guard.

    The fingerprint uses the normalized query, so an app_mention and its
    twin message event collapse to one answer.
    """
    if not orchestrator or not delivery:
        logger.warning("Not initialized, skipping %s event %s", event.source, event.event_id)
        return

    query = normalize_query(event.text)
    if len(query) < MIN_QUERY_LENGTH:
        logger.debug("Query too short, skipping event %s", event.event_id)
        return

    context = event.to_query_context()
    async with guard.track(event.user, query, event.event_type, event.event_id) as decision:
        if not decision.proceed:
            return
        result = await orchestrator.handle_query(context)
        try:
            await delivery.deliver(context, result)
        except Exception:
            logger.exception("Delivery failed for %s event %s", event.source, event.event_id)


async def _read_json(request: Request) -> dict:
    body = await request.body()
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid JSON")
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="Expected a JSON object")
    return data


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/health")
async def health():
    """Health check endpoint"""
    if not orchestrator:
        return JSONResponse(
            {"status": "unhealthy", "service": "docent", "initialized": False},
            status_code=503,
        )

    report = await orchestrator.health_check()
    report.update({
        "service": "docent",
        "initialized": True,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    })
    status_code = 200 if report["status"] == "healthy" else 503
    return JSONResponse(report, status_code=status_code)


@app.get("/stats")
async def get_stats():
    """Get Docent statistics"""
    stats = {
        "service": "docent",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if orchestrator:
        stats["orchestrator"] = orchestrator.stats()
    stats["dedup"] = {name: guard.stats() for name, guard in guards.items()}
    return stats


@app.post("/ask")
async def ask(request: AskRequest):
    """Answer a question directly (no dedup guard)"""
    if not orchestrator:
        raise HTTPException(status_code=503, detail="Orchestrator not initialized")

    metadata = {"prefer_steps": request.prefer_steps}
    if request.collection:
        metadata["collection"] = request.collection
    if request.parent_context_id:
        metadata["parent_context_id"] = request.parent_context_id

    context = PlatformQueryContext(
        platform="api",
        user_id=request.user_id,
        channel_id=request.channel_id,
        query=request.query,
        metadata=metadata,
    )
    result = await orchestrator.handle_query(context)
    status_code = 400 if result.error_code == "INVALID_QUERY" else 200
    return JSONResponse(result.to_dict(), status_code=status_code)


@app.post("/slack/events")
async def slack_events(request: Request, background_tasks: BackgroundTasks):
    """
    Handle Slack webhook events.

    Slack wants an answer within 3 seconds, so the question is answered
    in the background after the acknowledgement.
    """
    if not slack_handler:
        raise HTTPException(status_code=503, detail="Handler not initialized")

    data = await _read_json(request)

    # Handle URL verification challenge
    if slack_handler.is_url_verification(data):
        return JSONResponse({"challenge": slack_handler.get_challenge(data)})

    event = await slack_handler.parse_event(data)
    if event and slack_handler.should_process(event):
        background_tasks.add_task(process_event, event, guards["slack"])

    return JSONResponse({"ok": True})


@app.post("/teams/messages")
async def teams_messages(request: Request, background_tasks: BackgroundTasks):
    """Handle Teams Bot Framework activities"""
    if not teams_handler:
        raise HTTPException(status_code=503, detail="Handler not initialized")

    data = await _read_json(request)

    event = await teams_handler.parse_event(data)
    if event and teams_handler.should_process(event):
        background_tasks.add_task(process_event, event, guards["teams"])

    return JSONResponse({"ok": True})


# =============================================================================
# CLI Entry Point
# =============================================================================

def run_server():
    """Run the Docent server"""
    import uvicorn

    load_dotenv()
    cfg = load_config()

    logger.info("Starting server on %s:%d", cfg.server.host, cfg.server.port)
    uvicorn.run(
        "docent.gateway.server:app",
        host=cfg.server.host,
        port=cfg.server.port,
        reload=False,
    )


if __name__ == "__main__":
    run_server()
