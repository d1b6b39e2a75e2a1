"""
FastAPI application for the Public Service Chatbot.

Messenger webhook front-end: verifies the webhook, acknowledges events
immediately and processes messages in the background, one at a time per
user.
"""

import asyncio
import os
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from functools import partial
from typing import List, Optional, Tuple

from dotenv import load_dotenv

load_dotenv()

from fastapi import BackgroundTasks, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError

from agent import APOLOGY_REPLY, AgentError, PublicServiceAgent
from config import AppConfig, ConfigValidator, validate_config_on_startup
from connection import Connections
from gate import ConversationGate
from history import HistoryStore, HistoryStoreError
from messenger import MessengerClient
from models import SearchResponse, TestMessageRequest, WebhookPayload
from tools import DocumentIndex, extract_keywords, search
from logger import get_logger

logger = get_logger(__name__)

_started_at = time.monotonic()


def _load_config() -> AppConfig:
    """Validated configuration, or best-effort values in degraded mode."""
    try:
        config = validate_config_on_startup()
        logger.info("Configuration validated")
        return config
    except ValueError as e:
        logger.error(f"Configuration validation failed: {e}")
        logger.warning("[STARTUP] Starting in DEGRADED MODE")
        return ConfigValidator().load_config()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Build the single instances of every component and share them through
    app.state. Startup never fails on a missing document, database or key;
    the affected feature is reported by /health instead.
    """
    logger.info("=" * 60)
    logger.info("Starting Public Service Chatbot")
    logger.info("=" * 60)

    config = _load_config()
    app.state.config = config

    connections = Connections(config.database_url)
    app.state.connections = connections

    history_store = HistoryStore(connections.get_engine())
    try:
        history_store.init_schema()
        logger.info("[STARTUP] Conversation table ready")
    except HistoryStoreError as e:
        logger.error(f"[STARTUP] History store unavailable: {e}")
    app.state.history_store = history_store

    document_index = DocumentIndex(config.document_path)
    if not document_index.load():
        logger.warning("[STARTUP] Reference document not indexed - replies will have no context")
    app.state.document_index = document_index

    app.state.gate = ConversationGate()
    app.state.messenger = MessengerClient(
        page_access_token=config.page_access_token,
        api_url=config.graph_api_url,
        max_retries=config.send_max_retries,
        retry_delay=config.send_retry_delay
    )

    try:
        app.state.agent = PublicServiceAgent(
            document_index=document_index,
            history_store=history_store,
            messenger=app.state.messenger,
            config=config
        )
    except AgentError as e:
        logger.error(f"[STARTUP] Agent unavailable: {e}")
        app.state.agent = None

    logger.info(f"[STARTUP] PAGE_ACCESS_TOKEN loaded: {'YES' if config.page_access_token else 'NO'}")
    logger.info(f"[STARTUP] Chunks indexed: {len(document_index.chunks)}")

    yield

    logger.info("Shutting down gracefully")
    gate: ConversationGate = app.state.gate
    if len(gate) > 0:
        logger.info(f"Waiting for {len(gate)} active requests to complete")
        await gate.drain()
    await app.state.messenger.close()
    connections.dispose()
    logger.info("Database connections closed")


app = FastAPI(
    title="Public Service Chatbot API",
    description="Messenger assistant for Vietnamese public-service applications",
    version="1.0.0",
    lifespan=lifespan
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all uncaught exceptions."""
    logger.error(
        f"Unhandled exception: {str(exc)}",
        path=request.url.path,
        method=request.method,
        exc_info=True
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "detail": str(exc) if os.getenv("DEBUG", "").lower() == "true" else None,
            "status_code": 500
        }
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all HTTP requests with timing."""
    start_time = time.time()
    request_id = str(uuid.uuid4())[:8]

    try:
        response = await call_next(request)
    except Exception as e:
        duration = (time.time() - start_time) * 1000
        logger.error(
            f"Request failed: {str(e)}",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            duration_ms=duration
        )
        raise

    duration = (time.time() - start_time) * 1000
    logger.request(
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        duration_ms=duration,
        request_id=request_id
    )
    return response


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _extract_messages(payload: WebhookPayload) -> List[Tuple[str, str]]:
    """
    (sender id, text) pairs of user messages, in delivery order.

    Echoes and non-message events are skipped. Messages without text
    (attachments) are kept with empty text so the user gets the text-only
    reply.
    """
    messages = []
    for entry in payload.entry:
        for event in entry.messaging:
            if not event.is_user_message:
                logger.debug("Skipping non-message event", sender=event.sender.id)
                continue
            text = event.message.text
            if text is None and not event.message.attachments:
                logger.debug("Skipping empty message", sender=event.sender.id)
                continue
            messages.append((event.sender.id, text or ""))
    return messages


async def _send_apology(messenger: MessengerClient, sender_id: str) -> None:
    logger.error("Agent unavailable, sending apology", sender=sender_id)
    await messenger.send_text(sender_id, APOLOGY_REPLY)


async def process_messages(state, messages: List[Tuple[str, str]]) -> None:
    """
    Run every message of a webhook batch through the gate concurrently.

    Tasks are created in arrival order and each one registers with the gate
    before its first suspension, so one user's messages keep their order
    while different users proceed independently.
    """
    agent: Optional[PublicServiceAgent] = state.agent
    gate: ConversationGate = state.gate

    tasks = []
    for sender_id, text in messages:
        if agent is None:
            work = partial(_send_apology, state.messenger, sender_id)
        else:
            work = partial(agent.handle, sender_id, text)
        tasks.append(asyncio.create_task(gate.run_exclusive(sender_id, work)))

    results = await asyncio.gather(*tasks, return_exceptions=True)
    for (sender_id, _), result in zip(messages, results):
        if isinstance(result, Exception):
            logger.error(
                f"Error processing message: {str(result)}",
                sender=sender_id,
                error_type=type(result).__name__
            )


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Public Service Chatbot API",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs"
    }


@app.get("/webhook")
async def verify_webhook(
    request: Request,
    hub_mode: Optional[str] = Query(None, alias="hub.mode"),
    hub_verify_token: Optional[str] = Query(None, alias="hub.verify_token"),
    hub_challenge: Optional[str] = Query(None, alias="hub.challenge")
):
    """Messenger webhook verification handshake."""
    expected = request.app.state.config.verify_token

    if not hub_mode or not hub_verify_token:
        logger.warning("Verification failed: missing mode or token")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    if hub_mode == "subscribe" and expected and hub_verify_token == expected:
        logger.info("WEBHOOK_VERIFIED")
        return PlainTextResponse(hub_challenge or "")

    logger.warning("Verification failed: token mismatch or mode not subscribe", mode=hub_mode)
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")


@app.post("/webhook")
async def receive_webhook(request: Request, background_tasks: BackgroundTasks):
    """Acknowledge a webhook call and process its messages in the background."""
    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body")

    if not isinstance(body, dict) or body.get("object") != "page":
        logger.warning("Not a page object", received=body.get("object") if isinstance(body, dict) else None)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")

    try:
        payload = WebhookPayload.model_validate(body)
    except ValidationError as e:
        logger.warning(f"Malformed webhook payload: {e.error_count()} errors")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed payload")

    messages = _extract_messages(payload)
    logger.info("Webhook received", entries=len(payload.entry), messages=len(messages))

    if messages:
        background_tasks.add_task(process_messages, request.app.state, messages)

    return PlainTextResponse("EVENT_RECEIVED")


@app.get("/health")
async def health_check(request: Request):
    """
    Health check - returns diagnostic info.

    Includes active per-user requests, index status and live connection checks.
    """
    state = request.app.state
    document_index: DocumentIndex = state.document_index

    try:
        services = state.connections.health_check()
    except Exception as e:
        services = {"error": {"healthy": False, "details": f"{type(e).__name__}: {e}"}}

    index_ready = len(document_index.chunks) > 0
    all_healthy = all(s.get("healthy", False) for s in services.values()) and state.agent is not None

    return {
        "status": "healthy" if all_healthy and index_ready else "degraded",
        "timestamp": _now(),
        "uptime_seconds": round(time.monotonic() - _started_at, 2),
        "active_requests": len(state.gate),
        "agent_ready": state.agent is not None,
        "index": {
            "ready": index_ready,
            "chunks": len(document_index.chunks),
            "source": document_index.source
        },
        "live_check": services
    }


@app.post("/test-message")
async def test_message(request: Request, body: TestMessageRequest):
    """Process one message synchronously through the gate and the agent."""
    state = request.app.state
    if state.agent is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Agent unavailable")

    logger.info("Manual test message triggered", psid=body.psid)
    result = await state.gate.run_exclusive(body.psid, partial(state.agent.handle, body.psid, body.message))

    return {
        "success": result.success,
        "result": result.model_dump(),
        "timestamp": _now()
    }


@app.post("/send-test-message")
async def send_test_message(request: Request, body: TestMessageRequest):
    """Send a message directly through the Send API."""
    sent = await request.app.state.messenger.send_text(body.psid, body.message)
    return {
        "success": sent,
        "message": "Message sent!" if sent else "Message failed",
        "timestamp": _now()
    }


@app.get("/admin/chapters")
async def list_chapters(request: Request):
    """Distinct chapter labels of the indexed document."""
    chapters = request.app.state.document_index.chapters()
    return {"chapters": chapters, "count": len(chapters)}


@app.get("/admin/chunks")
async def list_chunks(
    request: Request,
    chapter: str = Query("", description="Substring of the chapter label"),
    limit: int = Query(50, ge=1, le=500)
):
    """Chunks filtered by chapter."""
    chunks = request.app.state.document_index.chunks_by_chapter(chapter)
    return {
        "chapter": chapter,
        "count": len(chunks),
        "chunks": [chunk.model_dump(mode="json") for chunk in chunks[:limit]]
    }


@app.get("/admin/stats")
async def index_stats(request: Request):
    """Indexing statistics."""
    return request.app.state.document_index.stats().model_dump(mode="json")


@app.post("/admin/reload")
async def reload_document(request: Request):
    """Re-index the reference document; the previous index stays on failure."""
    document_index: DocumentIndex = request.app.state.document_index
    success = await asyncio.to_thread(document_index.reload)
    return {
        "success": success,
        "error": None if success else "Document could not be indexed; previous index kept",
        "stats": document_index.stats().model_dump(mode="json"),
        "timestamp": _now()
    }


@app.get("/admin/search", response_model=SearchResponse)
async def search_chunks(
    request: Request,
    q: str = Query(..., min_length=1),
    top_k: int = Query(3, ge=1, le=20)
) -> SearchResponse:
    """Run the retrieval step alone, for inspecting scores."""
    results = search(request.app.state.document_index.chunks, q, top_k)
    return SearchResponse(
        query=q,
        keywords=sorted(extract_keywords(q)),
        results=[result.model_dump(mode="json") for result in results]
    )


if __name__ == "__main__":
    import uvicorn

    config = ConfigValidator().load_config()
    uvicorn.run(
        "app:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level=config.log_level.lower()
    )
