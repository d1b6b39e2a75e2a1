"""Data models for the Public Service Chatbot."""

from .document_models import ChunkKind, Chunk, ScoredChunk, IndexStats
from .chat_models import (
    WebhookSender, WebhookMessage, MessagingEvent,
    WebhookEntry, WebhookPayload,
    TestMessageRequest, HandleResult, SearchResponse
)
from .session_model import ConversationTurn, HistoryEntry

__all__ = [
    "ChunkKind", "Chunk", "ScoredChunk", "IndexStats",
    "WebhookSender", "WebhookMessage", "MessagingEvent",
    "WebhookEntry", "WebhookPayload",
    "TestMessageRequest", "HandleResult", "SearchResponse",
    "ConversationTurn", "HistoryEntry"
]
