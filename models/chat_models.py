"""
Data models for Messenger webhook payloads and chat-related entities.
"""

from typing import List, Dict, Any, Optional
from pydantic import BaseModel, Field


class WebhookSender(BaseModel):
    """Page-scoped id of the user who sent the event."""
    id: str


class WebhookMessage(BaseModel):
    """Message part of a messaging event."""
    mid: Optional[str] = None
    text: Optional[str] = None
    is_echo: bool = False
    attachments: List[Dict[str, Any]] = Field(default_factory=list)


class MessagingEvent(BaseModel):
    """A single messaging event inside a webhook entry."""
    sender: WebhookSender
    recipient: Optional[Dict[str, Any]] = None
    timestamp: Optional[int] = None
    message: Optional[WebhookMessage] = None

    @property
    def is_user_message(self) -> bool:
        """True for messages written by a user (not echoes of the page's own sends)."""
        return self.message is not None and not self.message.is_echo


class WebhookEntry(BaseModel):
    """One entry of a page webhook call."""
    id: Optional[str] = None
    time: Optional[int] = None
    messaging: List[MessagingEvent] = Field(default_factory=list)


class WebhookPayload(BaseModel):
    """Body of a POST /webhook call."""
    object: str
    entry: List[WebhookEntry] = Field(default_factory=list)


class TestMessageRequest(BaseModel):
    """Manual message injection for the test endpoints."""
    __test__ = False

    psid: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)


class HandleResult(BaseModel):
    """Outcome of one message-processing cycle."""
    success: bool
    error_kind: Optional[str] = None
    reply_parts: int = 0
    sources: int = 0


class SearchResponse(BaseModel):
    """Diagnostic search response."""
    query: str
    keywords: List[str] = Field(default_factory=list)
    results: List[Dict[str, Any]] = Field(default_factory=list)
