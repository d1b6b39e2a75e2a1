"""
Data models for conversation history.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Literal
from pydantic import BaseModel, Field


class ConversationTurn(BaseModel):
    """Represents a single user message and the reply generated for it."""
    user_id: str
    user_message: str
    bot_response: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class HistoryEntry(BaseModel):
    """One role-tagged message of the backend chat history."""
    role: Literal["user", "model"]
    text: str

    def to_backend(self) -> Dict[str, Any]:
        """Shape expected by the Gemini chat session history."""
        return {"role": self.role, "parts": [self.text]}
