"""
Public Service Assistant using Gemini with keyword retrieval.

This module composes the reply to one user message: it retrieves relevant
passages from the public-service guide, adds the user's recent history,
asks Gemini for an answer, delivers it through Messenger and records the
turn.
"""

import asyncio
import os
import time
from enum import Enum
from typing import Dict, List, Optional, Sequence

import google.generativeai as genai

from config import AppConfig
from history import HistoryStore, HistoryStoreError
from messenger import MessengerClient
from models import HandleResult, HistoryEntry, ScoredChunk
from tools import DocumentIndex, RAGTool, format_context
from logger import get_logger, log_async_function_call

logger = get_logger(__name__)

INVALID_MESSAGE_REPLY = (
    "Xin lỗi, tôi chỉ có thể xử lý tin nhắn văn bản. "
    "Bạn có thể gửi câu hỏi bằng chữ để tôi hỗ trợ bạn nhé! 😊"
)

APOLOGY_REPLY = (
    "Xin lỗi, hiện tại tôi đang gặp sự cố kỹ thuật. "
    "Bạn vui lòng thử lại sau ít phút nhé! 🙏"
)

SYSTEM_PROMPT = """OPERATING PRINCIPLES

## 1. Persona & Role
You are the 'Public Service Assistant', a friendly and knowledgeable consultant on the public service applications of the Vietnamese government. Your purpose is to help every citizen use digital public services easily, confidently and accurately.

## 2. Knowledge Base
Your knowledge focuses on the most popular applications and portals:
- VNeID: electronic identification, document integration, travel declarations.
- VssID: digital social insurance.
- National Public Service Portal (Dịch vụ công): submitting applications, online payments.
- Party Member's Handbook (Sổ tay Đảng viên).
- ETAX: online tax declaration, electronic invoices, personal and corporate income tax finalization.
- Other related applications when the user mentions them.

When the message contains REFERENCE MATERIAL from the user guide, base your answer on it. Every instruction you give MUST be verifiable in the official website or the latest user guide. Never invent steps, buttons or menu names that do not exist.

## 3. Communication Rules
### 3.1 Text formatting
Facebook Messenger does NOT support markdown. Do not use ** or * for emphasis, # for headings, or code fences. Instead:
- Use ALL CAPS to emphasize important keywords
- Put a colon (:) after headings
- Use a hyphen (-) or bullet (•) for lists
- Write plain text only

### 3.2 Tone of voice
- Friendly and patient, like helping a friend with technology.
- Avoid technical terms and administrative jargon; use everyday language.

### 3.3 Emojis
Use emojis to make steps easier to follow: 📱 actions in the app, 🔍 searching, ⚙️ settings, ➡️ sequential steps, ✅ completion, 👋 greetings, 🔧 fixing errors.

### 3.4 Images
Image processing is not available yet. If the user refers to an image, ask them to describe the error or the step they are stuck on in words.

## 4. Important Notes
- All content must be FACTUAL and VERIFIABLE; do NOT invent information.
- You MUST reply in the SAME LANGUAGE the user used.
- Present procedures as numbered STEPS with short bullet points."""


class ErrorKind(str, Enum):
    """Failure categories at the orchestrator boundary."""
    INPUT = "input"
    BACKEND = "backend"
    DELIVERY = "delivery"
    STORAGE = "storage"
    INDEXING = "indexing"
    INTERNAL = "internal"


class UserAction(str, Enum):
    """What the user sees when a failure of a given kind happens."""
    INPUT_REPLY = "input_reply"
    APOLOGY = "apology"
    NONE = "none"


FAILURE_POLICY: Dict[ErrorKind, UserAction] = {
    ErrorKind.INPUT: UserAction.INPUT_REPLY,
    ErrorKind.BACKEND: UserAction.APOLOGY,
    ErrorKind.DELIVERY: UserAction.NONE,
    ErrorKind.STORAGE: UserAction.NONE,
    ErrorKind.INDEXING: UserAction.NONE,
    ErrorKind.INTERNAL: UserAction.APOLOGY,
}


class AgentError(Exception):
    """Custom exception for agent errors."""
    kind = ErrorKind.INTERNAL


class BackendError(AgentError):
    """Gemini call failed or returned no text."""
    kind = ErrorKind.BACKEND


class BackendTimeoutError(BackendError):
    """Gemini did not answer within the configured timeout."""
    pass


def split_message(text: str, max_length: int = 2000) -> List[str]:
    """
    Split a long reply into ordered parts of at most `max_length` characters.

    Lines are kept whole where possible; a line longer than the limit is
    broken at spaces. A single word longer than the limit becomes its own
    part.
    """
    parts: List[str] = []
    current = ""

    for line in text.split("\n"):
        if len(current + line + "\n") <= max_length:
            current += line + "\n"
            continue

        if current:
            parts.append(current.strip())
            current = ""

        if len(line) <= max_length:
            current = line + "\n"
            continue

        temp_line = ""
        for word in line.split(" "):
            if len(temp_line + word + " ") <= max_length:
                temp_line += word + " "
            else:
                if temp_line:
                    parts.append(temp_line.strip())
                temp_line = word + " "

        if temp_line:
            current = temp_line + "\n"

    if current:
        parts.append(current.strip())

    return [part for part in parts if part]


class PublicServiceAgent:
    """
    Answers Messenger users about Vietnamese public-service applications.

    The agent owns no shared state of its own: the document index, history
    store and messenger client are passed in at construction.
    """

    def __init__(
        self,
        document_index: DocumentIndex,
        history_store: HistoryStore,
        messenger: MessengerClient,
        config: Optional[AppConfig] = None
    ):
        """
        Initialize the agent.

        Args:
            document_index: Holder of the indexed reference document
            history_store: Conversation history storage
            messenger: Delivery channel
            config: Application configuration (defaults when omitted)
        """
        self.config = config or AppConfig()
        self.model = self.config.gemini_model_name or os.getenv("GEMINI_MODEL_NAME", "gemini-2.0-flash")
        self.rag_tool = RAGTool(document_index)
        self.history_store = history_store
        self.messenger = messenger
        self._model_instance = None

        gemini_api_key = (self.config.gemini_api_key or os.getenv("GEMINI_API_KEY", "")).strip()
        if not gemini_api_key:
            logger.error("GEMINI_API_KEY not configured")
            raise AgentError("GEMINI_API_KEY environment variable is required")

        try:
            genai.configure(api_key=gemini_api_key)
            logger.info("Agent initialized", model=self.model)
        except Exception as e:
            logger.error(f"Failed to configure Gemini: {str(e)}")
            raise AgentError(f"Failed to configure Gemini API: {str(e)}")

    @property
    def model_instance(self):
        """Lazy-load the model instance."""
        if self._model_instance is None:
            try:
                self._model_instance = genai.GenerativeModel(
                    model_name=self.model,
                    system_instruction=SYSTEM_PROMPT,
                    generation_config={
                        "max_output_tokens": self.config.max_output_tokens,
                        "temperature": self.config.temperature,
                    }
                )
                logger.info(f"Gemini model loaded: {self.model}")
            except Exception as e:
                logger.error(f"Failed to load model: {str(e)}")
                raise BackendError(f"Failed to load Gemini model: {str(e)}")
        return self._model_instance

    async def handle(self, user_id: str, message_text: Optional[str]) -> HandleResult:
        """
        Process one user message end to end.

        Never raises: failures are logged and mapped to a user-visible action
        through FAILURE_POLICY.

        Args:
            user_id: Page-scoped id of the sender
            message_text: Raw message text (None for non-text messages)

        Returns:
            HandleResult describing the outcome
        """
        start_time = time.time()
        message = (message_text or "").strip()

        if not message:
            logger.warning("Invalid message - no text content", user_id=user_id)
            await self._apply_policy(user_id, ErrorKind.INPUT)
            return HandleResult(success=False, error_kind=ErrorKind.INPUT.value)

        logger.info(
            "Processing user message",
            user_id=user_id,
            message_preview=message[:50] + "..." if len(message) > 50 else message
        )

        sources: List[ScoredChunk] = []
        delivered = 0
        try:
            sources = self._retrieve(message)
            history = await self._load_history(user_id)
            prompt = self._build_prompt(message, sources)

            response_text = await self._generate_response(history, prompt)

            delivered = await self._deliver_reply(user_id, response_text)
            await self._save_turn(user_id, message, response_text)

        except AgentError as e:
            logger.error(f"Agent error for {user_id}: {str(e)}", error_kind=e.kind.value)
            await self._apply_policy(user_id, e.kind)
            return HandleResult(
                success=False,
                error_kind=e.kind.value,
                reply_parts=delivered,
                sources=len(sources)
            )

        except Exception as e:
            logger.error(f"Unexpected error processing message for {user_id}: {str(e)}", exc_info=True)
            await self._apply_policy(user_id, ErrorKind.INTERNAL)
            return HandleResult(
                success=False,
                error_kind=ErrorKind.INTERNAL.value,
                reply_parts=delivered,
                sources=len(sources)
            )

        duration = (time.time() - start_time) * 1000
        logger.info(
            "Successfully processed message",
            user_id=user_id,
            reply_parts=delivered,
            sources_count=len(sources),
            duration_ms=round(duration, 2)
        )
        return HandleResult(success=True, reply_parts=delivered, sources=len(sources))

    def _retrieve(self, message: str) -> List[ScoredChunk]:
        """Top-K chunks for the message; retrieval problems just mean no context."""
        rag_result = self.rag_tool.rag_query(message, top_k=self.config.top_k_results)
        if not rag_result["success"]:
            logger.warning(
                "Retrieval failed, continuing without context",
                error=rag_result.get("error"),
                error_kind=ErrorKind.INDEXING.value
            )
            return []
        return rag_result["chunks"]

    async def _load_history(self, user_id: str) -> List[HistoryEntry]:
        """Recent history starting with a user entry; empty if the store fails."""
        try:
            history = await asyncio.to_thread(
                self.history_store.get_history, user_id, self.config.history_limit
            )
        except HistoryStoreError as e:
            logger.error(
                f"Error fetching conversation history: {str(e)}",
                error_kind=ErrorKind.STORAGE.value
            )
            return []

        if history and history[0].role == "model":
            history = history[1:]
        return history

    def _build_prompt(self, message: str, sources: Sequence[ScoredChunk]) -> str:
        """Prepend the retrieved reference material to the user's message."""
        if not sources:
            return message

        context = format_context(sources)
        return (
            "REFERENCE MATERIAL FROM THE USER GUIDE:\n"
            f"{context}\n\n"
            f"USER QUESTION: {message}"
        )

    @log_async_function_call()
    async def _generate_response(self, history: Sequence[HistoryEntry], prompt: str) -> str:
        """Send the prompt to Gemini with a hard timeout."""
        chat = self.model_instance.start_chat(history=[entry.to_backend() for entry in history])

        start_time = time.time()
        try:
            response = await asyncio.wait_for(
                chat.send_message_async(prompt),
                timeout=self.config.backend_timeout_seconds
            )
        except asyncio.TimeoutError:
            raise BackendTimeoutError(
                f"Gemini API timeout after {self.config.backend_timeout_seconds}s"
            )
        except Exception as e:
            raise BackendError(f"Gemini call failed: {type(e).__name__}: {str(e)}")

        try:
            response_text = response.text
        except Exception as e:
            raise BackendError(f"Gemini response has no text: {str(e)}")

        if not response_text:
            raise BackendError("Empty response from model")

        logger.llm_call(
            model=self.model,
            prompt_chars=len(prompt),
            response_chars=len(response_text),
            history_entries=len(history),
            duration_ms=round((time.time() - start_time) * 1000, 2)
        )
        return response_text

    async def _deliver_reply(self, user_id: str, text: str) -> int:
        """Deliver the reply, split into paced parts when it is too long."""
        max_length = self.config.max_message_length
        parts = split_message(text, max_length) if len(text) > max_length else [text]

        delivered = 0
        for index, part in enumerate(parts):
            if await self.messenger.send_text(user_id, part):
                delivered += 1
            else:
                logger.warning(
                    "Reply part was not delivered",
                    user_id=user_id,
                    part=index + 1,
                    total=len(parts),
                    error_kind=ErrorKind.DELIVERY.value
                )
            if index < len(parts) - 1:
                await asyncio.sleep(self.config.message_pause_seconds)

        return delivered

    async def _save_turn(self, user_id: str, message: str, response_text: str) -> None:
        try:
            await asyncio.to_thread(self.history_store.save_turn, user_id, message, response_text)
        except HistoryStoreError as e:
            logger.error(f"Error saving conversation: {str(e)}", error_kind=ErrorKind.STORAGE.value)

    async def _apply_policy(self, user_id: str, kind: ErrorKind) -> None:
        action = FAILURE_POLICY.get(kind, UserAction.APOLOGY)
        if action == UserAction.INPUT_REPLY:
            await self._send_safely(user_id, INVALID_MESSAGE_REPLY)
        elif action == UserAction.APOLOGY:
            await self._send_safely(user_id, APOLOGY_REPLY)

    async def _send_safely(self, user_id: str, text: str) -> bool:
        """Send a canned message; failures are logged and swallowed."""
        try:
            sent = await self.messenger.send_text(user_id, text)
        except Exception as e:
            logger.error(f"Failed to send message to {user_id}: {str(e)}")
            return False
        if not sent:
            logger.error(f"Failed to send message to {user_id}")
        return sent
