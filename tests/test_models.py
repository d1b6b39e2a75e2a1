"""
Unit tests for data models - Validation and serialization.
"""

import pytest
from pydantic import ValidationError
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models import (
    Chunk, ChunkKind, ScoredChunk, IndexStats,
    WebhookPayload, TestMessageRequest, HandleResult,
    ConversationTurn, HistoryEntry
)
from tests.test_logger import test_logger


class TestDocumentModels:
    """Test suite for chunk models."""

    def setup_method(self):
        test_logger.log_section("TESTING: models/document_models.py")

    def test_chunk_defaults_and_immutability(self):
        test_logger.log_test_start("document_models.py", "Chunk", "defaults_frozen")

        try:
            chunk = Chunk(content="Nội dung")

            assert chunk.chapter_label == ""
            assert chunk.section_label == ""
            assert chunk.kind == ChunkKind.CONTENT
            with pytest.raises(ValidationError):
                chunk.content = "khác"

            test_logger.log_test_pass("document_models.py", "Chunk", "defaults_frozen")
        except Exception as e:
            test_logger.log_test_fail("document_models.py", "Chunk", "defaults_frozen", str(e))
            raise

    def test_scored_chunk(self):
        test_logger.log_test_start("document_models.py", "ScoredChunk", "from_chunk")

        try:
            chunk = Chunk(chapter_label="Chương 1: VNeID", content="Bước 1", kind=ChunkKind.CONTENT)
            scored = ScoredChunk.from_chunk(chunk, 8.0)

            assert scored.relevance_score == 8.0
            assert scored.chapter_label == "Chương 1: VNeID"
            assert scored.model_dump(mode="json")["kind"] == "content"

            with pytest.raises(ValidationError):
                ScoredChunk(content="x", relevance_score=-1.0)

            test_logger.log_test_pass("document_models.py", "ScoredChunk", "from_chunk")
        except Exception as e:
            test_logger.log_test_fail("document_models.py", "ScoredChunk", "from_chunk", str(e))
            raise

    def test_index_stats_defaults(self):
        test_logger.log_test_start("document_models.py", "IndexStats", "defaults")

        try:
            stats = IndexStats()
            assert stats.total_chunks == 0
            assert stats.by_kind == {}
            assert stats.loaded_at is None

            test_logger.log_test_pass("document_models.py", "IndexStats", "defaults")
        except Exception as e:
            test_logger.log_test_fail("document_models.py", "IndexStats", "defaults", str(e))
            raise


class TestChatModels:
    """Test suite for webhook and endpoint models."""

    def setup_method(self):
        test_logger.log_section("TESTING: models/chat_models.py")

    def test_webhook_payload(self):
        test_logger.log_test_start("chat_models.py", "WebhookPayload", "parse")

        try:
            payload = WebhookPayload.model_validate({
                "object": "page",
                "entry": [{
                    "id": "page-1",
                    "time": 1700000000,
                    "messaging": [
                        {"sender": {"id": "u1"}, "recipient": {"id": "page-1"},
                         "message": {"mid": "m1", "text": "Xin chào"}},
                        {"sender": {"id": "page-1"}, "message": {"text": "echo", "is_echo": True}},
                        {"sender": {"id": "u1"}, "delivery": {"mids": ["m1"]}},
                    ]
                }]
            })

            events = payload.entry[0].messaging
            assert events[0].is_user_message is True
            assert events[0].message.text == "Xin chào"
            assert events[1].is_user_message is False
            assert events[2].is_user_message is False

            test_logger.log_test_pass("chat_models.py", "WebhookPayload", "parse")
        except Exception as e:
            test_logger.log_test_fail("chat_models.py", "WebhookPayload", "parse", str(e))
            raise

    def test_test_message_request_validation(self):
        test_logger.log_test_start("chat_models.py", "TestMessageRequest", "validation")

        try:
            request = TestMessageRequest(psid="123", message="VNeID")
            assert request.psid == "123"

            with pytest.raises(ValidationError):
                TestMessageRequest(psid="123", message="")
            with pytest.raises(ValidationError):
                TestMessageRequest(message="hi")

            test_logger.log_test_pass("chat_models.py", "TestMessageRequest", "validation")
        except Exception as e:
            test_logger.log_test_fail("chat_models.py", "TestMessageRequest", "validation", str(e))
            raise

    def test_handle_result(self):
        test_logger.log_test_start("chat_models.py", "HandleResult", "defaults")

        try:
            result = HandleResult(success=True)
            assert result.model_dump() == {
                "success": True,
                "error_kind": None,
                "reply_parts": 0,
                "sources": 0
            }

            test_logger.log_test_pass("chat_models.py", "HandleResult", "defaults")
        except Exception as e:
            test_logger.log_test_fail("chat_models.py", "HandleResult", "defaults", str(e))
            raise


class TestSessionModels:
    """Test suite for conversation models."""

    def setup_method(self):
        test_logger.log_section("TESTING: models/session_model.py")

    def test_conversation_turn(self):
        test_logger.log_test_start("session_model.py", "ConversationTurn", "creation")

        try:
            turn = ConversationTurn(user_id="u1", user_message="Hỏi", bot_response="Đáp")

            assert turn.user_id == "u1"
            assert turn.timestamp is not None

            test_logger.log_test_pass("session_model.py", "ConversationTurn", "creation")
        except Exception as e:
            test_logger.log_test_fail("session_model.py", "ConversationTurn", "creation", str(e))
            raise

    def test_history_entry_roles(self):
        test_logger.log_test_start("session_model.py", "HistoryEntry", "roles")

        try:
            assert HistoryEntry(role="user", text="a").to_backend() == {"role": "user", "parts": ["a"]}
            with pytest.raises(ValidationError):
                HistoryEntry(role="assistant", text="a")

            test_logger.log_test_pass("session_model.py", "HistoryEntry", "roles")
        except Exception as e:
            test_logger.log_test_fail("session_model.py", "HistoryEntry", "roles", str(e))
            raise
