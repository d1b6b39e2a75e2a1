"""
Unit tests for connection.py - Database engine and Gemini configuration.
"""

import pytest
import os
from unittest.mock import Mock, patch

import sys
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from connection import Connections, DatabaseConnectionError, GeminiConnectionError
from tests.test_logger import test_logger


class TestConnections:
    """Test suite for Connections class."""

    def setup_method(self):
        test_logger.log_section("TESTING: connection.py - Connections Class")

    def test_connections_init(self):
        test_logger.log_test_start("connection.py", "Connections.__init__", "initialization")

        try:
            conn = Connections()
            assert conn._engine is None
            assert conn._gemini_configured is False

            test_logger.log_test_pass("connection.py", "Connections.__init__", "initialization")
        except Exception as e:
            test_logger.log_test_fail("connection.py", "Connections.__init__", "initialization", str(e))
            raise

    def test_engine_is_cached(self):
        test_logger.log_test_start("connection.py", "Connections.get_engine", "singleton")

        try:
            conn = Connections("sqlite://")
            engine1 = conn.get_engine()
            engine2 = conn.get_engine()

            assert engine1 is engine2
            assert engine1.dialect.name == "sqlite"
            conn.dispose()
            assert conn._engine is None

            test_logger.log_test_pass("connection.py", "Connections.get_engine", "singleton")
        except Exception as e:
            test_logger.log_test_fail("connection.py", "Connections.get_engine", "singleton", str(e))
            raise

    @patch.dict(os.environ, {'DATABASE_URL': 'sqlite://'})
    def test_engine_url_from_env(self):
        test_logger.log_test_start("connection.py", "Connections.get_engine", "env_url")

        try:
            conn = Connections()
            assert str(conn.get_engine().url) == "sqlite://"
            conn.dispose()

            test_logger.log_test_pass("connection.py", "Connections.get_engine", "env_url")
        except Exception as e:
            test_logger.log_test_fail("connection.py", "Connections.get_engine", "env_url", str(e))
            raise

    def test_invalid_url_raises(self):
        test_logger.log_test_start("connection.py", "Connections.get_engine", "invalid_url")

        try:
            conn = Connections("not a database url")
            with pytest.raises(DatabaseConnectionError):
                conn.get_engine()

            test_logger.log_test_pass("connection.py", "Connections.get_engine", "invalid_url")
        except Exception as e:
            test_logger.log_test_fail("connection.py", "Connections.get_engine", "invalid_url", str(e))
            raise

    def test_database_connection_success(self):
        test_logger.log_test_start("connection.py", "test_database_connection", "success")

        try:
            conn = Connections("sqlite://")
            result = conn.test_database_connection()

            assert result["success"] is True
            assert result["dialect"] == "sqlite"
            assert "duration_ms" in result
            conn.dispose()

            test_logger.log_test_pass("connection.py", "test_database_connection", "success")
        except Exception as e:
            test_logger.log_test_fail("connection.py", "test_database_connection", "success", str(e))
            raise

    def test_database_connection_failure(self):
        test_logger.log_test_start("connection.py", "test_database_connection", "failure")

        try:
            conn = Connections("sqlite://")
            mock_engine = Mock()
            mock_engine.connect.side_effect = RuntimeError("Connection refused")
            conn._engine = mock_engine

            result = conn.test_database_connection()

            assert result["success"] is False
            assert result["exception_type"] == "RuntimeError"
            assert result["exception_message"] == "Connection refused"
            assert "raw_error" in result

            test_logger.log_test_pass("connection.py", "test_database_connection", "failure")
        except Exception as e:
            test_logger.log_test_fail("connection.py", "test_database_connection", "failure", str(e))
            raise

    @patch.dict(os.environ, {'GEMINI_API_KEY': 'test_key'})
    @patch('connection.genai.configure')
    def test_configure_gemini_once(self, mock_configure):
        test_logger.log_test_start("connection.py", "configure_gemini", "once")

        try:
            conn = Connections()
            assert conn.configure_gemini() is True
            assert conn.configure_gemini() is True

            mock_configure.assert_called_once_with(api_key='test_key')

            test_logger.log_test_pass("connection.py", "configure_gemini", "once")
        except Exception as e:
            test_logger.log_test_fail("connection.py", "configure_gemini", "once", str(e))
            raise

    @patch.dict(os.environ, {'GEMINI_API_KEY': ''})
    def test_configure_gemini_missing_key(self):
        test_logger.log_test_start("connection.py", "configure_gemini", "missing_key")

        try:
            with pytest.raises(GeminiConnectionError):
                Connections().configure_gemini()

            test_logger.log_test_pass("connection.py", "configure_gemini", "missing_key")
        except Exception as e:
            test_logger.log_test_fail("connection.py", "configure_gemini", "missing_key", str(e))
            raise

    @patch.dict(os.environ, {'GEMINI_API_KEY': ''})
    def test_health_check(self):
        test_logger.log_test_start("connection.py", "health_check", "raw_results")

        try:
            conn = Connections("sqlite://")
            status = conn.health_check()

            assert status["database"]["healthy"] is True
            assert status["gemini"]["healthy"] is False
            assert status["gemini"]["details"]["exception_type"] == "GeminiConnectionError"
            conn.dispose()

            test_logger.log_test_pass("connection.py", "health_check", "raw_results")
        except Exception as e:
            test_logger.log_test_fail("connection.py", "health_check", "raw_results", str(e))
            raise
