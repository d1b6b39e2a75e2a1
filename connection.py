"""
Connection utilities for the database and Gemini.

Returns raw SDK exception details in health checks so misconfiguration is
visible from the /health endpoint.
"""

import os
import time
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
import google.generativeai as genai

from logger import get_logger

logger = get_logger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///conversations.db"


class DatabaseConnectionError(Exception):
    """Database connection error - wraps raw SDK exceptions."""
    pass


class GeminiConnectionError(Exception):
    """Gemini connection error."""
    pass


def _is_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:")


class Connections:
    """Manages connections to external services."""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url
        self._engine: Optional[Engine] = None
        self._gemini_configured: bool = False

    def get_engine(self) -> Engine:
        """
        Get or create the SQLAlchemy engine for conversation history.

        In-memory SQLite shares one connection across threads so every
        session sees the same database.
        """
        if self._engine is not None:
            return self._engine

        url = (self.database_url or os.getenv("DATABASE_URL", "") or DEFAULT_DATABASE_URL).strip()
        logger.info(f"[DB] Creating engine for {url.split('@')[-1][:60]}")

        try:
            if _is_memory_sqlite(url):
                self._engine = create_engine(
                    url,
                    connect_args={"check_same_thread": False},
                    poolclass=StaticPool
                )
            elif url.startswith("sqlite"):
                self._engine = create_engine(url, connect_args={"check_same_thread": False})
            else:
                self._engine = create_engine(url, pool_pre_ping=True)
        except Exception as e:
            raise DatabaseConnectionError(f"Cannot create engine: {type(e).__name__}: {str(e)}") from e

        return self._engine

    def test_database_connection(self) -> dict:
        """
        Run a trivial query against the database.

        Returns raw result or raw exception - NO custom messages.
        """
        try:
            engine = self.get_engine()
            start = time.time()
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            duration = (time.time() - start) * 1000

            logger.debug(f"[DB] Connection OK, duration: {duration:.2f}ms")
            return {
                "success": True,
                "dialect": engine.dialect.name,
                "duration_ms": duration
            }

        except Exception as e:
            error_info = {
                "success": False,
                "exception_type": type(e).__name__,
                "exception_message": str(e),
                "raw_error": repr(e)
            }
            logger.error(f"[DB] FAILED: {error_info}")
            return error_info

    def configure_gemini(self, api_key: Optional[str] = None) -> bool:
        """Configure Gemini API."""
        if self._gemini_configured:
            return True

        api_key = (api_key or os.getenv("GEMINI_API_KEY", "")).strip()
        if not api_key:
            raise GeminiConnectionError("GEMINI_API_KEY not set")

        genai.configure(api_key=api_key)
        self._gemini_configured = True
        logger.info("[GEMINI] Configured successfully")
        return True

    def health_check(self) -> dict:
        """Health check - returns raw results."""
        status = {
            "database": {"healthy": False, "details": None},
            "gemini": {"healthy": False, "details": None},
        }

        db_result = self.test_database_connection()
        status["database"] = {
            "healthy": db_result.get("success", False),
            "details": db_result
        }

        try:
            self.configure_gemini()
            status["gemini"] = {"healthy": True, "details": "Configured"}
        except Exception as e:
            status["gemini"] = {
                "healthy": False,
                "details": {"exception_type": type(e).__name__, "message": str(e)}
            }

        return status

    def dispose(self) -> None:
        """Close pooled database connections."""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
