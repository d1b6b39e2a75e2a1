"""
Keyword relevance ranking over the indexed reference document.

Chunks are scored by which structural field a query keyword appears in
(chapter label, section label, content), with an extra boost when the
query and the chapter both name one of the supported public-service
applications.
"""

from typing import Any, Dict, List, Optional, Sequence
import time
import unicodedata

from models import Chunk, ScoredChunk
from tools.keywords import extract_keywords
from tools.document_index import DocumentIndex
from logger import get_logger

logger = get_logger(__name__)

CHAPTER_WEIGHT = 3.0
SECTION_WEIGHT = 2.0
CONTENT_WEIGHT = 1.0

# Application names recognized in both the query and the chapter label
KNOWN_APP_NAMES = ("vneid", "vssid", "etax", "dịch vụ công", "sổ tay đảng viên")
APP_NAME_BONUS = 5.0

SHORT_CHUNK_CHARS = 50
SHORT_CHUNK_PENALTY = 0.5


def score_chunk(chunk: Chunk, keywords: Sequence[str], query_lower: str) -> float:
    """
    Relevance of one chunk for a query's keywords.

    Args:
        chunk: Chunk to score
        keywords: Keywords extracted from the query
        query_lower: Lower-cased query, used for application-name boosts

    Returns:
        Non-negative score
    """
    chapter = chunk.chapter_label.lower()
    section = chunk.section_label.lower()
    content = chunk.content.lower()

    score = 0.0
    for keyword in keywords:
        if keyword in chapter:
            score += CHAPTER_WEIGHT
        if keyword in section:
            score += SECTION_WEIGHT
        if keyword in content:
            score += CONTENT_WEIGHT

    for app_name in KNOWN_APP_NAMES:
        if app_name in query_lower and app_name in chapter:
            score += APP_NAME_BONUS

    if len(chunk.content) < SHORT_CHUNK_CHARS:
        score *= SHORT_CHUNK_PENALTY

    return score


def search(chunks: Optional[Sequence[Chunk]], query: str, top_k: int) -> List[ScoredChunk]:
    """
    Rank chunks against a query and return the best `top_k`.

    Chunks without any keyword overlap are dropped. Ties keep document order.

    Raises:
        ValueError: If top_k is not positive
    """
    if top_k <= 0:
        raise ValueError(f"top_k must be positive, got {top_k}")
    if not chunks:
        return []

    query_lower = unicodedata.normalize("NFC", query or "").lower()
    keywords = sorted(extract_keywords(query_lower))

    scored = []
    for chunk in chunks:
        score = score_chunk(chunk, keywords, query_lower)
        if score > 0:
            scored.append(ScoredChunk.from_chunk(chunk, score))

    # sorted() is stable, so equal scores stay in document order
    scored = sorted(scored, key=lambda item: item.relevance_score, reverse=True)
    return scored[:top_k]


def format_context(results: Sequence[ScoredChunk]) -> str:
    """Render ranked chunks as the reference block placed before the user's message."""
    if not results:
        return ""

    context_parts = []
    for idx, result in enumerate(results, 1):
        context_parts.append(
            f"[Source {idx} - Relevance: {result.relevance_score:.2f}]\n"
            f"Chapter: {result.chapter_label or '-'}\n"
            f"Section: {result.section_label or '-'}\n"
            f"Content: {result.content}"
        )

    return "\n\n".join(context_parts)


class RAGTool:
    """Handles keyword retrieval against the in-memory document index."""

    def __init__(self, document_index: DocumentIndex):
        """
        Initialize RAG tool.

        Args:
            document_index: Holder of the current chunk sequence
        """
        self.document_index = document_index

    def rag_query(self, query: str, top_k: int = 3) -> Dict[str, Any]:
        """
        Retrieve the most relevant chunks for a query.

        Args:
            query: The user's message (required, non-empty string)
            top_k: Number of results to retrieve (1-20)

        Returns:
            Dictionary with chunks, success flag, and optional error
        """
        if not query or not isinstance(query, str):
            logger.warning("Invalid query provided", query_type=type(query).__name__)
            return self._error_response("Invalid query: must be a non-empty string")

        query = query.strip()
        if not query:
            return self._error_response("Invalid query: cannot be empty or whitespace only")

        top_k = max(1, min(20, top_k))

        start_time = time.time()
        chunks = self.document_index.chunks
        if not chunks:
            logger.warning("Document index is empty, no context available")
            return self._success_response([])

        try:
            results = search(chunks, query, top_k)
        except Exception as e:
            logger.error(f"Retrieval failed: {str(e)}", exc_info=True)
            return self._error_response(f"Query failed: {str(e)}")

        duration = (time.time() - start_time) * 1000
        logger.retrieval(
            keywords=len(extract_keywords(query)),
            candidates=len(chunks),
            results_count=len(results),
            duration_ms=duration,
            top_scores=[r.relevance_score for r in results]
        )
        return self._success_response(results)

    def _error_response(self, error: str) -> Dict[str, Any]:
        """Create a standardized error response."""
        return {
            "chunks": [],
            "success": False,
            "error": error
        }

    def _success_response(self, chunks: List[ScoredChunk]) -> Dict[str, Any]:
        """Create a standardized success response."""
        return {
            "chunks": chunks,
            "success": True,
            "error": None
        }
