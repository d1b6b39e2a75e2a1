"""Retrieval tools for the Public Service Chatbot."""

from .keywords import extract_keywords
from .document_index import DocumentIndexer, DocumentIndex, IndexingError
from .rag_tool import RAGTool, search, format_context

__all__ = [
    "extract_keywords",
    "DocumentIndexer", "DocumentIndex", "IndexingError",
    "RAGTool", "search", "format_context"
]
