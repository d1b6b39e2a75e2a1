"""
Data models for indexed document chunks and retrieval results.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, Optional
from pydantic import BaseModel, ConfigDict, Field


class ChunkKind(str, Enum):
    """How a chunk was produced by the structural indexer."""
    CHAPTER_INTRO = "chapter_intro"
    SECTION_HEADER = "section_header"
    CONTENT = "content"


class Chunk(BaseModel):
    """A labeled, ordered unit of document text."""
    model_config = ConfigDict(frozen=True)

    chapter_label: str = ""
    section_label: str = ""
    content: str
    kind: ChunkKind = ChunkKind.CONTENT


class ScoredChunk(Chunk):
    """A chunk with the relevance score computed for one query."""
    relevance_score: float = Field(..., ge=0.0)

    @classmethod
    def from_chunk(cls, chunk: Chunk, score: float) -> "ScoredChunk":
        return cls(**chunk.model_dump(), relevance_score=score)


class IndexStats(BaseModel):
    """Diagnostic statistics about the current chunk sequence."""
    total_chunks: int = 0
    min_size: int = 0
    max_size: int = 0
    avg_size: float = 0.0
    by_kind: Dict[str, int] = Field(default_factory=dict)
    chapter_count: int = 0
    source: Optional[str] = None
    loaded_at: Optional[datetime] = None
