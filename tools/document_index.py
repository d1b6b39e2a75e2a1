"""
Structural indexing of the reference document.

The guide is plain extracted text. Lines are classified in a single forward
pass as chapter headers, section headers or content; content lines are
buffered into chunks that carry the chapter/section active where they
appear. The resulting sequence is held by DocumentIndex and replaced as a
whole on reload.
"""

import re
import time
import unicodedata
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

from models import Chunk, ChunkKind, IndexStats
from logger import get_logger

logger = get_logger(__name__)

CHAPTER_MARKER = "Chương"
SECTION_HEADER_PATTERN = re.compile(r"^\d+\.\d+\.?\s")
MAX_CONTENT_CHARS = 1500


class IndexingError(Exception):
    """Raised when the document source cannot be read."""
    pass


def is_chapter_header(line: str) -> bool:
    """A chapter header carries the chapter marker and a colon on the same line."""
    return CHAPTER_MARKER in line and ":" in line


def is_section_header(line: str) -> bool:
    """A section header starts with '<int>.<int>', an optional period, then whitespace."""
    return SECTION_HEADER_PATTERN.match(line) is not None


class DocumentIndexer:
    """Splits raw document text into an ordered list of labeled chunks."""

    def __init__(self, max_content_chars: int = MAX_CONTENT_CHARS):
        self.max_content_chars = max_content_chars

    def index(self, raw_text: str) -> List[Chunk]:
        """
        Index raw document text.

        Args:
            raw_text: Pre-extracted plain text, newline-delimited

        Returns:
            Chunks in document order
        """
        chunks: List[Chunk] = []
        current_chapter = ""
        current_section = ""
        buffer = ""

        def flush(chapter: str, section: str) -> None:
            content = buffer.strip()
            if content:
                chunks.append(Chunk(
                    chapter_label=chapter,
                    section_label=section,
                    content=content,
                    kind=ChunkKind.CONTENT
                ))

        lines = [line.strip() for line in (raw_text or "").split("\n")]
        lines = [line for line in lines if line]

        for line in lines:
            if is_chapter_header(line):
                flush(current_chapter, current_section)
                buffer = ""
                current_chapter = line
                current_section = ""
                chunks.append(Chunk(
                    chapter_label=current_chapter,
                    section_label=current_section,
                    content=line,
                    kind=ChunkKind.CHAPTER_INTRO
                ))
                logger.debug("Found chapter", chapter=line)

            elif is_section_header(line):
                flush(current_chapter, current_section)
                buffer = ""
                current_section = line
                chunks.append(Chunk(
                    chapter_label=current_chapter,
                    section_label=current_section,
                    content=line,
                    kind=ChunkKind.SECTION_HEADER
                ))

            else:
                buffer += line + "\n"
                if len(buffer) > self.max_content_chars:
                    flush(current_chapter, current_section)
                    buffer = ""

        flush(current_chapter, current_section)

        logger.debug("Document indexed", lines=len(lines), chunks=len(chunks))
        return chunks


class DocumentIndex:
    """
    Holds the current chunk sequence of the reference document.

    The sequence is an immutable tuple published by a single reference
    assignment, so readers always see either the old or the new sequence
    in full and never need a lock.
    """

    def __init__(self, path: Optional[str] = None, indexer: Optional[DocumentIndexer] = None):
        self.path = path
        self.indexer = indexer or DocumentIndexer()
        self._chunks: Tuple[Chunk, ...] = ()
        self._source: Optional[str] = None
        self._loaded_at: Optional[datetime] = None

    @property
    def chunks(self) -> Tuple[Chunk, ...]:
        """Snapshot of the current sequence."""
        return self._chunks

    @property
    def is_loaded(self) -> bool:
        return self._loaded_at is not None

    @property
    def source(self) -> Optional[str]:
        return self._source

    @property
    def loaded_at(self) -> Optional[datetime]:
        return self._loaded_at

    def load_text(self, raw_text: str, source: str = "<memory>") -> int:
        """Index supplied text and publish it. Returns the number of chunks."""
        text = unicodedata.normalize("NFC", raw_text or "")
        new_chunks = tuple(self.indexer.index(text))
        self._publish(new_chunks, source)
        return len(new_chunks)

    def load(self, path: Optional[str] = None) -> bool:
        """
        Load and index the document at `path` (or the configured path).

        On failure the previous sequence stays in place.

        Returns:
            True if a new sequence was published
        """
        target = path or self.path
        start_time = time.time()
        try:
            raw_text = self._read(target)
            count = self.load_text(raw_text, source=str(target))
        except IndexingError as e:
            logger.error(f"Document indexing failed: {str(e)}", kept_chunks=len(self._chunks))
            return False

        self.path = target
        duration = (time.time() - start_time) * 1000
        logger.info(
            "Document indexed",
            source=str(target),
            chunks=count,
            chars=len(raw_text),
            duration_ms=round(duration, 2)
        )
        return True

    def reload(self) -> bool:
        """Re-read the configured document source."""
        return self.load(self.path)

    def _read(self, path: Optional[str]) -> str:
        if not path:
            raise IndexingError("No document path configured")
        file_path = Path(path)
        if not file_path.is_file():
            raise IndexingError(f"File not found: {file_path}")
        try:
            return file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise IndexingError(f"Cannot read {file_path}: {str(e)}") from e

    def _publish(self, chunks: Tuple[Chunk, ...], source: str) -> None:
        self._chunks = chunks
        self._source = source
        self._loaded_at = datetime.now(timezone.utc)

    def chapters(self) -> List[str]:
        """Distinct chapter labels in document order."""
        seen = []
        for chunk in self._chunks:
            if chunk.chapter_label and chunk.chapter_label not in seen:
                seen.append(chunk.chapter_label)
        return seen

    def chunks_by_chapter(self, chapter: str) -> List[Chunk]:
        """Chunks whose chapter label contains `chapter` (case-insensitive)."""
        needle = (chapter or "").lower()
        return [chunk for chunk in self._chunks if needle in chunk.chapter_label.lower()]

    def stats(self) -> IndexStats:
        """Chunk count, size distribution and per-kind counts."""
        chunks = self._chunks
        if not chunks:
            return IndexStats(source=self._source, loaded_at=self._loaded_at)

        sizes = [len(chunk.content) for chunk in chunks]
        by_kind = {kind.value: 0 for kind in ChunkKind}
        for chunk in chunks:
            by_kind[chunk.kind.value] += 1

        return IndexStats(
            total_chunks=len(chunks),
            min_size=min(sizes),
            max_size=max(sizes),
            avg_size=round(sum(sizes) / len(sizes), 2),
            by_kind=by_kind,
            chapter_count=len(self.chapters()),
            source=self._source,
            loaded_at=self._loaded_at
        )
