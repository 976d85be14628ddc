"""Resume chunking for embedding and tag extraction

Splits document text into fixed-size character windows that overlap, so a
sentence cut at one boundary still appears whole in the neighbouring chunk.
Window ends prefer paragraph, then line, then word boundaries.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_SEPARATORS: Tuple[str, ...] = ("\n\n", "\n", " ")


@dataclass
class TextChunk:
    """Represents a chunk of document content"""
    chunk_id: str
    text: str
    start_index: int
    end_index: int
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ChunkingConfig:
    """Configuration for document chunking"""
    chunk_size: int = 1000
    chunk_overlap: int = 200
    separators: Tuple[str, ...] = DEFAULT_SEPARATORS

    def __post_init__(self):
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if not 0 <= self.chunk_overlap < self.chunk_size:
            raise ValueError("chunk_overlap must be >= 0 and smaller than chunk_size")


class ResumeChunker:
    """Sliding-window character chunker"""

    def __init__(self, config: Optional[ChunkingConfig] = None):
        self.config = config or ChunkingConfig()

    def chunk(self, text: str) -> List[TextChunk]:
        """Split ``text`` into overlapping chunks of at most ``chunk_size`` characters."""
        chunks: List[TextChunk] = []
        size, overlap = self.config.chunk_size, self.config.chunk_overlap
        n = len(text)
        start = 0

        while start < n:
            end = min(start + size, n)
            if end < n:
                end = self._find_break(text, start, end)

            piece = text[start:end]
            stripped = piece.strip()
            if stripped:
                lead = len(piece) - len(piece.lstrip())
                chunks.append(TextChunk(
                    chunk_id=f"chunk_{len(chunks):03d}",
                    text=stripped,
                    start_index=start + lead,
                    end_index=start + lead + len(stripped),
                    metadata={'strategy': 'sliding_window', 'char_count': len(stripped)}
                ))

            if end >= n:
                break
            start = self._next_start(text, start, end, overlap)

        logger.debug("Chunked %d chars into %d chunks", n, len(chunks))
        return chunks

    def _find_break(self, text: str, start: int, end: int) -> int:
        """Last separator position inside the window, past the overlap zone."""
        floor = start + self.config.chunk_overlap + 1
        for sep in self.config.separators:
            idx = text.rfind(sep, floor, end)
            if idx != -1:
                return idx + len(sep)
        return end

    @staticmethod
    def _next_start(text: str, start: int, end: int, overlap: int) -> int:
        nxt = max(end - overlap, start + 1)
        # Don't begin the next window mid-word when a boundary is close by
        if overlap and 0 < nxt < end and not text[nxt - 1].isspace():
            for i in range(nxt, end):
                if text[i].isspace():
                    return i + 1 if i + 1 < end else nxt
        return nxt


def join_chunks(chunks: List[TextChunk]) -> str:
    """Concatenate chunk texts the way the extraction prompt expects them."""
    return "\n\n".join(c.text for c in chunks)


def create_resume_chunker(config: Optional[ChunkingConfig] = None) -> ResumeChunker:
    """Factory function to create a configured resume chunker"""
    return ResumeChunker(config)
