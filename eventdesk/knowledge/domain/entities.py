"""
Knowledge Domain Entities
=========================

Pure Python domain entities for event reference documents.

A Document is the uploaded file; Chunks are the retrievable passages
produced from it by the ingestion pipeline.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from eventdesk.config import DocumentStatus


@dataclass
class Document:
    """
    Document entity representing an organizer-supplied reference file.

    Created on upload with status ``pending`` and mutated only by the
    ingestion pipeline afterwards.
    """

    id: str
    event_id: str
    filename: str
    storage_url: str
    uploaded_at: datetime
    status: str = DocumentStatus.PENDING
    chunk_count: int = 0
    processed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None

    def __post_init__(self):
        if self.chunk_count < 0:
            raise ValueError("chunk_count cannot be negative")

    @property
    def is_processing(self) -> bool:
        return self.status == DocumentStatus.PROCESSING

    @property
    def is_searchable(self) -> bool:
        """
        True while the stored chunks are a complete, intact version.

        A failed re-ingestion that never touched the chunks keeps the last
        good ``chunk_count``; any run that did touch them resets it to 0.
        """
        if self.status == DocumentStatus.READY:
            return True
        return self.status == DocumentStatus.FAILED and self.chunk_count > 0


@dataclass
class Chunk:
    """
    A contiguous passage of a document's text and its embedding.

    ``sequence`` is dense and zero-based within a document.
    """

    id: str
    document_id: str
    event_id: str
    sequence: int
    text: str
    token_estimate: int
    embedding: List[float]
    encoder_version: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        if self.sequence < 0:
            raise ValueError("sequence must be >= 0")

    @property
    def key(self) -> tuple:
        """Upsert identity of the chunk."""
        return (self.document_id, self.sequence)


@dataclass
class ScoredChunk:
    """A chunk returned by a corpus search together with its cosine score."""

    chunk: Chunk
    score: float

    @property
    def document_id(self) -> str:
        return self.chunk.document_id

    @property
    def sequence(self) -> int:
        return self.chunk.sequence


@dataclass
class AutoAnswer:
    """
    Outcome of the answer engine for one question.

    Both fields are None when the engine declines; ``decline_reason``
    says why.
    """

    auto_answer: Optional[str] = None
    score: Optional[float] = None
    decline_reason: Optional[str] = None
    sources: List[ScoredChunk] = field(default_factory=list)

    @property
    def answered(self) -> bool:
        return self.auto_answer is not None

    @classmethod
    def declined(cls, reason: str) -> "AutoAnswer":
        return cls(auto_answer=None, score=None, decline_reason=reason)
