"""
Knowledge Application DTOs
==========================

Data Transfer Objects for the knowledge module.

Pydantic models validate inbound requests and give callers a stable,
serialisable view of documents, chunks and search hits.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from eventdesk.knowledge.domain import Document, Chunk, ScoredChunk

DocumentStatusStr = Literal["pending", "processing", "ready", "failed"]


# ========== Request DTOs ==========

class UploadDocumentRequest(BaseModel):
    """Request model for a document upload."""
    event_id: str = Field(..., min_length=1, description="Owning event")
    filename: str = Field(..., min_length=1, max_length=255, description="Original filename")
    raw_bytes: bytes = Field(..., description="File content")

    @field_validator("filename")
    @classmethod
    def validate_filename(cls, v: str) -> str:
        """Strip directory components a client may send."""
        name = v.replace("\\", "/").rsplit("/", 1)[-1].strip()
        if not name:
            raise ValueError("filename must not be empty")
        return name

    @field_validator("raw_bytes")
    @classmethod
    def validate_size(cls, v: bytes) -> bytes:
        if len(v) > 25 * 1024 * 1024:
            raise ValueError("File too large (max 25 MB)")
        return v


class SearchRequest(BaseModel):
    """Request model for a corpus search."""
    event_id: str = Field(..., min_length=1)
    question: str = Field(..., min_length=1, max_length=2000)
    k: int = Field(default=5, ge=1, le=50)


# ========== Response DTOs ==========

class DocumentDTO(BaseModel):
    """Document record as returned to callers."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    event_id: str
    filename: str
    storage_url: str
    uploaded_at: datetime
    processed_at: Optional[datetime] = None
    chunk_count: int = 0
    status: DocumentStatusStr
    failure_reason: Optional[str] = None

    @classmethod
    def from_entity(cls, document: Document) -> "DocumentDTO":
        return cls.model_validate(document)


class ChunkDTO(BaseModel):
    """Chunk without its embedding vector."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    document_id: str
    event_id: str
    sequence: int = Field(..., ge=0)
    text: str
    token_estimate: int
    encoder_version: str

    @classmethod
    def from_entity(cls, chunk: Chunk) -> "ChunkDTO":
        return cls.model_validate(chunk)


class SearchHitDTO(BaseModel):
    """One scored search result."""
    chunk: ChunkDTO
    score: float = Field(..., ge=-1.0, le=1.0)

    @classmethod
    def from_scored(cls, scored: ScoredChunk) -> "SearchHitDTO":
        return cls(chunk=ChunkDTO.from_entity(scored.chunk), score=scored.score)
