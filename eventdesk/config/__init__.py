"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator, model_validator
from functools import lru_cache
from pathlib import Path
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="eventdesk", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Database ==========
    database_url: str = Field(
        default="sqlite+aiosqlite:///./eventdesk.db",
        description="Async SQLAlchemy URL (postgresql+asyncpg://... in production)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)
    db_echo: bool = Field(default=False, description="Echo SQL statements")

    # ========== Blob Storage ==========
    blob_backend: str = Field(default="local", description="Blob store backend: local or memory")
    blob_storage_path: Path = Field(
        default=Path("./blobs"),
        description="Root directory for the local blob store"
    )

    # ========== LLM / Embeddings ==========
    llm_provider: str = Field(default="mock", description="LLM provider: openai or mock")
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    openai_base_url: Optional[str] = Field(
        default=None,
        description="Base URL for an OpenAI-compatible API"
    )
    llm_model: str = Field(default="gpt-4o-mini", description="Chat model used for answers")
    embedding_model: str = Field(
        default="text-embedding-3-small",
        description="Embedding model used for chunks and questions"
    )
    embedding_dimension: int = Field(default=256, description="Embedding vector dimension", ge=8)
    encoder_version: Optional[str] = Field(
        default=None,
        description="Tag stored on every chunk; defaults to provider:model:dimension"
    )
    llm_temperature: float = Field(
        default=0.2,
        description="Temperature for answer generation",
        ge=0.0,
        le=1.0
    )
    llm_max_tokens: int = Field(
        default=500,
        description="Max tokens for a generated answer",
        ge=1,
        le=8000
    )

    # ========== Ingestion Policy ==========
    chunk_window_size: int = Field(default=200, description="Chunk window in word tokens", ge=1)
    chunk_overlap: int = Field(default=40, description="Overlap between windows in word tokens", ge=0)
    ingestion_workers: int = Field(default=2, description="Background ingestion workers", ge=1)
    extraction_timeout_seconds: float = Field(default=60.0, description="Text extraction timeout", gt=0)
    embedding_timeout_seconds: float = Field(default=20.0, description="Per-passage embedding timeout", gt=0)

    # ========== Answer Policy ==========
    answer_top_k: int = Field(default=5, description="Passages retrieved per question", ge=1, le=50)
    min_confidence: float = Field(
        default=0.75,
        description="Best similarity required before answering automatically"
    )
    max_context_tokens: int = Field(
        default=1200,
        description="Word-token budget for the generation context",
        ge=1
    )
    generation_timeout_seconds: float = Field(default=30.0, description="Answer generation timeout", gt=0)

    # ========== Notifications ==========
    notification_webhook_url: Optional[str] = Field(
        default=None,
        description="Webhook receiving answered tickets"
    )
    notification_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for webhook calls",
        ge=0.1,
        le=30
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("llm_provider")
    @classmethod
    def validate_llm_provider(cls, v: str) -> str:
        allowed = {"openai", "mock"}
        if v not in allowed:
            raise ValueError(f"llm_provider must be one of {allowed}")
        return v

    @field_validator("blob_backend")
    @classmethod
    def validate_blob_backend(cls, v: str) -> str:
        allowed = {"local", "memory"}
        if v not in allowed:
            raise ValueError(f"blob_backend must be one of {allowed}")
        return v

    @field_validator("min_confidence")
    @classmethod
    def validate_min_confidence(cls, v: float) -> float:
        """Threshold must sit strictly between 0 and 1."""
        if not 0.0 < v < 1.0:
            raise ValueError("min_confidence must be in (0, 1)")
        return v

    @model_validator(mode="after")
    def validate_chunk_policy(self) -> "Settings":
        if self.chunk_overlap >= self.chunk_window_size:
            raise ValueError("chunk_overlap must be smaller than chunk_window_size")
        return self

    @property
    def resolved_encoder_version(self) -> str:
        """Encoder tag recorded on chunks and checked on queries."""
        if self.encoder_version:
            return self.encoder_version
        return f"{self.llm_provider}:{self.embedding_model}:{self.embedding_dimension}"


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class DocumentStatus(str):
    """Document processing statuses."""
    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


class TicketStatus(str):
    """Ticket lifecycle statuses."""
    OPEN = "open"
    ANSWERED = "answered"
    FLAGGED = "flagged"
    CLOSED = "closed"


class DocumentFormat(str):
    """Formats the extractor understands."""
    PDF = "pdf"
    DOCX = "docx"
    TXT = "txt"


# ========== Lists for validation ==========

VALID_DOCUMENT_STATUSES = [
    DocumentStatus.PENDING, DocumentStatus.PROCESSING,
    DocumentStatus.READY, DocumentStatus.FAILED
]
VALID_TICKET_STATUSES = [
    TicketStatus.OPEN, TicketStatus.ANSWERED,
    TicketStatus.FLAGGED, TicketStatus.CLOSED
]
SUPPORTED_FORMATS = [DocumentFormat.PDF, DocumentFormat.DOCX, DocumentFormat.TXT]

# Statuses from which an ingestion run may claim a document
CLAIMABLE_DOCUMENT_STATUSES = [
    DocumentStatus.PENDING, DocumentStatus.READY, DocumentStatus.FAILED
]
