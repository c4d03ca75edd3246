"""
Knowledge Infrastructure Layer
==============================

Infrastructure implementations for the knowledge module.

Contains:
- Models: SQLAlchemy ORM models
- Repositories: SQLAlchemy and in-memory data access
- External: LLM adapters and the ingestion worker pool
"""

from eventdesk.knowledge.infrastructure.models import DocumentModel, ChunkModel
from eventdesk.knowledge.infrastructure.repositories import (
    SQLAlchemyDocumentRepository,
    SQLAlchemyChunkRepository,
    InMemoryDocumentRepository,
    InMemoryChunkRepository,
)
from eventdesk.knowledge.infrastructure.external import (
    LLMEmbedder,
    LLMTextGenerator,
    IngestionWorkerPool,
)

__all__ = [
    "DocumentModel",
    "ChunkModel",
    "SQLAlchemyDocumentRepository",
    "SQLAlchemyChunkRepository",
    "InMemoryDocumentRepository",
    "InMemoryChunkRepository",
    "LLMEmbedder",
    "LLMTextGenerator",
    "IngestionWorkerPool",
]
