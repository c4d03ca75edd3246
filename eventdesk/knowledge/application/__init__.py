"""
Knowledge Application Layer
===========================

Application layer for the knowledge module.

Contains:
- Services: ingestion pipeline, corpus search, answer engine, document bookkeeping
- Interfaces: repositories and external capabilities the services depend on
- DTOs: Pydantic models for callers

This layer depends on the domain layer and the interfaces it declares,
but not on concrete infrastructure implementations.
"""

from eventdesk.knowledge.application.dto import (
    UploadDocumentRequest,
    SearchRequest,
    DocumentDTO,
    ChunkDTO,
    SearchHitDTO,
)
from eventdesk.knowledge.application.services import (
    IDocumentRepository,
    IChunkRepository,
    IEmbedder,
    ITextGenerator,
    IBlobStore,
    IIngestionQueue,
    IngestionJob,
    CorpusIndex,
    IngestionService,
    AnswerEngine,
    DocumentService,
)

__all__ = [
    # DTOs
    "UploadDocumentRequest",
    "SearchRequest",
    "DocumentDTO",
    "ChunkDTO",
    "SearchHitDTO",
    # Interfaces
    "IDocumentRepository",
    "IChunkRepository",
    "IEmbedder",
    "ITextGenerator",
    "IBlobStore",
    "IIngestionQueue",
    "IngestionJob",
    # Services
    "CorpusIndex",
    "IngestionService",
    "AnswerEngine",
    "DocumentService",
]
