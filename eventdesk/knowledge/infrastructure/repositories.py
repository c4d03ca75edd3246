"""
Knowledge Infrastructure Repositories
=====================================

Concrete implementations of the knowledge repository interfaces.

The SQLAlchemy repositories open one session per operation from an
``async_sessionmaker``; the in-memory ones back tests and single-process
deployments.
"""

from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from eventdesk.core import RepositoryException
from eventdesk.knowledge.application import IChunkRepository, IDocumentRepository
from eventdesk.knowledge.domain import Chunk, Document
from eventdesk.knowledge.infrastructure.models import ChunkModel, DocumentModel

UPDATABLE_DOCUMENT_FIELDS = frozenset({"status", "chunk_count", "processed_at", "failure_reason"})


def _check_fields(fields: dict) -> None:
    unknown = set(fields) - UPDATABLE_DOCUMENT_FIELDS
    if unknown:
        raise RepositoryException(f"Cannot update document fields: {sorted(unknown)}")


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; stored values are always UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ========== SQLAlchemy ==========

class SQLAlchemyDocumentRepository(IDocumentRepository):
    """SQLAlchemy implementation for documents."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    @staticmethod
    def _to_entity(model: DocumentModel) -> Document:
        return Document(
            id=model.id,
            event_id=model.event_id,
            filename=model.filename,
            storage_url=model.storage_url,
            uploaded_at=_aware(model.uploaded_at),
            status=model.status,
            chunk_count=model.chunk_count,
            processed_at=_aware(model.processed_at),
            failure_reason=model.failure_reason,
        )

    async def get(self, document_id: str) -> Optional[Document]:
        async with self._session_maker() as session:
            model = await session.get(DocumentModel, document_id)
            return self._to_entity(model) if model else None

    async def create(self, document: Document) -> Document:
        model = DocumentModel(
            id=document.id,
            event_id=document.event_id,
            filename=document.filename,
            storage_url=document.storage_url,
            uploaded_at=document.uploaded_at,
            status=document.status,
            chunk_count=document.chunk_count,
            processed_at=document.processed_at,
            failure_reason=document.failure_reason,
        )
        try:
            async with self._session_maker() as session:
                session.add(model)
                await session.commit()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to create document {document.id}: {e}")
        return document

    async def update_fields(
        self,
        document_id: str,
        fields: dict,
        expected_statuses: Optional[Sequence[str]] = None
    ) -> bool:
        _check_fields(fields)
        stmt = update(DocumentModel).where(DocumentModel.id == document_id)
        if expected_statuses is not None:
            stmt = stmt.where(DocumentModel.status.in_(list(expected_statuses)))
        stmt = stmt.values(**fields)

        try:
            async with self._session_maker() as session:
                result = await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to update document {document_id}: {e}")
        return result.rowcount == 1

    async def list_by_event(self, event_id: str) -> List[Document]:
        stmt = (
            select(DocumentModel)
            .where(DocumentModel.event_id == event_id)
            .order_by(DocumentModel.uploaded_at, DocumentModel.id)
        )
        async with self._session_maker() as session:
            result = await session.execute(stmt)
            return [self._to_entity(m) for m in result.scalars().all()]


class SQLAlchemyChunkRepository(IChunkRepository):
    """SQLAlchemy implementation for chunks."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    @staticmethod
    def _to_entity(model: ChunkModel) -> Chunk:
        return Chunk(
            id=model.id,
            document_id=model.document_id,
            event_id=model.event_id,
            sequence=model.sequence,
            text=model.text,
            token_estimate=model.token_estimate,
            embedding=list(model.embedding),
            encoder_version=model.encoder_version,
            created_at=_aware(model.created_at),
        )

    async def upsert(self, chunk: Chunk) -> Chunk:
        stmt = select(ChunkModel).where(
            ChunkModel.document_id == chunk.document_id,
            ChunkModel.sequence == chunk.sequence,
        )
        try:
            async with self._session_maker() as session:
                existing = (await session.execute(stmt)).scalar_one_or_none()
                if existing is None:
                    session.add(ChunkModel(
                        id=chunk.id,
                        document_id=chunk.document_id,
                        event_id=chunk.event_id,
                        sequence=chunk.sequence,
                        text=chunk.text,
                        token_estimate=chunk.token_estimate,
                        embedding=list(chunk.embedding),
                        encoder_version=chunk.encoder_version,
                        created_at=chunk.created_at,
                    ))
                    stored = chunk
                else:
                    existing.event_id = chunk.event_id
                    existing.text = chunk.text
                    existing.token_estimate = chunk.token_estimate
                    existing.embedding = list(chunk.embedding)
                    existing.encoder_version = chunk.encoder_version
                    existing.created_at = chunk.created_at
                    stored = replace(chunk, id=existing.id)
                await session.commit()
        except SQLAlchemyError as e:
            raise RepositoryException(
                f"Failed to upsert chunk {chunk.document_id}#{chunk.sequence}: {e}"
            )
        return stored

    async def list_by_document(self, document_id: str) -> List[Chunk]:
        stmt = (
            select(ChunkModel)
            .where(ChunkModel.document_id == document_id)
            .order_by(ChunkModel.sequence)
        )
        async with self._session_maker() as session:
            result = await session.execute(stmt)
            return [self._to_entity(m) for m in result.scalars().all()]

    async def list_by_event(
        self,
        event_id: str,
        document_ids: Optional[Sequence[str]] = None
    ) -> List[Chunk]:
        stmt = select(ChunkModel).where(ChunkModel.event_id == event_id)
        if document_ids is not None:
            stmt = stmt.where(ChunkModel.document_id.in_(list(document_ids)))
        stmt = stmt.order_by(ChunkModel.document_id, ChunkModel.sequence)
        async with self._session_maker() as session:
            result = await session.execute(stmt)
            return [self._to_entity(m) for m in result.scalars().all()]

    async def delete_from_sequence(self, document_id: str, start: int) -> int:
        stmt = delete(ChunkModel).where(
            ChunkModel.document_id == document_id,
            ChunkModel.sequence >= start,
        )
        try:
            async with self._session_maker() as session:
                result = await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to prune chunks of {document_id}: {e}")
        return result.rowcount or 0


# ========== In-memory ==========

class InMemoryDocumentRepository(IDocumentRepository):
    """Dict-backed document store. Returns copies so callers cannot mutate state."""

    def __init__(self):
        self._documents: Dict[str, Document] = {}

    async def get(self, document_id: str) -> Optional[Document]:
        document = self._documents.get(document_id)
        return replace(document) if document else None

    async def create(self, document: Document) -> Document:
        if document.id in self._documents:
            raise RepositoryException(f"Document {document.id} already exists")
        self._documents[document.id] = replace(document)
        return replace(document)

    async def update_fields(
        self,
        document_id: str,
        fields: dict,
        expected_statuses: Optional[Sequence[str]] = None
    ) -> bool:
        _check_fields(fields)
        document = self._documents.get(document_id)
        if document is None:
            return False
        if expected_statuses is not None and document.status not in expected_statuses:
            return False
        self._documents[document_id] = replace(document, **fields)
        return True

    async def list_by_event(self, event_id: str) -> List[Document]:
        documents = [d for d in self._documents.values() if d.event_id == event_id]
        documents.sort(key=lambda d: (d.uploaded_at, d.id))
        return [replace(d) for d in documents]


class InMemoryChunkRepository(IChunkRepository):
    """Dict-backed chunk store keyed by (document_id, sequence)."""

    def __init__(self):
        self._chunks: Dict[Tuple[str, int], Chunk] = {}

    async def upsert(self, chunk: Chunk) -> Chunk:
        existing = self._chunks.get(chunk.key)
        stored = replace(chunk, id=existing.id) if existing else replace(chunk)
        self._chunks[chunk.key] = stored
        return replace(stored)

    async def list_by_document(self, document_id: str) -> List[Chunk]:
        chunks = [c for c in self._chunks.values() if c.document_id == document_id]
        return [replace(c) for c in sorted(chunks, key=lambda c: c.sequence)]

    async def list_by_event(
        self,
        event_id: str,
        document_ids: Optional[Sequence[str]] = None
    ) -> List[Chunk]:
        allowed = set(document_ids) if document_ids is not None else None
        chunks = [
            c for c in self._chunks.values()
            if c.event_id == event_id and (allowed is None or c.document_id in allowed)
        ]
        chunks.sort(key=lambda c: (c.document_id, c.sequence))
        return [replace(c) for c in chunks]

    async def delete_from_sequence(self, document_id: str, start: int) -> int:
        stale = [key for key in self._chunks if key[0] == document_id and key[1] >= start]
        for key in stale:
            del self._chunks[key]
        return len(stale)
