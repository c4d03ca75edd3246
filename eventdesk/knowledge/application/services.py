"""
Knowledge Application Services
==============================

Application services orchestrate the knowledge domain and coordinate
with repositories and external capabilities.

Following SOLID principles:
- Single Responsibility: ingestion, search, answering and document
  bookkeeping are separate services
- Dependency Inversion: services depend on the interfaces below, never on
  SQLAlchemy, OpenAI or the filesystem directly
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import List, Optional, Sequence
from uuid import uuid4

from eventdesk.config import DocumentStatus, CLAIMABLE_DOCUMENT_STATUSES
from eventdesk.core import (
    AlreadyInProgress,
    ApplicationException,
    CorruptDocument,
    EncoderVersionMismatch,
    ResourceNotFoundException,
    UnsupportedFormat,
    ValidationException,
)
from eventdesk.knowledge.domain import (
    AutoAnswer,
    Chunk,
    ContextWindow,
    ContextWindowBuilder,
    Document,
    ScoredChunk,
    SimilarityCalculator,
    TextChunker,
    TextExtractor,
    detect_format,
)
from eventdesk.shared.infrastructure.logging import get_context_logger, get_logger, log_latency

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class IDocumentRepository(ABC):
    """Interface for document record access."""

    @abstractmethod
    async def get(self, document_id: str) -> Optional[Document]:
        """Get document by ID."""

    @abstractmethod
    async def create(self, document: Document) -> Document:
        """Persist a new document."""

    @abstractmethod
    async def update_fields(
        self,
        document_id: str,
        fields: dict,
        expected_statuses: Optional[Sequence[str]] = None
    ) -> bool:
        """
        Update fields of a document.

        When ``expected_statuses`` is given the update only applies if the
        stored status is one of them; returns False otherwise.
        """

    @abstractmethod
    async def list_by_event(self, event_id: str) -> List[Document]:
        """List an event's documents ordered by upload time."""


class IChunkRepository(ABC):
    """Interface for chunk record access."""

    @abstractmethod
    async def upsert(self, chunk: Chunk) -> Chunk:
        """Insert or replace the chunk keyed by (document_id, sequence)."""

    @abstractmethod
    async def list_by_document(self, document_id: str) -> List[Chunk]:
        """List a document's chunks ordered by sequence."""

    @abstractmethod
    async def list_by_event(
        self,
        event_id: str,
        document_ids: Optional[Sequence[str]] = None
    ) -> List[Chunk]:
        """List an event's chunks, optionally limited to some documents."""

    @abstractmethod
    async def delete_from_sequence(self, document_id: str, start: int) -> int:
        """Delete a document's chunks with sequence >= start; returns count."""


class IEmbedder(ABC):
    """Maps text to a fixed-length vector."""

    @property
    @abstractmethod
    def encoder_version(self) -> str:
        """Tag recorded on every chunk embedded by this encoder."""

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Embed a passage or question."""


class ITextGenerator(ABC):
    """Constrained text generation over a retrieved context."""

    @abstractmethod
    async def generate(self, question: str, context: ContextWindow) -> str:
        """Answer the question from the context."""


class IBlobStore(ABC):
    """Object storage for raw uploads."""

    @abstractmethod
    async def put(self, data: bytes, key: str) -> str:
        """Store bytes and return their URL."""

    @abstractmethod
    async def get(self, url: str) -> bytes:
        """Fetch bytes previously stored."""


@dataclass(frozen=True)
class IngestionJob:
    """Work item handed to the ingestion worker pool."""

    event_id: str
    document_id: str
    raw_bytes: bytes
    filename: str


class IIngestionQueue(ABC):
    """Accepts ingestion jobs for background processing."""

    @abstractmethod
    async def submit(self, job: IngestionJob) -> None:
        """Enqueue a job and return without waiting for it."""


# ========== Corpus Index ==========

class CorpusIndex:
    """
    Per-event nearest-neighbour search over stored chunks.

    Only chunks of searchable documents are visible: ``ready`` ones, and
    failed ones whose last good chunks were left intact. Partial or
    in-flight ingestion never contributes context.
    """

    def __init__(self, document_repository: IDocumentRepository, chunk_repository: IChunkRepository):
        self._document_repo = document_repository
        self._chunk_repo = chunk_repository

    async def visible_chunks(self, event_id: str) -> List[Chunk]:
        documents = await self._document_repo.list_by_event(event_id)
        searchable_ids = [d.id for d in documents if d.is_searchable]
        if not searchable_ids:
            return []
        return await self._chunk_repo.list_by_event(event_id, document_ids=searchable_ids)

    async def search(
        self,
        event_id: str,
        query_vector: Sequence[float],
        k: int,
        encoder_version: Optional[str] = None
    ) -> List[ScoredChunk]:
        """
        Return up to k chunks ordered by cosine similarity.

        Args:
            event_id: Event whose corpus is searched
            query_vector: Embedded question
            k: Result count, clamped to the number of visible chunks
            encoder_version: Encoder used for the query; checked against chunks

        Raises:
            ValidationException: If k < 1
            EncoderVersionMismatch: If a visible chunk was embedded by another encoder
        """
        if k < 1:
            raise ValidationException("k must be >= 1", {"k": k})

        chunks = await self.visible_chunks(event_id)
        if not chunks:
            return []

        if encoder_version is not None:
            for chunk in chunks:
                if chunk.encoder_version != encoder_version:
                    raise EncoderVersionMismatch(encoder_version, chunk.encoder_version, event_id)

        return SimilarityCalculator.rank(query_vector, chunks, min(k, len(chunks)))


# ========== Ingestion Pipeline ==========

class IngestionService:
    """
    Extract, chunk, embed and persist one document.

    A compare-and-set on the document status allows at most one run per
    document at a time.
    """

    def __init__(
        self,
        document_repository: IDocumentRepository,
        chunk_repository: IChunkRepository,
        embedder: IEmbedder,
        chunker: TextChunker,
        extractor: Optional[TextExtractor] = None,
        extraction_timeout: float = 60.0,
        embedding_timeout: float = 20.0
    ):
        self._document_repo = document_repository
        self._chunk_repo = chunk_repository
        self._embedder = embedder
        self._chunker = chunker
        self._extractor = extractor or TextExtractor()
        self._extraction_timeout = extraction_timeout
        self._embedding_timeout = embedding_timeout

    async def ingest(self, event_id: str, document_id: str, raw_bytes: bytes, filename: str) -> Document:
        """
        Run the pipeline for a document and return its final record.

        Every failure after the claim is recorded on the document as
        ``status=failed`` with a ``failure_reason``; nothing else escapes.

        Raises:
            ResourceNotFoundException: Unknown document or wrong event
            AlreadyInProgress: Another run holds the document
        """
        log = get_context_logger(__name__, document_id)

        document = await self._document_repo.get(document_id)
        if document is None or document.event_id != event_id:
            raise ResourceNotFoundException("Document", document_id)

        claimed = await self._document_repo.update_fields(
            document_id,
            {"status": DocumentStatus.PROCESSING, "failure_reason": None},
            expected_statuses=CLAIMABLE_DOCUMENT_STATUSES
        )
        if not claimed:
            log.warning(
                "Ingestion rejected, document already processing",
                extra={"document_id": document_id, "event_id": event_id}
            )
            raise AlreadyInProgress(document_id)

        log.info(
            "Ingestion claimed",
            extra={"document_id": document_id, "event_id": event_id, "doc_filename": filename}
        )

        # Stored chunks stay as they were until the first upsert
        chunks_touched = False
        try:
            try:
                text = await self._extract(raw_bytes, filename, log)
            except (UnsupportedFormat, CorruptDocument) as e:
                return await self._fail(document, e.message, log, keep_chunks=True)
            except asyncio.TimeoutError:
                return await self._fail(
                    document, f"extraction timed out after {self._extraction_timeout}s", log,
                    keep_chunks=True
                )
            except Exception as e:
                log.exception("Unexpected extraction error", extra={"document_id": document_id})
                return await self._fail(document, f"extraction error: {e}", log, keep_chunks=True)

            passages = self._chunker.split(text)
            stored = 0

            for passage in passages:
                try:
                    embedding = await asyncio.wait_for(
                        self._embedder.embed(passage.text), timeout=self._embedding_timeout
                    )
                except asyncio.TimeoutError:
                    return await self._fail(
                        document,
                        f"embedding timed out at sequence {passage.sequence} ({stored} chunks kept)",
                        log,
                        keep_chunks=not chunks_touched
                    )
                except Exception as e:
                    return await self._fail(
                        document,
                        f"embedding failed at sequence {passage.sequence} ({stored} chunks kept): {e}",
                        log,
                        keep_chunks=not chunks_touched
                    )

                chunks_touched = True
                try:
                    await self._chunk_repo.upsert(Chunk(
                        id=str(uuid4()),
                        document_id=document_id,
                        event_id=event_id,
                        sequence=passage.sequence,
                        text=passage.text,
                        token_estimate=passage.token_estimate,
                        embedding=embedding,
                        encoder_version=self._embedder.encoder_version,
                    ))
                except ApplicationException as e:
                    return await self._fail(
                        document, f"chunk persistence failed: {e.message}", log, keep_chunks=False
                    )
                stored += 1

            chunks_touched = True
            removed = await self._chunk_repo.delete_from_sequence(document_id, len(passages))
            if removed:
                log.info(
                    "Pruned chunks from previous version",
                    extra={"document_id": document_id, "removed": removed}
                )

            await self._document_repo.update_fields(
                document_id,
                {
                    "status": DocumentStatus.READY,
                    "chunk_count": len(passages),
                    "processed_at": datetime.now(timezone.utc),
                    "failure_reason": None,
                },
                expected_statuses=[DocumentStatus.PROCESSING]
            )
            log.info(
                "Ingestion completed",
                extra={"document_id": document_id, "event_id": event_id, "chunk_count": len(passages)}
            )
            return await self._document_repo.get(document_id)
        except Exception as e:
            log.exception("Unexpected ingestion error", extra={"document_id": document_id})
            return await self._fail(
                document, f"ingestion error: {e}", log, keep_chunks=not chunks_touched
            )

    async def _extract(self, raw_bytes: bytes, filename: str, log) -> str:
        declared_format = detect_format(filename)
        with log_latency(log, "extract_text", doc_format=declared_format):
            return await asyncio.wait_for(
                asyncio.to_thread(self._extractor.extract, raw_bytes, declared_format),
                timeout=self._extraction_timeout
            )

    async def _fail(self, document: Document, reason: str, log, keep_chunks: bool) -> Document:
        """
        Record a failed run.

        With ``keep_chunks`` the document's stored chunks are untouched and
        its previous ``chunk_count`` stays, so a document that was ready
        keeps serving them. Otherwise ``chunk_count`` is reset to 0.
        """
        fields = {"status": DocumentStatus.FAILED, "failure_reason": reason}
        if not keep_chunks:
            fields["chunk_count"] = 0
        try:
            await self._document_repo.update_fields(
                document.id, fields, expected_statuses=[DocumentStatus.PROCESSING]
            )
            failed = await self._document_repo.get(document.id)
        except Exception:
            log.exception(
                "Could not record ingestion failure",
                extra={"document_id": document.id, "event_id": document.event_id, "reason": reason}
            )
            failed = replace(document, **fields)
        log.error(
            "Document ingestion failed",
            extra={"document_id": document.id, "event_id": document.event_id, "reason": reason}
        )
        return failed


# ========== Answer Engine ==========

class AnswerEngine:
    """
    Answers a question from the event corpus or declines.

    Never raises for capability failures: embedding, search and
    generation problems all become a declined AutoAnswer.
    """

    NO_ANSWER_MARKERS = ("i don't know", "i do not know")
    FAILURE_REASONS = (
        "embedding_failed", "encoder_mismatch", "search_failed", "generation_unavailable"
    )

    def __init__(
        self,
        corpus_index: CorpusIndex,
        embedder: IEmbedder,
        generator: ITextGenerator,
        top_k: int = 5,
        min_confidence: float = 0.75,
        max_context_tokens: int = 1200,
        embedding_timeout: float = 20.0,
        generation_timeout: float = 30.0
    ):
        if not 0.0 < min_confidence < 1.0:
            raise ValidationException("min_confidence must be in (0, 1)")
        if top_k < 1:
            raise ValidationException("top_k must be >= 1")
        self._index = corpus_index
        self._embedder = embedder
        self._generator = generator
        self._top_k = top_k
        self._min_confidence = min_confidence
        self._context_builder = ContextWindowBuilder(max_context_tokens)
        self._embedding_timeout = embedding_timeout
        self._generation_timeout = generation_timeout

    @property
    def min_confidence(self) -> float:
        return self._min_confidence

    async def answer(self, event_id: str, question: str) -> AutoAnswer:
        start = time.perf_counter()

        try:
            query_vector = await asyncio.wait_for(
                self._embedder.embed(question), timeout=self._embedding_timeout
            )
        except Exception as e:
            return self._decline(event_id, "embedding_failed", error=repr(e))

        try:
            results = await self._index.search(
                event_id, query_vector, self._top_k,
                encoder_version=self._embedder.encoder_version
            )
        except EncoderVersionMismatch as e:
            return self._decline(event_id, "encoder_mismatch", error=e.message)
        except Exception as e:
            return self._decline(event_id, "search_failed", error=repr(e))

        if not results:
            return self._decline(event_id, "no_chunks")

        best_score = results[0].score
        if best_score < self._min_confidence:
            return self._decline(event_id, "below_threshold", best_score=round(best_score, 4))

        context = self._context_builder.build(results)
        try:
            generated = await asyncio.wait_for(
                self._generator.generate(question, context), timeout=self._generation_timeout
            )
        except asyncio.TimeoutError:
            return self._decline(event_id, "generation_unavailable", error="timeout")
        except Exception as e:
            return self._decline(event_id, "generation_unavailable", error=repr(e))

        text = (generated or "").strip()
        if not text or text.lower().rstrip(".!") in self.NO_ANSWER_MARKERS:
            return self._decline(event_id, "generation_declined", best_score=round(best_score, 4))

        logger.info(
            "Auto-answer generated",
            extra={
                "event_id": event_id,
                "score": round(best_score, 4),
                "passages": len(context.passages),
                "context_tokens": context.token_estimate,
                "latency_ms": int((time.perf_counter() - start) * 1000),
            }
        )
        return AutoAnswer(auto_answer=text, score=best_score, sources=context.passages)

    def _decline(self, event_id: str, reason: str, **context) -> AutoAnswer:
        level = logger.warning if reason in self.FAILURE_REASONS else logger.info
        level("Auto-answer declined", extra={"event_id": event_id, "reason": reason, **context})
        return AutoAnswer.declined(reason)


# ========== Document Bookkeeping ==========

class DocumentService:
    """
    Upload, re-ingestion and queries for event documents.

    Upload stores the raw file, records a pending document and hands an
    ingestion job to the queue without waiting for it.
    """

    def __init__(
        self,
        document_repository: IDocumentRepository,
        blob_store: IBlobStore,
        ingestion_queue: IIngestionQueue
    ):
        self._document_repo = document_repository
        self._blob_store = blob_store
        self._queue = ingestion_queue

    async def upload_document(self, event_id: str, filename: str, raw_bytes: bytes) -> Document:
        timestamp_ms = int(time.time() * 1000)
        key = f"events/{event_id}/documents/{timestamp_ms}_{filename}"
        storage_url = await self._blob_store.put(raw_bytes, key)

        document = await self._document_repo.create(Document(
            id=str(uuid4()),
            event_id=event_id,
            filename=filename,
            storage_url=storage_url,
            uploaded_at=datetime.now(timezone.utc),
        ))
        logger.info(
            "Document uploaded",
            extra={"document_id": document.id, "event_id": event_id, "size_bytes": len(raw_bytes)}
        )

        await self._queue.submit(IngestionJob(
            event_id=event_id,
            document_id=document.id,
            raw_bytes=raw_bytes,
            filename=filename,
        ))
        return document

    async def reingest_document(self, document_id: str, raw_bytes: Optional[bytes] = None) -> Document:
        """
        Queue another ingestion run for an existing document.

        Without ``raw_bytes`` the stored upload is re-read from the blob store.

        Raises:
            ResourceNotFoundException: Unknown document
            AlreadyInProgress: The document is being processed
        """
        document = await self.get_document(document_id)
        if document.is_processing:
            raise AlreadyInProgress(document_id)

        if raw_bytes is None:
            raw_bytes = await self._blob_store.get(document.storage_url)

        await self._queue.submit(IngestionJob(
            event_id=document.event_id,
            document_id=document.id,
            raw_bytes=raw_bytes,
            filename=document.filename,
        ))
        logger.info(
            "Re-ingestion requested",
            extra={"document_id": document_id, "event_id": document.event_id}
        )
        return document

    async def get_document(self, document_id: str) -> Document:
        document = await self._document_repo.get(document_id)
        if document is None:
            raise ResourceNotFoundException("Document", document_id)
        return document

    async def list_documents(self, event_id: str) -> List[Document]:
        return await self._document_repo.list_by_event(event_id)
