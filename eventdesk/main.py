"""
EventDesk - Main Application
============================

Event support desk: attendees ask questions, the desk answers them from
organizer documents when it is confident, and hands the rest to humans.

Modules:
- Knowledge: document ingestion, corpus search and automatic answers
- Tickets: attendee question lifecycle

Clean Architecture Layers:
- Application: Services and DTOs
- Domain: Entities and value objects
- Infrastructure: Database, LLM, blob storage, webhook

``SupportDesk`` is the composition root and the only surface callers need.
"""

from typing import List, Optional

from eventdesk.config import Settings, settings as default_settings
from eventdesk.infrastructure.database import build_engine, build_session_maker, create_tables
from eventdesk.infrastructure.llm import ILLMClient, create_llm_client
from eventdesk.infrastructure.storage import create_blob_store
from eventdesk.knowledge.application import (
    AnswerEngine,
    CorpusIndex,
    DocumentService,
    IBlobStore,
    IChunkRepository,
    IDocumentRepository,
    IEmbedder,
    IngestionJob,
    IngestionService,
    ITextGenerator,
    SearchRequest,
    UploadDocumentRequest,
)
from eventdesk.knowledge.domain import Document, ScoredChunk, TextChunker
from eventdesk.knowledge.infrastructure import (
    InMemoryChunkRepository,
    InMemoryDocumentRepository,
    IngestionWorkerPool,
    LLMEmbedder,
    LLMTextGenerator,
    SQLAlchemyChunkRepository,
    SQLAlchemyDocumentRepository,
)
from eventdesk.shared.infrastructure.logging import get_logger
from eventdesk.tickets.application import (
    CreateTicketRequest,
    ITicketNotifier,
    ITicketRepository,
    NullTicketNotifier,
    ReplyRequest,
    TicketService,
)
from eventdesk.tickets.domain import Ticket
from eventdesk.tickets.infrastructure import (
    AnswerEngineProvider,
    InMemoryTicketRepository,
    SQLAlchemyTicketRepository,
    WebhookTicketNotifier,
)

logger = get_logger(__name__)


class SupportDesk:
    """
    Facade over the knowledge and ticket modules.

    Lifecycle:
        desk = build_support_desk()
        await desk.start()
        ...
        await desk.stop()
    """

    def __init__(
        self,
        config: Settings,
        document_repository: IDocumentRepository,
        chunk_repository: IChunkRepository,
        ticket_repository: ITicketRepository,
        embedder: IEmbedder,
        generator: ITextGenerator,
        blob_store: IBlobStore,
        notifier: Optional[ITicketNotifier] = None,
        llm_client: Optional[ILLMClient] = None,
        engine=None
    ):
        self.config = config
        self._llm_client = llm_client
        self._engine = engine
        self._notifier = notifier or NullTicketNotifier()

        self.corpus_index = CorpusIndex(document_repository, chunk_repository)
        self.ingestion_service = IngestionService(
            document_repository,
            chunk_repository,
            embedder,
            TextChunker(config.chunk_window_size, config.chunk_overlap),
            extraction_timeout=config.extraction_timeout_seconds,
            embedding_timeout=config.embedding_timeout_seconds,
        )
        self.worker_pool = IngestionWorkerPool(self.ingestion_service, workers=config.ingestion_workers)
        self.document_service = DocumentService(document_repository, blob_store, self.worker_pool)
        self.answer_engine = AnswerEngine(
            self.corpus_index,
            embedder,
            generator,
            top_k=config.answer_top_k,
            min_confidence=config.min_confidence,
            max_context_tokens=config.max_context_tokens,
            embedding_timeout=config.embedding_timeout_seconds,
            generation_timeout=config.generation_timeout_seconds,
        )
        self.ticket_service = TicketService(
            ticket_repository,
            AnswerEngineProvider(self.answer_engine),
            self._notifier,
        )
        self._embedder = embedder

    # === Lifecycle ===

    async def start(self) -> None:
        """Create tables (SQL backends) and start ingestion workers."""
        logger.info("Starting support desk", extra={
            "version": self.config.app_version,
            "environment": self.config.environment,
            "encoder_version": self._embedder.encoder_version,
        })
        if self._engine is not None:
            await create_tables(self._engine)
        self.worker_pool.start()

    async def stop(self) -> None:
        """Drain pending ingestion, then release clients and connections."""
        logger.info("Shutting down support desk")
        await self.worker_pool.stop()
        await self._notifier.close()
        if self._llm_client is not None:
            await self._llm_client.close()
        if self._engine is not None:
            await self._engine.dispose()
        logger.info("Support desk shutdown complete")

    async def __aenter__(self) -> "SupportDesk":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    # === Documents ===

    async def upload_document(self, event_id: str, filename: str, raw_bytes: bytes) -> Document:
        """Store a file, record it as pending and queue its ingestion."""
        request = UploadDocumentRequest(event_id=event_id, filename=filename, raw_bytes=raw_bytes)
        return await self.document_service.upload_document(
            request.event_id, request.filename, request.raw_bytes
        )

    async def ingest(self, event_id: str, document_id: str, raw_bytes: bytes, filename: str) -> None:
        """Queue an ingestion run; the outcome is visible on the document record."""
        await self.worker_pool.submit(IngestionJob(
            event_id=event_id,
            document_id=document_id,
            raw_bytes=raw_bytes,
            filename=filename,
        ))

    async def reingest_document(self, document_id: str, raw_bytes: Optional[bytes] = None) -> Document:
        return await self.document_service.reingest_document(document_id, raw_bytes)

    async def wait_for_ingestion(self) -> None:
        """Block until every queued ingestion job has finished."""
        await self.worker_pool.join()

    async def get_document(self, document_id: str) -> Document:
        return await self.document_service.get_document(document_id)

    async def list_documents(self, event_id: str) -> List[Document]:
        return await self.document_service.list_documents(event_id)

    async def search(self, event_id: str, question: str, k: Optional[int] = None) -> List[ScoredChunk]:
        """Nearest passages for a question, for organizer diagnostics."""
        request = SearchRequest(
            event_id=event_id,
            question=question,
            k=k if k is not None else self.config.answer_top_k,
        )
        query_vector = await self._embedder.embed(request.question)
        return await self.corpus_index.search(
            request.event_id, query_vector, request.k,
            encoder_version=self._embedder.encoder_version
        )

    # === Tickets ===

    async def create_ticket(self, event_id: str, question: str) -> Ticket:
        request = CreateTicketRequest(event_id=event_id, question=question)
        return await self.ticket_service.create_ticket(request.event_id, request.question)

    async def reply_to_ticket(self, ticket_id: str, answer_text: str) -> Ticket:
        request = ReplyRequest(ticket_id=ticket_id, answer=answer_text)
        return await self.ticket_service.reply_to_ticket(request.ticket_id, request.answer)

    async def flag_ticket(self, ticket_id: str) -> Ticket:
        return await self.ticket_service.flag_ticket(ticket_id)

    async def close_ticket(self, ticket_id: str) -> Ticket:
        return await self.ticket_service.close_ticket(ticket_id)

    async def get_ticket(self, ticket_id: str) -> Ticket:
        return await self.ticket_service.get_ticket(ticket_id)

    async def list_tickets(self, event_id: str, status: Optional[str] = None) -> List[Ticket]:
        return await self.ticket_service.list_tickets(event_id, status)


def build_support_desk(
    config: Optional[Settings] = None,
    in_memory: bool = False,
    llm_client: Optional[ILLMClient] = None,
    blob_store: Optional[IBlobStore] = None,
    notifier: Optional[ITicketNotifier] = None
) -> SupportDesk:
    """
    Wire a SupportDesk from settings.

    Args:
        config: Settings; defaults to the environment-loaded settings
        in_memory: Use in-memory repositories instead of the database
        llm_client: Override the provider selected by ``llm_provider``
        blob_store: Override the backend selected by ``blob_backend``
        notifier: Override the webhook/no-op notifier
    """
    config = config or default_settings

    llm_client = llm_client or create_llm_client(config)
    blob_store = blob_store or create_blob_store(config)

    if notifier is None and config.notification_webhook_url:
        notifier = WebhookTicketNotifier(
            config.notification_webhook_url,
            timeout_seconds=config.notification_timeout_seconds,
        )

    engine = None
    if in_memory:
        document_repo = InMemoryDocumentRepository()
        chunk_repo = InMemoryChunkRepository()
        ticket_repo = InMemoryTicketRepository()
    else:
        engine = build_engine(
            config.database_url,
            echo=config.db_echo,
            pool_size=config.db_pool_size,
            max_overflow=config.db_max_overflow,
        )
        session_maker = build_session_maker(engine)
        document_repo = SQLAlchemyDocumentRepository(session_maker)
        chunk_repo = SQLAlchemyChunkRepository(session_maker)
        ticket_repo = SQLAlchemyTicketRepository(session_maker)

    return SupportDesk(
        config=config,
        document_repository=document_repo,
        chunk_repository=chunk_repo,
        ticket_repository=ticket_repo,
        embedder=LLMEmbedder(llm_client),
        generator=LLMTextGenerator(
            llm_client,
            temperature=config.llm_temperature,
            max_tokens=config.llm_max_tokens,
        ),
        blob_store=blob_store,
        notifier=notifier,
        llm_client=llm_client,
        engine=engine,
    )
