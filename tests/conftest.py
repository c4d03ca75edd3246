"""Shared pytest fixtures for eventdesk tests."""
import asyncio
import io
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional
from uuid import uuid4

import pytest
from docx import Document as DocxDocument
from pypdf import PdfWriter

from eventdesk.config import DocumentStatus, Settings
from eventdesk.core import GenerationUnavailable, LLMException
from eventdesk.infrastructure.database import build_engine, build_session_maker, create_tables
from eventdesk.knowledge.application import (
    AnswerEngine,
    CorpusIndex,
    IEmbedder,
    IngestionService,
    ITextGenerator,
)
from eventdesk.knowledge.domain import Chunk, ContextWindow, Document, TextChunker
from eventdesk.knowledge.infrastructure import InMemoryChunkRepository, InMemoryDocumentRepository
from eventdesk.tickets.infrastructure import InMemoryTicketRepository

EVENT_ID = "evt-1"


def pytest_addoption(parser):
    """Add command line options for integration tests."""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests (requires API credentials)"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --run-integration is passed."""
    if config.getoption("--run-integration"):
        return

    skip_integration = pytest.mark.skip(reason="Need --run-integration to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


# ========== Capability stubs ==========

class StubEmbedder(IEmbedder):
    """
    Embedder returning controllable vectors.

    ``vectors`` maps a substring to the vector returned for any text that
    contains it (first match wins); other texts get ``default``.
    """

    def __init__(
        self,
        vectors: Optional[Dict[str, List[float]]] = None,
        default: Optional[List[float]] = None,
        encoder_version: str = "stub-v1",
        fail_on: Optional[str] = None,
        delay: float = 0.0
    ):
        self.vectors = vectors or {}
        self.default = default or [1.0, 0.0, 0.0]
        self._encoder_version = encoder_version
        self.fail_on = fail_on
        self.delay = delay
        self.calls: List[str] = []

    @property
    def encoder_version(self) -> str:
        return self._encoder_version

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_on is not None and self.fail_on in text:
            raise LLMException("embedding backend unavailable")
        for key, vector in self.vectors.items():
            if key in text:
                return list(vector)
        return list(self.default)


class StubGenerator(ITextGenerator):
    """Generator returning a fixed reply, or raising / stalling on demand."""

    def __init__(self, reply: str = "Doors open at 9am.", error: Optional[Exception] = None, delay: float = 0.0):
        self.reply = reply
        self.error = error
        self.delay = delay
        self.calls: List[tuple] = []

    async def generate(self, question: str, context: ContextWindow) -> str:
        self.calls.append((question, context))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply


# ========== Sample documents ==========

def build_pdf(text: str) -> bytes:
    """Minimal single-page PDF with one line of Helvetica text."""
    content = f"BT /F1 12 Tf 72 720 Td ({text}) Tj ET".encode("latin-1")
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
        b"/Contents 4 0 R /Resources << /Font << /F1 5 0 R >> >> >>",
        b"<< /Length %d >>\nstream\n" % len(content) + content + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]

    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += b"%d 0 obj\n" % number + body + b"\nendobj\n"

    xref_offset = len(out)
    out += b"xref\n0 %d\n" % (len(objects) + 1)
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (
        len(objects) + 1, xref_offset
    )
    return bytes(out)


@pytest.fixture
def sample_pdf_bytes() -> bytes:
    return build_pdf("Doors open at 9am in Hall A")


@pytest.fixture
def blank_pdf_bytes() -> bytes:
    writer = PdfWriter()
    writer.add_blank_page(width=612, height=792)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


@pytest.fixture
def sample_docx_bytes() -> bytes:
    document = DocxDocument()
    document.add_paragraph("Welcome to the Spring Summit.")
    document.add_paragraph("Badges are collected at the registration desk.")
    table = document.add_table(rows=1, cols=2)
    table.rows[0].cells[0].text = "Lunch"
    table.rows[0].cells[1].text = "12:30"
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def empty_docx_bytes() -> bytes:
    buffer = io.BytesIO()
    DocxDocument().save(buffer)
    return buffer.getvalue()


def words(count: int, prefix: str = "w") -> str:
    """Synthetic text of ``count`` distinct tokens."""
    return " ".join(f"{prefix}{i}" for i in range(count))


# ========== Settings ==========

@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        environment="development",
        llm_provider="mock",
        blob_backend="memory",
        database_url="sqlite+aiosqlite://",
        embedding_dimension=256,
        ingestion_workers=2,
        notification_webhook_url=None,
    )


# ========== Repositories ==========

@pytest.fixture
def document_repo() -> InMemoryDocumentRepository:
    return InMemoryDocumentRepository()


@pytest.fixture
def chunk_repo() -> InMemoryChunkRepository:
    return InMemoryChunkRepository()


@pytest.fixture
def ticket_repo() -> InMemoryTicketRepository:
    return InMemoryTicketRepository()


@pytest.fixture
async def session_maker():
    """In-memory SQLite session factory with all tables created."""
    engine = build_engine("sqlite+aiosqlite://")
    await create_tables(engine)
    yield build_session_maker(engine)
    await engine.dispose()


@pytest.fixture
def make_document(document_repo) -> Callable:
    """Factory persisting a document record."""
    counter = {"n": 0}

    async def _make(
        filename: str = "guide.txt",
        event_id: str = EVENT_ID,
        status: str = DocumentStatus.PENDING,
        repo=None
    ) -> Document:
        counter["n"] += 1
        document = Document(
            id=f"doc-{counter['n']}",
            event_id=event_id,
            filename=filename,
            storage_url=f"memory://events/{event_id}/documents/{filename}",
            uploaded_at=datetime(2026, 5, 1, tzinfo=timezone.utc) + timedelta(seconds=counter["n"]),
            status=status,
        )
        return await (repo or document_repo).create(document)

    return _make


def make_chunk(
    document_id: str,
    sequence: int,
    embedding: List[float],
    text: Optional[str] = None,
    event_id: str = EVENT_ID,
    encoder_version: str = "stub-v1"
) -> Chunk:
    text = text or f"{document_id} passage {sequence}"
    return Chunk(
        id=str(uuid4()),
        document_id=document_id,
        event_id=event_id,
        sequence=sequence,
        text=text,
        token_estimate=len(text.split()),
        embedding=embedding,
        encoder_version=encoder_version,
    )


# ========== Services ==========

@pytest.fixture
def embedder() -> StubEmbedder:
    return StubEmbedder()


@pytest.fixture
def generator() -> StubGenerator:
    return StubGenerator()


@pytest.fixture
def chunker() -> TextChunker:
    return TextChunker(window_size=200, overlap=40)


@pytest.fixture
def ingestion_service(document_repo, chunk_repo, embedder, chunker) -> IngestionService:
    return IngestionService(
        document_repo,
        chunk_repo,
        embedder,
        chunker,
        extraction_timeout=5.0,
        embedding_timeout=5.0,
    )


@pytest.fixture
def corpus_index(document_repo, chunk_repo) -> CorpusIndex:
    return CorpusIndex(document_repo, chunk_repo)


@pytest.fixture
def answer_engine(corpus_index, embedder, generator) -> AnswerEngine:
    return AnswerEngine(
        corpus_index,
        embedder,
        generator,
        top_k=5,
        min_confidence=0.75,
        max_context_tokens=1200,
        embedding_timeout=1.0,
        generation_timeout=1.0,
    )


@pytest.fixture
def generation_failure() -> GenerationUnavailable:
    return GenerationUnavailable("provider returned 503")
