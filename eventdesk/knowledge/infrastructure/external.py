"""
Knowledge External Service Adapters
===================================

Adapters for external services used by the knowledge module, plus the
background worker pool that runs ingestion jobs.

Implements the interfaces defined in the application layer using the
infrastructure LLM client.
"""

import asyncio
from typing import List, Optional

from eventdesk.core import (
    AlreadyInProgress,
    GenerationUnavailable,
    LLMException,
    ResourceNotFoundException,
)
from eventdesk.infrastructure.llm import ILLMClient
from eventdesk.knowledge.application import (
    IEmbedder,
    IIngestionQueue,
    IngestionJob,
    IngestionService,
    ITextGenerator,
)
from eventdesk.knowledge.domain import AnswerPromptBuilder, ContextWindow
from eventdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class LLMEmbedder(IEmbedder):
    """
    Adapter that wraps the infrastructure LLM client.

    Implements IEmbedder using the client's embedding endpoint.
    """

    def __init__(self, client: ILLMClient):
        self._client = client

    @property
    def encoder_version(self) -> str:
        return self._client.encoder_version

    async def embed(self, text: str) -> List[float]:
        result = await self._client.generate_embedding(text)
        return result.embedding


class LLMTextGenerator(ITextGenerator):
    """
    Adapter that answers from context with a chat completion.

    Provider failures surface as GenerationUnavailable.
    """

    def __init__(self, client: ILLMClient, temperature: float = 0.2, max_tokens: int = 500):
        self._client = client
        self._temperature = temperature
        self._max_tokens = max_tokens

    async def generate(self, question: str, context: ContextWindow) -> str:
        messages = AnswerPromptBuilder.build_messages(question, context)
        try:
            result = await self._client.chat_completion(
                messages,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                operation="answer"
            )
        except LLMException as e:
            raise GenerationUnavailable(e.message)
        return result.content


class IngestionWorkerPool(IIngestionQueue):
    """
    Bounded pool of asyncio workers draining an ingestion queue.

    Every outcome is logged; the document record carries the result.
    """

    def __init__(self, ingestion_service: IngestionService, workers: int = 2, max_queue_size: int = 0):
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self._service = ingestion_service
        self._worker_count = workers
        self._max_queue_size = max_queue_size
        self._queue: Optional[asyncio.Queue] = None
        self._tasks: List[asyncio.Task] = []

    @property
    def is_running(self) -> bool:
        return bool(self._tasks)

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue else 0

    def start(self) -> None:
        """Start worker tasks on the running event loop."""
        if self._tasks:
            return
        if self._queue is None:
            self._queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._tasks = [
            asyncio.create_task(self._worker(i), name=f"ingestion-worker-{i}")
            for i in range(self._worker_count)
        ]
        logger.info("Ingestion worker pool started", extra={"workers": self._worker_count})

    async def submit(self, job: IngestionJob) -> None:
        if not self._tasks:
            self.start()
        await self._queue.put(job)
        logger.debug(
            "Ingestion job queued",
            extra={"document_id": job.document_id, "queue_size": self._queue.qsize()}
        )

    async def join(self) -> None:
        """Wait until every queued job has been processed."""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self) -> None:
        """Drain the queue, then stop the workers."""
        if not self._tasks:
            return
        await self.join()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Ingestion worker pool stopped")

    async def _worker(self, index: int) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self._run(job, index)
            finally:
                self._queue.task_done()

    async def _run(self, job: IngestionJob, index: int) -> None:
        context = {"document_id": job.document_id, "event_id": job.event_id, "worker": index}
        try:
            document = await self._service.ingest(
                job.event_id, job.document_id, job.raw_bytes, job.filename
            )
        except AlreadyInProgress:
            logger.warning("Ingestion job skipped, document already processing", extra=context)
        except ResourceNotFoundException:
            logger.warning("Ingestion job skipped, document not found", extra=context)
        except Exception:
            logger.exception("Ingestion job crashed", extra=context)
        else:
            logger.info(
                "Ingestion job finished",
                extra={**context, "status": document.status, "chunk_count": document.chunk_count}
            )
