"""Tests for the answer engine."""
import logging
import math

import pytest

from eventdesk.config import DocumentStatus
from eventdesk.core import RepositoryException, ValidationException
from eventdesk.knowledge.application import AnswerEngine, CorpusIndex
from eventdesk.knowledge.infrastructure import InMemoryChunkRepository

from conftest import EVENT_ID, StubEmbedder, StubGenerator, make_chunk


@pytest.fixture
async def ready_document(make_document):
    return await make_document("faq.txt", status=DocumentStatus.READY)


def build_engine(corpus_index, embedder=None, generator=None, **overrides):
    options = dict(top_k=5, min_confidence=0.75, max_context_tokens=1200,
                   embedding_timeout=1.0, generation_timeout=1.0)
    options.update(overrides)
    return AnswerEngine(corpus_index, embedder or StubEmbedder(), generator or StubGenerator(), **options)


class TestAnswerEngineAnswers:
    """Tests for confident answers."""

    async def test_answers_above_threshold(self, answer_engine, chunk_repo, ready_document, generator):
        await chunk_repo.upsert(make_chunk(ready_document.id, 0, [1.0, 0.0, 0.0], text="Doors open at 9am."))

        result = await answer_engine.answer(EVENT_ID, "When do doors open?")

        assert result.answered
        assert result.auto_answer == "Doors open at 9am."
        assert result.score == pytest.approx(1.0)
        assert result.decline_reason is None
        assert len(generator.calls) == 1

    async def test_context_passed_best_first(self, answer_engine, chunk_repo, ready_document, generator):
        await chunk_repo.upsert(make_chunk(ready_document.id, 0, [1.0, 1.0, 0.0], text="Lunch is at noon."))
        await chunk_repo.upsert(make_chunk(ready_document.id, 1, [1.0, 0.0, 0.0], text="Doors open at 9am."))
        await chunk_repo.upsert(make_chunk(ready_document.id, 2, [0.0, 1.0, 0.0], text="Wifi is free."))

        result = await answer_engine.answer(EVENT_ID, "When do doors open?")

        question, context = generator.calls[0]
        assert question == "When do doors open?"
        assert [p.chunk.text for p in context.passages] == [
            "Doors open at 9am.", "Lunch is at noon.", "Wifi is free."
        ]
        scores = [p.score for p in result.sources]
        assert scores == sorted(scores, reverse=True)
        assert result.score == pytest.approx(1.0)

    async def test_score_at_threshold_answers(self, corpus_index, chunk_repo, ready_document):
        # cos(45 degrees) ~ 0.7071
        engine = build_engine(corpus_index, min_confidence=math.sqrt(2) / 2 - 1e-9)
        await chunk_repo.upsert(make_chunk(ready_document.id, 0, [1.0, 1.0, 0.0]))

        result = await engine.answer(EVENT_ID, "anything")

        assert result.answered

    async def test_answer_text_is_stripped(self, corpus_index, chunk_repo, ready_document):
        engine = build_engine(corpus_index, generator=StubGenerator(reply="  Hall A.\n"))
        await chunk_repo.upsert(make_chunk(ready_document.id, 0, [1.0, 0.0, 0.0]))

        result = await engine.answer(EVENT_ID, "Where?")

        assert result.auto_answer == "Hall A."

    async def test_success_logged(self, answer_engine, chunk_repo, ready_document, caplog):
        await chunk_repo.upsert(make_chunk(ready_document.id, 0, [1.0, 0.0, 0.0]))

        with caplog.at_level(logging.INFO):
            await answer_engine.answer(EVENT_ID, "When?")

        [record] = [r for r in caplog.records if r.getMessage() == "Auto-answer generated"]
        assert record.event_id == EVENT_ID
        assert record.passages == 1


class TestAnswerEngineDeclines:
    """Tests for each decline path."""

    async def test_no_chunks(self, answer_engine, generator):
        result = await answer_engine.answer(EVENT_ID, "Anything?")

        assert not result.answered
        assert result.score is None
        assert result.decline_reason == "no_chunks"
        assert generator.calls == []

    async def test_below_threshold(self, answer_engine, chunk_repo, ready_document, generator):
        await chunk_repo.upsert(make_chunk(ready_document.id, 0, [0.0, 1.0, 0.0]))

        result = await answer_engine.answer(EVENT_ID, "Unrelated question")

        assert result.auto_answer is None
        assert result.score is None
        assert result.decline_reason == "below_threshold"
        assert generator.calls == []

    async def test_generation_error(self, corpus_index, chunk_repo, ready_document, generation_failure, caplog):
        engine = build_engine(corpus_index, generator=StubGenerator(error=generation_failure))
        await chunk_repo.upsert(make_chunk(ready_document.id, 0, [1.0, 0.0, 0.0]))

        with caplog.at_level(logging.WARNING):
            result = await engine.answer(EVENT_ID, "When?")

        assert result.decline_reason == "generation_unavailable"
        assert result.auto_answer is None
        assert any(r.getMessage() == "Auto-answer declined" and r.levelno == logging.WARNING
                   for r in caplog.records)

    async def test_unexpected_generation_error(self, corpus_index, chunk_repo, ready_document):
        engine = build_engine(corpus_index, generator=StubGenerator(error=RuntimeError("boom")))
        await chunk_repo.upsert(make_chunk(ready_document.id, 0, [1.0, 0.0, 0.0]))

        result = await engine.answer(EVENT_ID, "When?")

        assert result.decline_reason == "generation_unavailable"

    async def test_generation_timeout(self, corpus_index, chunk_repo, ready_document):
        engine = build_engine(corpus_index, generator=StubGenerator(delay=0.5), generation_timeout=0.05)
        await chunk_repo.upsert(make_chunk(ready_document.id, 0, [1.0, 0.0, 0.0]))

        result = await engine.answer(EVENT_ID, "When?")

        assert result.decline_reason == "generation_unavailable"

    @pytest.mark.parametrize("reply", ["", "   ", "I don't know.", "i do not know"])
    async def test_generator_declines(self, corpus_index, chunk_repo, ready_document, reply):
        engine = build_engine(corpus_index, generator=StubGenerator(reply=reply))
        await chunk_repo.upsert(make_chunk(ready_document.id, 0, [1.0, 0.0, 0.0]))

        result = await engine.answer(EVENT_ID, "When?")

        assert result.decline_reason == "generation_declined"
        assert result.auto_answer is None

    async def test_embedding_failure(self, corpus_index, chunk_repo, ready_document):
        engine = build_engine(corpus_index, embedder=StubEmbedder(fail_on="When"))
        await chunk_repo.upsert(make_chunk(ready_document.id, 0, [1.0, 0.0, 0.0]))

        result = await engine.answer(EVENT_ID, "When?")

        assert result.decline_reason == "embedding_failed"

    async def test_encoder_mismatch(self, corpus_index, chunk_repo, ready_document):
        engine = build_engine(corpus_index, embedder=StubEmbedder(encoder_version="stub-v2"))
        await chunk_repo.upsert(make_chunk(ready_document.id, 0, [1.0, 0.0, 0.0]))

        result = await engine.answer(EVENT_ID, "When?")

        assert result.decline_reason == "encoder_mismatch"

    async def test_repository_error_during_search_declines(self, document_repo, chunk_repo, ready_document, caplog):
        class BrokenChunkRepo(InMemoryChunkRepository):
            async def list_by_event(self, event_id, document_ids=None):
                raise RepositoryException("connection reset")

        engine = build_engine(CorpusIndex(document_repo, BrokenChunkRepo()))

        with caplog.at_level(logging.WARNING):
            result = await engine.answer(EVENT_ID, "When?")

        assert result.decline_reason == "search_failed"
        assert result.auto_answer is None
        assert "Auto-answer declined" in caplog.text

    async def test_dimension_mismatch_declines(self, answer_engine, chunk_repo, ready_document):
        await chunk_repo.upsert(make_chunk(ready_document.id, 0, [1.0, 0.0]))

        result = await answer_engine.answer(EVENT_ID, "When?")

        assert result.decline_reason == "search_failed"

    async def test_chunks_of_unready_documents_ignored(self, answer_engine, chunk_repo, make_document):
        pending = await make_document("draft.txt")
        await chunk_repo.upsert(make_chunk(pending.id, 0, [1.0, 0.0, 0.0]))

        result = await answer_engine.answer(EVENT_ID, "When?")

        assert result.decline_reason == "no_chunks"


class TestAnswerEngineConfig:
    """Tests for constructor validation."""

    @pytest.mark.parametrize("min_confidence", [0.0, 1.0, -0.2, 1.5])
    def test_min_confidence_must_be_open_interval(self, corpus_index, min_confidence):
        with pytest.raises(ValidationException):
            build_engine(corpus_index, min_confidence=min_confidence)

    def test_top_k_must_be_positive(self, corpus_index):
        with pytest.raises(ValidationException):
            build_engine(corpus_index, top_k=0)

    def test_exposes_threshold(self, answer_engine):
        assert answer_engine.min_confidence == 0.75
