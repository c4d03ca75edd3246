"""
Knowledge Value Objects
=======================

Stateless retrieval logic: cosine scoring with deterministic ranking and
bounded context-window assembly for answer generation.
"""

from dataclasses import dataclass
from typing import List, Sequence

import numpy as np

from eventdesk.core import ValidationException
from eventdesk.knowledge.domain.chunking import estimate_tokens
from eventdesk.knowledge.domain.entities import Chunk, ScoredChunk


class SimilarityCalculator:
    """
    Cosine similarity scoring.

    Zero vectors score 0.0 against everything. Ranking breaks ties by
    ascending (document_id, sequence).
    """

    @staticmethod
    def cosine(a: Sequence[float], b: Sequence[float]) -> float:
        va = np.asarray(a, dtype=np.float64)
        vb = np.asarray(b, dtype=np.float64)
        if va.shape != vb.shape:
            raise ValidationException(
                "Embedding dimensions differ",
                {"query_dimension": va.shape[0], "chunk_dimension": vb.shape[0]}
            )
        denom = np.linalg.norm(va) * np.linalg.norm(vb)
        if denom == 0.0:
            return 0.0
        return float(np.clip(np.dot(va, vb) / denom, -1.0, 1.0))

    @classmethod
    def score_all(cls, query: Sequence[float], chunks: List[Chunk]) -> List[float]:
        """Cosine of the query against every chunk, vectorised."""
        if not chunks:
            return []
        q = np.asarray(query, dtype=np.float64)
        matrix = np.asarray([c.embedding for c in chunks], dtype=np.float64)
        if matrix.ndim != 2 or matrix.shape[1] != q.shape[0]:
            raise ValidationException(
                "Embedding dimensions differ",
                {"query_dimension": int(q.shape[0])}
            )
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(q)
        dots = matrix @ q
        scores = np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)
        return [float(s) for s in np.clip(scores, -1.0, 1.0)]

    @classmethod
    def rank(cls, query: Sequence[float], chunks: List[Chunk], k: int) -> List[ScoredChunk]:
        """Top-k chunks, score descending then (document_id, sequence) ascending."""
        scored = [
            ScoredChunk(chunk=chunk, score=score)
            for chunk, score in zip(chunks, cls.score_all(query, chunks))
        ]
        scored.sort(key=lambda s: (-s.score, s.chunk.document_id, s.chunk.sequence))
        return scored[:k]


@dataclass(frozen=True)
class ContextWindow:
    """Passages selected for a generation prompt."""

    passages: List[ScoredChunk]
    token_estimate: int

    @property
    def is_empty(self) -> bool:
        return not self.passages

    def render(self) -> str:
        return "\n\n".join(
            f"[{i}] {item.chunk.text}" for i, item in enumerate(self.passages, start=1)
        )


class ContextWindowBuilder:
    """
    Concatenates retrieved passages, best first, under a token budget.

    The best passage is always included, truncated if it alone exceeds
    the budget.
    """

    def __init__(self, max_tokens: int):
        if max_tokens < 1:
            raise ValidationException("max_tokens must be >= 1")
        self._max_tokens = max_tokens

    def build(self, results: List[ScoredChunk]) -> ContextWindow:
        ordered = sorted(
            results, key=lambda s: (-s.score, s.chunk.document_id, s.chunk.sequence)
        )
        selected: List[ScoredChunk] = []
        used = 0

        for item in ordered:
            tokens = estimate_tokens(item.chunk.text)
            if used + tokens <= self._max_tokens:
                selected.append(item)
                used += tokens
            elif not selected:
                words = item.chunk.text.split()[:self._max_tokens]
                truncated = Chunk(
                    id=item.chunk.id,
                    document_id=item.chunk.document_id,
                    event_id=item.chunk.event_id,
                    sequence=item.chunk.sequence,
                    text=" ".join(words),
                    token_estimate=len(words),
                    embedding=item.chunk.embedding,
                    encoder_version=item.chunk.encoder_version,
                    created_at=item.chunk.created_at,
                )
                selected.append(ScoredChunk(chunk=truncated, score=item.score))
                used = len(words)
                break
            else:
                break

        return ContextWindow(passages=selected, token_estimate=used)


class AnswerPromptBuilder:
    """Builds the grounded-answer prompt for the text generator."""

    SYSTEM_PROMPT = """You are a support assistant for an event.

Answer the attendee's question using ONLY the numbered context passages
supplied by the organizer. If the passages do not contain the answer,
reply exactly with: I don't know.

Keep the answer short and friendly. Do not invent times, prices,
locations or policies."""

    @classmethod
    def build_prompt(cls, question: str, context: ContextWindow) -> str:
        return f"""Context:
{context.render()}
---
Question: {question}

Answer:"""

    @classmethod
    def build_messages(cls, question: str, context: ContextWindow) -> List[dict]:
        return [
            {"role": "system", "content": cls.SYSTEM_PROMPT},
            {"role": "user", "content": cls.build_prompt(question, context)},
        ]
