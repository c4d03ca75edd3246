"""
Knowledge Domain Layer
======================

Domain layer for the event knowledge module.

Contains:
- Entities: Document, Chunk, ScoredChunk, AutoAnswer
- Domain Services: TextExtractor, TextChunker, SimilarityCalculator
- Value Objects: Passage, ContextWindow

This layer has no dependencies on infrastructure - pure Python business logic
plus the parsing libraries the extractor wraps.
"""

from eventdesk.knowledge.domain.entities import Document, Chunk, ScoredChunk, AutoAnswer
from eventdesk.knowledge.domain.extraction import TextExtractor, detect_format, normalize_format
from eventdesk.knowledge.domain.chunking import TextChunker, Passage, estimate_tokens, merge_passages
from eventdesk.knowledge.domain.value_objects import (
    SimilarityCalculator,
    ContextWindow,
    ContextWindowBuilder,
    AnswerPromptBuilder,
)

__all__ = [
    # Entities
    "Document",
    "Chunk",
    "ScoredChunk",
    "AutoAnswer",
    # Extraction & chunking
    "TextExtractor",
    "detect_format",
    "normalize_format",
    "TextChunker",
    "Passage",
    "estimate_tokens",
    "merge_passages",
    # Retrieval
    "SimilarityCalculator",
    "ContextWindow",
    "ContextWindowBuilder",
    "AnswerPromptBuilder",
]
