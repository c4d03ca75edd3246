"""
Text Chunking
=============

Splits extracted text into overlapping passages.

Tokens are whitespace-delimited words. Each passage is the slice of the
original text from its first token to its last, so whitespace inside a
passage is preserved and overlapping passages share exact substrings.
"""

import re
from dataclasses import dataclass
from typing import List

from eventdesk.core import InvalidChunkConfig

_TOKEN = re.compile(r"\S+")


def estimate_tokens(text: str) -> int:
    """Token estimate used for chunk sizing and context budgets."""
    return len(text.split())


@dataclass(frozen=True)
class Passage:
    """A window of text produced by the chunker."""

    sequence: int
    text: str
    start_token: int
    end_token: int  # exclusive
    start_offset: int
    end_offset: int

    @property
    def token_estimate(self) -> int:
        return self.end_token - self.start_token


class TextChunker:
    """
    Sliding-window chunker.

    The window advances by ``window_size - overlap`` tokens per step; the
    last window is truncated to the remaining tokens, never padded.
    """

    def __init__(self, window_size: int, overlap: int):
        self.validate(window_size, overlap)
        self.window_size = window_size
        self.overlap = overlap

    @staticmethod
    def validate(window_size: int, overlap: int) -> None:
        if window_size <= 0 or overlap < 0 or overlap >= window_size:
            raise InvalidChunkConfig(window_size, overlap)

    def split(self, text: str) -> List[Passage]:
        return self.chunk(text, self.window_size, self.overlap)

    @classmethod
    def chunk(cls, text: str, window_size: int, overlap: int) -> List[Passage]:
        """
        Chunk text into ordered passages.

        Args:
            text: Extracted document text
            window_size: Tokens per passage
            overlap: Tokens shared by consecutive passages

        Returns:
            Passages with sequence 0..N-1; empty for blank text

        Raises:
            InvalidChunkConfig: Unless window_size > 0 and 0 <= overlap < window_size
        """
        cls.validate(window_size, overlap)

        spans = [(m.start(), m.end()) for m in _TOKEN.finditer(text)]
        total = len(spans)
        step = window_size - overlap
        passages: List[Passage] = []

        start = 0
        while start < total:
            end = min(start + window_size, total)
            start_offset = spans[start][0]
            end_offset = spans[end - 1][1]
            passages.append(Passage(
                sequence=len(passages),
                text=text[start_offset:end_offset],
                start_token=start,
                end_token=end,
                start_offset=start_offset,
                end_offset=end_offset,
            ))
            if end >= total:
                break
            start += step

        return passages


def merge_passages(passages: List[Passage], source: str) -> str:
    """
    Rebuild the covered span of ``source`` from overlapping passages.

    Used to check that chunking loses no text.
    """
    if not passages:
        return ""
    ordered = sorted(passages, key=lambda p: p.sequence)
    pieces = [ordered[0].text]
    covered_to = ordered[0].end_offset
    for passage in ordered[1:]:
        if passage.end_offset <= covered_to:
            continue
        new_from = max(passage.start_offset, covered_to)
        pieces.append(source[covered_to:new_from])
        pieces.append(passage.text[new_from - passage.start_offset:])
        covered_to = passage.end_offset
    return "".join(pieces)
