"""Sentence-aware chunker with sentence-level overlap.

Strategy:
- Text whose estimated size fits in ``max_tokens`` is returned as one chunk.
- Otherwise the text is split into sentences on ``.``, ``!`` and ``?`` runs and
  sentences are accumulated greedily until the next one would overflow
  ``max_tokens``. The chunk is flushed and the next chunk is seeded with as
  many trailing sentences of the flushed chunk as fit in ``overlap_tokens``.
- A single sentence larger than ``max_tokens`` flushes the pending chunk and is
  split at word boundaries. The last piece seeds the next accumulation.

Token counts use a 4-characters-per-token approximation, not a tokenizer.

Offsets: ``start_pos``/``end_pos`` index into the original text for
sentence-built chunks. Pieces of an oversized sentence get approximate offsets
because runs of whitespace between words are collapsed to one space.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import NamedTuple

CHARS_PER_TOKEN = 4
DEFAULT_MAX_TOKENS = 500
DEFAULT_OVERLAP_TOKENS = 50

# A sentence is everything up to and including a run of terminators, or the
# unterminated tail of the text.
_SENTENCE_RE = re.compile(r"[^.!?]*[.!?]+|[^.!?]+\Z")


@dataclass(frozen=True)
class TextChunk:
    """One bounded span of source text. Never persisted directly."""

    text: str
    index: int
    start_pos: int
    end_pos: int
    token_count: int


class _Span(NamedTuple):
    text: str
    start: int
    end: int


def estimate_tokens(text: str) -> int:
    """Approximate token count: ceil(len(text) / 4)."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def split_into_sentences(text: str) -> list[str]:
    """Split *text* into stripped, non-empty sentences."""
    return [s.text for s in _sentence_spans(text)]


def _sentence_spans(text: str) -> list[_Span]:
    spans: list[_Span] = []
    for match in _SENTENCE_RE.finditer(text):
        raw = match.group()
        stripped = raw.strip()
        if not stripped:
            continue
        start = match.start() + (len(raw) - len(raw.lstrip()))
        spans.append(_Span(stripped, start, start + len(stripped)))
    return spans


def _joined_length(parts: list[_Span]) -> int:
    """Length of the parts joined with single spaces."""
    if not parts:
        return 0
    return sum(len(p.text) for p in parts) + len(parts) - 1


class SentenceChunker:
    """Split text into sentence-aligned chunks of at most ``max_tokens``.

    Args:
        max_tokens: Upper bound on estimated tokens per chunk.
        overlap_tokens: Budget for sentences repeated at the head of the next chunk.
    """

    def __init__(
        self,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        overlap_tokens: int = DEFAULT_OVERLAP_TOKENS,
    ) -> None:
        if max_tokens < 1:
            raise ValueError("max_tokens must be >= 1")
        if not 0 <= overlap_tokens < max_tokens:
            raise ValueError("overlap_tokens must be in [0, max_tokens)")
        self.max_tokens = max_tokens
        self.overlap_tokens = overlap_tokens

    def chunk(self, text: str | None) -> list[TextChunk]:
        """Return ordered chunks of *text* with contiguous indices from 0."""
        if not text or not text.strip():
            return []

        if estimate_tokens(text) <= self.max_tokens:
            body = text.strip()
            return [TextChunk(body, 0, 0, len(text), estimate_tokens(body))]

        max_chars = self.max_tokens * CHARS_PER_TOKEN
        chunks: list[TextChunk] = []
        current: list[_Span] = []

        for sentence in _sentence_spans(text):
            if len(sentence.text) > max_chars:
                if current:
                    self._emit(chunks, current)
                pieces = self._split_words(sentence, max_chars)
                for piece in pieces[:-1]:
                    self._emit(chunks, [piece])
                current = [pieces[-1]]
            elif _joined_length(current + [sentence]) > max_chars:
                self._emit(chunks, current)
                current = self._overlap(current, sentence, max_chars) + [sentence]
            else:
                current.append(sentence)

        if current:
            self._emit(chunks, current)
        return chunks

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _emit(chunks: list[TextChunk], parts: list[_Span]) -> None:
        body = " ".join(p.text for p in parts)
        chunks.append(
            TextChunk(
                text=body,
                index=len(chunks),
                start_pos=parts[0].start,
                end_pos=parts[-1].end,
                token_count=estimate_tokens(body),
            )
        )

    def _overlap(self, flushed: list[_Span], incoming: _Span, max_chars: int) -> list[_Span]:
        """Trailing sentences of *flushed* that fit the overlap budget.

        Sentences are taken from the end while they fit in ``overlap_tokens``
        and the seeded chunk (overlap + *incoming*) still fits ``max_tokens``.
        """
        overlap_chars = self.overlap_tokens * CHARS_PER_TOKEN
        seed: list[_Span] = []
        for span in reversed(flushed):
            candidate = [span] + seed
            if _joined_length(candidate) > overlap_chars:
                break
            if _joined_length(candidate + [incoming]) > max_chars:
                break
            seed = candidate
        return seed

    @staticmethod
    def _split_words(sentence: _Span, max_chars: int) -> list[_Span]:
        """Split an oversized sentence at word boundaries (approximate offsets)."""
        words: list[str] = []
        for word in sentence.text.split():
            # A single word longer than the budget is cut into fixed slices.
            words.extend(word[i : i + max_chars] for i in range(0, len(word), max_chars))

        pieces: list[_Span] = []
        buf: list[str] = []
        buf_len = 0
        pos = sentence.start
        for word in words:
            added = len(word) + (1 if buf else 0)
            if buf and buf_len + added > max_chars:
                body = " ".join(buf)
                pieces.append(_Span(body, pos, pos + len(body)))
                pos += len(body) + 1
                buf, buf_len = [], 0
                added = len(word)
            buf.append(word)
            buf_len += added
        if buf:
            body = " ".join(buf)
            pieces.append(_Span(body, pos, min(pos + len(body), sentence.end)))
        return pieces


def chunk_text(
    text: str | None,
    max_tokens: int = DEFAULT_MAX_TOKENS,
    overlap_tokens: int = DEFAULT_OVERLAP_TOKENS,
) -> list[TextChunk]:
    """Functional shortcut for ``SentenceChunker(max_tokens, overlap_tokens).chunk(text)``."""
    return SentenceChunker(max_tokens, overlap_tokens).chunk(text)
