"""Boundary-aware text chunking with fixed character overlap.

Splits a unit's text into consecutive windows of at most ``chunk_size``
characters.  Each window after the first starts exactly ``overlap``
characters before the end of the previous one, so adjacent chunks share
an ``overlap``-character span and dropping the first ``overlap``
characters of every chunk but the first reproduces the original text.

Inside each window the chunker prefers to cut at a natural boundary, in
this order:

1. **Paragraph** break (blank line)
2. **Line** break
3. **Sentence** end (``.``, ``!``, ``?`` followed by whitespace, or the
   CJK full stops ``。！？；``), skipping abbreviations like "Dr."
4. **Word** boundary (a space)

A boundary is only accepted in the back half of the window, so chunks
stay close to the configured size.  With no usable boundary the window is
hard-cut at ``chunk_size``.  Text is never stripped or rewritten, which
keeps chunking byte-for-byte deterministic.
"""

from __future__ import annotations

import re

import structlog

from bookrag.models.rag import Chunk, Unit

logger = structlog.get_logger(logger_name=__name__)

# Periods after these words do not end a sentence.
_ABBREVIATIONS = frozenset(
    {
        "Dr",
        "Mr",
        "Mrs",
        "Ms",
        "Prof",
        "Jr",
        "Sr",
        "St",
        "Vol",
        "No",
        "vs",
        "etc",
        "approx",
        "inc",
        "ltd",
        "co",
    }
)

_SENTENCE_END = re.compile(r"[.!?][\"'”’)\]]*\s|[。！？；][”」』]*")
_WORD_BEFORE = re.compile(r"(\w+)$")


class TextChunker:
    """Splits unit text into overlapping, boundary-aligned chunks.

    Parameters
    ----------
    chunk_size:
        Maximum number of characters per chunk.  Must be positive.
    overlap:
        Number of characters shared by adjacent chunks.  Must satisfy
        ``0 <= overlap < chunk_size``.

    Raises
    ------
    ValueError
        If the size/overlap combination is invalid.
    """

    def __init__(self, chunk_size: int = 500, overlap: int = 50) -> None:
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if not 0 <= overlap < chunk_size:
            raise ValueError(f"overlap must be in [0, {chunk_size}), got {overlap}")
        self._chunk_size = chunk_size
        self._overlap = overlap

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def overlap(self) -> int:
        return self._overlap

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def split(self, text: str) -> list[str]:
        """Split *text* into ordered chunk strings.

        Empty or whitespace-only text yields an empty list.
        """
        if not text or not text.strip():
            return []

        size = self._chunk_size
        overlap = self._overlap
        length = len(text)
        # Earliest acceptable cut, relative to the window start.  Must stay
        # above ``overlap`` so every step advances.
        min_cut = max(overlap + 1, size // 2)

        pieces: list[str] = []
        start = 0
        while True:
            if length - start <= size:
                pieces.append(text[start:])
                break
            window = text[start : start + size]
            cut = self._find_cut(window, min_cut)
            end = start + cut
            pieces.append(text[start:end])
            start = end - overlap

        return pieces

    def chunk_unit(self, document_id: str, document_name: str, unit: Unit) -> list[Chunk]:
        """Split one unit into :class:`Chunk` models numbered from 0."""
        chunks = [
            Chunk(
                document_id=document_id,
                document_name=document_name,
                unit_index=unit.unit_index,
                chunk_index=index,
                text=piece,
                date=unit.date,
                mood=unit.mood,
                tags=unit.tags,
            )
            for index, piece in enumerate(self.split(unit.text))
        ]
        logger.debug(
            "chunking_complete",
            document_id=document_id,
            unit_index=unit.unit_index,
            num_chunks=len(chunks),
        )
        return chunks

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _find_cut(self, window: str, min_cut: int) -> int:
        """Return the cut offset for a full-size window."""
        for separator in ("\n\n", "\n"):
            pos = window.rfind(separator)
            if pos != -1 and pos + len(separator) >= min_cut:
                return pos + len(separator)

        sentence_cut = self._last_sentence_break(window, min_cut)
        if sentence_cut is not None:
            return sentence_cut

        pos = window.rfind(" ")
        if pos != -1 and pos + 1 >= min_cut:
            return pos + 1

        return len(window)

    @staticmethod
    def _last_sentence_break(window: str, min_cut: int) -> int | None:
        """Offset just past the last sentence end at or after *min_cut*."""
        best: int | None = None
        for match in _SENTENCE_END.finditer(window):
            if match.end() < min_cut:
                continue
            if window[match.start()] == ".":
                word = _WORD_BEFORE.search(window, 0, match.start())
                if word and word.group(1) in _ABBREVIATIONS:
                    continue
            best = match.end()
        return best
