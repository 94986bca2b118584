"""Render retrieved passages into a single labelled context block.

Each passage becomes a block like::

    [Passage 1]
    Source: moby_dick
    Chapter: 3
    Chunk: 7
    Score: 0.8123
    Content:
    Call me Ishmael. ...

Diary entries also carry ``Date:``, ``Mood:`` and ``Tags:`` lines, placed
after ``Chunk:`` and only when the entry has them.

Blocks appear in input order (the retriever has already ranked them) and
are joined with a fixed, visually distinct delimiter.  ``Content:`` is
always the last label of a block so the passage text follows verbatim.
"""

from __future__ import annotations

from bookrag.models.rag import RetrievedChunk

DELIMITER = "\n\n━━━━━\n\n"


class ContextAssembler:
    """Builds the context string handed to the answer generator."""

    def __init__(self, delimiter: str = DELIMITER, show_scores: bool = True) -> None:
        self._delimiter = delimiter
        self._show_scores = show_scores

    def assemble(self, chunks: list[RetrievedChunk]) -> str:
        """Render *chunks* in order.  An empty list renders as ``""``."""
        return self._delimiter.join(
            self._render(rank, chunk) for rank, chunk in enumerate(chunks, start=1)
        )

    def _render(self, rank: int, chunk: RetrievedChunk) -> str:
        lines = [f"[Passage {rank}]"]
        if chunk.document_name:
            lines.append(f"Source: {chunk.document_name}")
        lines.append(f"Chapter: {chunk.unit_index}")
        lines.append(f"Chunk: {chunk.chunk_index}")
        if chunk.date:
            lines.append(f"Date: {chunk.date}")
        if chunk.mood:
            lines.append(f"Mood: {chunk.mood}")
        if chunk.tags:
            lines.append(f"Tags: {', '.join(chunk.tags)}")
        if self._show_scores:
            lines.append(f"Score: {chunk.score:.4f}")
        lines.append("Content:")
        lines.append(chunk.text)
        return "\n".join(lines)
