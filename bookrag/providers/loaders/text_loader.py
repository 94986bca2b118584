"""Document loader for plain-text books.

Reads a UTF-8 text file and detects chapter boundaries using heading
patterns.  Each chapter becomes a :class:`~bookrag.models.rag.Unit`; any
text before the first heading (a preface, front matter) becomes unit 1.
If no heading is found the whole file is a single unit.
"""

from __future__ import annotations

import hashlib
import re
from pathlib import Path

import structlog

from bookrag.interfaces.document_loader import IDocumentLoader
from bookrag.models.rag import Document, Unit

logger = structlog.get_logger(logger_name=__name__)

_DOCUMENT_ID_LENGTH = 16

# Chapter heading conventions, checked against each stripped line.
_CHAPTER_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"^Chapter\s+(\d+|[IVXLCDM]+)\b", re.IGNORECASE),  # "Chapter 1", "CHAPTER XII"
    re.compile(r"^PART\s+[IVXLCDM\d]+\b", re.IGNORECASE),  # "PART I", "Part 3"
    re.compile(r"^第[0-9零一二三四五六七八九十百千]+[章回节卷]"),  # "第一章", "第12回"
]

# "1. Introduction" only counts as a heading when it stands apart from the
# prose; see _is_numbered_heading.
_NUMBERED_HEADING = re.compile(r"^\d+\.\s+\S")
_NUMBERED_HEADING_MAX_LENGTH = 60
_SENTENCE_END = (".", "!", "?", ",", ";", ":", "。", "！", "？", "，", "；", "：")

_SUPPORTED_SUFFIXES = frozenset({".txt", ".text", ".md"})


def _is_numbered_heading(lines: list[str], idx: int) -> bool:
    """True for a short numbered line set off by a blank line and not part of a list."""
    stripped = lines[idx].strip()
    if not _NUMBERED_HEADING.match(stripped):
        return False
    if len(stripped) > _NUMBERED_HEADING_MAX_LENGTH or stripped.endswith(_SENTENCE_END):
        return False
    if idx > 0 and lines[idx - 1].strip():
        return False
    following = lines[idx + 1].strip() if idx + 1 < len(lines) else ""
    return not _NUMBERED_HEADING.match(following)


def content_document_id(text: str) -> str:
    """Stable document id derived from the text itself."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:_DOCUMENT_ID_LENGTH]


class TextBookLoader(IDocumentLoader):
    """Loads plain-text books, splitting on chapter headings."""

    def load(
        self,
        path: str,
        *,
        split_by_unit: bool = True,
        document_id: str | None = None,
        name: str | None = None,
    ) -> Document:
        file_path = Path(path)
        text = file_path.read_text(encoding="utf-8")

        if split_by_unit:
            sections = self.split_sections(text)
        else:
            sections = [("", text.strip())]

        units = tuple(
            Unit(unit_index=index, title=title, text=body)
            for index, (title, body) in enumerate(sections, start=1)
        )
        document = Document(
            document_id=document_id or content_document_id(text),
            name=name or file_path.stem,
            units=units,
        )
        logger.info(
            "text_book_loaded",
            file_path=str(file_path),
            document_id=document.document_id,
            units=len(units),
        )
        return document

    def supports(self, path: str) -> bool:
        return Path(path).suffix.lower() in _SUPPORTED_SUFFIXES

    def get_loader_name(self) -> str:
        return "text"

    @staticmethod
    def split_sections(text: str) -> list[tuple[str, str]]:
        """Split *text* into ``(heading, section_text)`` pairs.

        The heading line stays part of its section's text.
        """
        lines = text.split("\n")
        boundaries: list[int] = []
        for idx, line in enumerate(lines):
            stripped = line.strip()
            if not stripped:
                continue
            if any(p.match(stripped) for p in _CHAPTER_PATTERNS) or _is_numbered_heading(
                lines, idx
            ):
                boundaries.append(idx)

        if not boundaries:
            return [("", text.strip())]

        sections: list[tuple[str, str]] = []
        if boundaries[0] > 0:
            preface = "\n".join(lines[: boundaries[0]]).strip()
            if preface:
                sections.append(("", preface))

        for i, start in enumerate(boundaries):
            end = boundaries[i + 1] if i + 1 < len(boundaries) else len(lines)
            body = "\n".join(lines[start:end]).strip()
            sections.append((lines[start].strip(), body))
        return sections
