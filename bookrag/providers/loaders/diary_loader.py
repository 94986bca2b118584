"""Document loader for diary entries stored as JSON.

Accepts either a JSON array of entry objects (``.json``) or one object per
line (``.jsonl``)::

    {"date": "2026-01-10", "mood": "happy", "tags": ["life", "walk"],
     "content": "Went for a walk in the park..."}

Each entry becomes one :class:`~bookrag.models.rag.Unit` carrying the
entry's ``date``, ``mood`` and ``tags``, so they reach the vector store as
filterable metadata.  ``content`` (or ``text``) is required; every other
field is optional.  ``tags`` may be a list or a comma-separated string.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog

from bookrag.interfaces.document_loader import IDocumentLoader
from bookrag.models.rag import TAG_SEPARATOR, Document, Unit
from bookrag.providers.loaders.text_loader import content_document_id

logger = structlog.get_logger(logger_name=__name__)

_SUPPORTED_SUFFIXES = frozenset({".json", ".jsonl"})


class DiaryLoader(IDocumentLoader):
    """Loads diary entries, one unit per entry in file order."""

    def load(
        self,
        path: str,
        *,
        split_by_unit: bool = True,
        document_id: str | None = None,
        name: str | None = None,
    ) -> Document:
        file_path = Path(path)
        raw = file_path.read_text(encoding="utf-8")
        entries = self._parse_entries(raw, jsonl=file_path.suffix.lower() == ".jsonl")

        units = [self._to_unit(index, entry) for index, entry in enumerate(entries, start=1)]
        if not split_by_unit and units:
            joined = "\n\n".join(
                f"{unit.date}\n{unit.text}" if unit.date else unit.text for unit in units
            )
            units = [Unit(unit_index=1, text=joined)]

        document = Document(
            document_id=document_id or content_document_id(raw),
            name=name or file_path.stem,
            units=tuple(units),
        )
        logger.info(
            "diary_loaded",
            file_path=str(file_path),
            document_id=document.document_id,
            entries=len(entries),
        )
        return document

    def supports(self, path: str) -> bool:
        return Path(path).suffix.lower() in _SUPPORTED_SUFFIXES

    def get_loader_name(self) -> str:
        return "diary"

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_entries(raw: str, jsonl: bool) -> list[dict[str, Any]]:
        try:
            if jsonl:
                entries = [json.loads(line) for line in raw.splitlines() if line.strip()]
            else:
                entries = json.loads(raw) if raw.strip() else []
        except json.JSONDecodeError as exc:
            raise ValueError(f"Could not parse diary file: {exc}") from exc

        if isinstance(entries, dict):
            entries = entries.get("entries", [])
        if not isinstance(entries, list) or not all(isinstance(e, dict) for e in entries):
            raise ValueError("Diary file must hold a list of entry objects")
        return entries

    @staticmethod
    def _to_unit(index: int, entry: dict[str, Any]) -> Unit:
        content = entry.get("content", entry.get("text"))
        if not isinstance(content, str):
            raise ValueError(f"Diary entry {index} has no 'content' text")

        tags = entry.get("tags") or []
        if isinstance(tags, str):
            tags = tags.split(TAG_SEPARATOR)
        date = str(entry.get("date", "")).strip()
        return Unit(
            unit_index=index,
            title=str(entry.get("title") or date),
            text=content.strip(),
            date=date,
            mood=str(entry.get("mood", "")).strip(),
            tags=tuple(str(tag) for tag in tags),
        )
