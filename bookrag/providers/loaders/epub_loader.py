"""Document loader for EPUB books.

Reads EPUB files using ebooklib and turns each XHTML document in the
spine (typically one per chapter) into a :class:`~bookrag.models.rag.Unit`.
HTML is stripped with BeautifulSoup; the first ``h1``-``h3`` heading
becomes the unit title.

Unit indices follow spine order and are stable across runs.  Documents
with no text (cover pages, image-only pages) are kept as empty units so
the numbering never shifts; the ingestion service skips them.
"""

from __future__ import annotations

import re
from pathlib import Path

import ebooklib
import structlog
from bs4 import BeautifulSoup
from ebooklib import epub

from bookrag.interfaces.document_loader import IDocumentLoader
from bookrag.models.rag import Document, Unit
from bookrag.providers.loaders.text_loader import content_document_id

logger = structlog.get_logger(logger_name=__name__)

# Collapse excessive whitespace while preserving paragraph breaks.
_MULTI_NEWLINE = re.compile(r"\n{3,}")
_MULTI_SPACE = re.compile(r"[ \t]{2,}")
_HEADING = re.compile(r"^h[1-3]$")


class EPUBLoader(IDocumentLoader):
    """Loads ``.epub`` files, one unit per spine document."""

    def load(
        self,
        path: str,
        *,
        split_by_unit: bool = True,
        document_id: str | None = None,
        name: str | None = None,
    ) -> Document:
        file_path = Path(path)
        if not file_path.is_file():
            raise FileNotFoundError(path)

        chapters = self._extract_chapters(file_path)
        full_text = "\n\n".join(text for _, text in chapters if text)
        if split_by_unit:
            units = tuple(
                Unit(unit_index=index, title=title, text=text)
                for index, (title, text) in enumerate(chapters, start=1)
            )
        else:
            units = (Unit(unit_index=1, title=name or file_path.stem, text=full_text),)

        document = Document(
            document_id=document_id or content_document_id(full_text),
            name=name or file_path.stem,
            units=units,
        )
        logger.info(
            "epub_loaded",
            file_path=str(file_path),
            document_id=document.document_id,
            units=len(units),
            empty_units=sum(1 for unit in units if not unit.text),
        )
        return document

    def supports(self, path: str) -> bool:
        return Path(path).suffix.lower() == ".epub"

    def get_loader_name(self) -> str:
        return "epub"

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_chapters(file_path: Path) -> list[tuple[str, str]]:
        """Return ``(title, text)`` for each spine document, in reading order."""
        try:
            book = epub.read_epub(str(file_path), options={"ignore_ncx": True})
        except Exception as exc:
            raise ValueError(f"Could not read EPUB {file_path.name!r}: {exc}") from exc

        items = []
        for idref, _linear in book.spine:
            item = book.get_item_with_id(idref)
            if item is not None and item.get_type() == ebooklib.ITEM_DOCUMENT:
                items.append(item)
        if not items:
            items = list(book.get_items_of_type(ebooklib.ITEM_DOCUMENT))

        chapters: list[tuple[str, str]] = []
        for item in items:
            html_content = item.get_content().decode("utf-8", errors="replace")
            soup = BeautifulSoup(html_content, "html.parser")

            body = soup.body or soup
            heading = body.find(_HEADING)
            title = heading.get_text(strip=True) if heading else ""

            text = body.get_text(separator="\n")
            text = _MULTI_SPACE.sub(" ", text)
            text = _MULTI_NEWLINE.sub("\n\n", text)
            chapters.append((title, text.strip()))

        if not any(text for _, text in chapters):
            logger.warning("epub_no_text_extracted", file_path=str(file_path))
        return chapters
