"""Abstract base class for document loaders.

A loader reads one source file (an EPUB, a plain-text book) and returns a
:class:`~bookrag.models.rag.Document` whose units are the file's chapters.
Parsing the file format is the loader's concern alone; the ingestion
service only sees units of raw text.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from bookrag.models.rag import Document


# Concrete implementations: EPUBLoader, TextBookLoader, DiaryLoader
# Located in: bookrag/providers/loaders/
class IDocumentLoader(ABC):
    """Contract for turning a file into an ordered sequence of units."""

    @abstractmethod
    def load(
        self,
        path: str,
        *,
        split_by_unit: bool = True,
        document_id: str | None = None,
        name: str | None = None,
    ) -> Document:
        """Load *path* into a document.

        Parameters
        ----------
        path:
            Filesystem path of the source file.
        split_by_unit:
            When ``True`` every chapter becomes its own unit.  When
            ``False`` the whole text is returned as a single unit.
        document_id:
            Explicit document identifier.  Defaults to a stable hash of the
            text so that re-loading the same file yields the same id.
        name:
            Display name.  Defaults to the file stem.

        Raises
        ------
        FileNotFoundError
            If *path* does not exist.
        ValueError
            If the file cannot be parsed.
        """

    @abstractmethod
    def supports(self, path: str) -> bool:
        """Return ``True`` if this loader understands *path*'s format."""

    @abstractmethod
    def get_loader_name(self) -> str:
        """Return a short identifier, e.g. ``"epub"``."""
