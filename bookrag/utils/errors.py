"""Custom exception hierarchy for bookrag.

All application exceptions inherit from :class:`BookRAGError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "chromadb", "ollama") caused the failure.

The hierarchy is organized by pipeline stage:

    BookRAGError  (base -- catch-all for any bookrag error)
    +-- ConfigurationError          (startup / invalid settings)
    +-- EmbeddingUnavailableError   (embedder unreachable or malformed output)
    +-- RetrievalUnavailableError   (store unreachable during search)
    +-- StoreWriteError             (insert / upsert / delete failure)
    +-- GenerationUnavailableError  (text-generation call failed)
    +-- OperationCancelledError     (cooperative cancellation of a query)
    +-- IngestionUnitError          (one unit of a document failed to ingest)

"Collection already exists" and "collection already loaded" are not
errors at all: vector-store adapters report them as
:class:`~bookrag.models.rag.CollectionStatus` values.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bookrag.models.rag import IngestionReport


class BookRAGError(Exception):
    """Base exception for all bookrag errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  ``__str__`` prefixes the provider name in brackets for
    structured log output, e.g. ``[openai] Embedding request failed``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------

class ConfigurationError(BookRAGError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Collaborator errors
# ---------------------------------------------------------------------------

class EmbeddingUnavailableError(BookRAGError):
    """Raised when the embedding service fails or returns a malformed vector.

    ``chunk_index`` identifies the position of the failing text within the
    batch handed to the embedder, when known.
    """

    def __init__(
        self,
        message: str = "Embedding service unavailable",
        provider_name: str | None = None,
        chunk_index: int | None = None,
    ) -> None:
        self._chunk_index = chunk_index
        super().__init__(message=message, provider_name=provider_name)

    @property
    def chunk_index(self) -> int | None:
        return self._chunk_index


class RetrievalUnavailableError(BookRAGError):
    """Raised when the vector store cannot be searched."""

    def __init__(
        self,
        message: str = "Vector store search unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class StoreWriteError(BookRAGError):
    """Raised when an insert, upsert or delete against the vector store fails."""

    def __init__(
        self,
        message: str = "Vector store write failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class GenerationUnavailableError(BookRAGError):
    """Raised when the text-generation service errors or returns nothing."""

    def __init__(
        self,
        message: str = "Text generation unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Orchestration errors
# ---------------------------------------------------------------------------

class OperationCancelledError(BookRAGError):
    """Raised when a query is cancelled before a stage starts."""

    def __init__(
        self,
        message: str = "Operation cancelled",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class IngestionUnitError(BookRAGError):
    """Raised when one unit of a document fails to ingest.

    Units written before the failure stay committed.  ``report`` is the
    partial :class:`~bookrag.models.rag.IngestionReport` at the time of
    failure, and the original collaborator error is chained as
    ``__cause__``.
    """

    def __init__(
        self,
        unit_index: int,
        report: IngestionReport | None = None,
        message: str | None = None,
        provider_name: str | None = None,
    ) -> None:
        self._unit_index = unit_index
        self._report = report
        super().__init__(
            message=message or f"Ingestion failed at unit {unit_index}",
            provider_name=provider_name,
        )

    @property
    def unit_index(self) -> int:
        return self._unit_index

    @property
    def report(self) -> IngestionReport | None:
        return self._report
