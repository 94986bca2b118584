"""Abstract base class for vector-store providers.

The store owns persistence, indexing and nearest-neighbour search.  The
ingestion and retrieval services only hand it records and query vectors;
they never build an index themselves.

Collection preparation returns a
:class:`~bookrag.models.rag.CollectionStatus` instead of raising when the
collection already exists or is already loaded, so callers distinguish
those outcomes structurally.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from bookrag.models.rag import CollectionSpec, CollectionStatus, Record, SearchHit


# Concrete implementations: ChromaDBProvider
# Located in: bookrag/providers/vector_store/
class IVectorStoreProvider(ABC):
    """Contract for vector storage and similarity search."""

    @abstractmethod
    async def ensure_collection(self, spec: CollectionSpec) -> CollectionStatus:
        """Create the collection described by *spec* if it does not exist.

        Returns
        -------
        CollectionStatus
            ``CREATED`` for a new collection, ``ALREADY_EXISTS`` otherwise.

        Raises
        ------
        bookrag.utils.errors.StoreWriteError
            If the store is unreachable or the existing collection is
            incompatible with *spec* (different dimension or metric).
        """

    @abstractmethod
    async def load_collection(self, name: str) -> CollectionStatus:
        """Make the collection ready for search.

        Returns ``LOADED`` on the first call and ``ALREADY_LOADED`` after.
        """

    @abstractmethod
    async def insert(self, collection: str, records: list[Record]) -> int:
        """Write *records* as one batch and return the count the store reports.

        The count may be lower than ``len(records)`` when the store already
        holds some of the identifiers.
        """

    @abstractmethod
    async def upsert(self, collection: str, records: list[Record]) -> int:
        """Insert-or-replace *records* by identifier and return the count written."""

    @abstractmethod
    async def search(
        self,
        collection: str,
        query_vector: list[float],
        top_k: int,
        output_fields: list[str] | None = None,
    ) -> list[SearchHit]:
        """Return up to *top_k* nearest records, most similar first.

        Parameters
        ----------
        collection:
            Collection to search.
        query_vector:
            Query embedding, same dimension as the collection.
        top_k:
            Maximum number of hits.  Fewer are returned when the collection
            holds fewer records.
        output_fields:
            Record fields to include in :attr:`SearchHit.fields`.  ``None``
            returns all stored fields.

        Raises
        ------
        bookrag.utils.errors.RetrievalUnavailableError
            If the store cannot be searched.
        """

    @abstractmethod
    async def delete(
        self,
        collection: str,
        where: dict[str, Any] | None = None,
        ids: list[str] | None = None,
    ) -> int:
        """Delete records matching a metadata filter or an id list.

        *where* maps metadata keys to values; a record matches when every
        key is equal, e.g. ``{"mood": "sad"}``.  When both arguments are
        given a record must satisfy both.

        Returns the number of records deleted.
        """

    @abstractmethod
    async def describe_collection(self, name: str) -> CollectionSpec | None:
        """Return the stored name, dimension and metric, or ``None`` if absent."""

    @abstractmethod
    async def count(self, collection: str) -> int:
        """Return the number of records in *collection* (0 if it does not exist)."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"chromadb"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the store can be reached."""
