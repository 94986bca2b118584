"""Record deletion and statistics for one collection.

Maintenance never embeds anything, so :class:`CollectionAdmin` needs only
the vector store.  The layout shown by :meth:`CollectionAdmin.stats` is
read back from the store rather than from the configured embedding model.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from bookrag.models.rag import CollectionStats

if TYPE_CHECKING:
    from bookrag.interfaces.vector_store_provider import IVectorStoreProvider

logger = structlog.get_logger(logger_name=__name__)


class CollectionAdmin:
    """Deletes records and reports statistics for the collection *name*."""

    def __init__(self, vector_store: IVectorStoreProvider, name: str) -> None:
        self._vector_store = vector_store
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    @property
    def store_name(self) -> str:
        return self._vector_store.get_provider_name()

    async def delete_document(self, document_id: str) -> int:
        """Delete every record belonging to *document_id*."""
        deleted = await self._vector_store.delete(self._name, where={"document_id": document_id})
        logger.info("document_deleted", document_id=document_id, deleted=deleted)
        return deleted

    async def delete_records(self, record_ids: list[str]) -> int:
        """Delete records by explicit identifier."""
        if not record_ids:
            return 0
        deleted = await self._vector_store.delete(self._name, ids=record_ids)
        logger.info("records_deleted", requested=len(record_ids), deleted=deleted)
        return deleted

    async def delete_where(self, where: dict[str, Any]) -> int:
        """Delete records whose metadata equals every key of *where*.

        Raises
        ------
        ValueError
            If *where* is empty; an empty filter would match everything.
        """
        if not where:
            raise ValueError("delete_where needs at least one metadata field")
        deleted = await self._vector_store.delete(self._name, where=where)
        logger.info("records_deleted_where", where=where, deleted=deleted)
        return deleted

    async def stats(self) -> CollectionStats:
        spec = await self._vector_store.describe_collection(self._name)
        count = await self._vector_store.count(self._name) if spec is not None else 0
        return CollectionStats(name=self._name, spec=spec, record_count=count)
