"""Best-effort semantic retrieval over the vector store.

The :class:`Retriever` embeds a question, asks the store for the K
nearest records and maps the raw hits into
:class:`~bookrag.models.rag.RetrievedChunk` objects, ordered by descending
score with ties broken by ascending ``(unit_index, chunk_index)``.

Retrieval is best-effort: if the embedder or the store is unavailable the
failure is logged and an empty list is returned.  Callers treat an empty
result as "nothing found" and never receive the collaborator error.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from bookrag.models.rag import RetrievedChunk
from bookrag.utils.errors import RetrievalUnavailableError

if TYPE_CHECKING:
    from bookrag.interfaces.vector_store_provider import IVectorStoreProvider
    from bookrag.services.ingestion.embedder import Embedder

logger = structlog.get_logger(logger_name=__name__)

OUTPUT_FIELDS = [
    "document_id",
    "document_name",
    "unit_index",
    "chunk_index",
    "text",
    "date",
    "mood",
    "tags",
]


class Retriever:
    """Question-to-passages lookup against one collection.

    Parameters
    ----------
    embedder:
        Embeds the question with the same model used at ingestion time.
    vector_store:
        Store holding the collection.
    collection:
        Name of the collection to search.
    min_score:
        Optional floor; hits scoring below it are dropped.
    """

    def __init__(
        self,
        embedder: Embedder,
        vector_store: IVectorStoreProvider,
        collection: str,
        min_score: float | None = None,
    ) -> None:
        self._embedder = embedder
        self._vector_store = vector_store
        self._collection = collection
        self._min_score = min_score

    async def retrieve(self, question: str, k: int) -> list[RetrievedChunk]:
        """Return at most *k* chunks most similar to *question*.

        Raises
        ------
        ValueError
            If ``k < 1``.  Collaborator failures never raise; they yield an
            empty list.
        """
        if k < 1:
            raise ValueError(f"k must be >= 1, got {k}")

        try:
            chunks = await self._search(question, k)
        except Exception as exc:
            logger.warning(
                "retrieval_degraded",
                collection=self._collection,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return []

        logger.info(
            "retrieval_complete",
            collection=self._collection,
            k=k,
            results=len(chunks),
            top_score=chunks[0].score if chunks else None,
        )
        return chunks

    async def _search(self, question: str, k: int) -> list[RetrievedChunk]:
        """Embed and search, raising on any collaborator failure."""
        query_vector = await self._embedder.embed(question)
        try:
            hits = await self._vector_store.search(
                self._collection, query_vector, top_k=k, output_fields=OUTPUT_FIELDS
            )
        except RetrievalUnavailableError:
            raise
        except Exception as exc:
            raise RetrievalUnavailableError(
                message=f"Vector store search failed: {exc}",
                provider_name=self._vector_store.get_provider_name(),
            ) from exc

        chunks = [RetrievedChunk.from_hit(hit) for hit in hits]
        if self._min_score is not None:
            chunks = [c for c in chunks if c.score >= self._min_score]
        chunks.sort(key=lambda c: c.sort_key)
        return chunks[:k]
