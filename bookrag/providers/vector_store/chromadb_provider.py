"""ChromaDB vector store provider adapter.

Wraps ``chromadb.PersistentClient`` to implement :class:`IVectorStoreProvider`.
Fully local and Python-native, so no external service is required.

Collections are created with the requested ``hnsw:space`` metric and the
vector dimension recorded in their metadata.  ChromaDB reports distances;
they are converted to the higher-is-more-similar convention used by the
rest of bookrag:

    cosine / ip   ->  score = 1 - distance
    l2            ->  score = -distance   (squared L2, still order-preserving)
"""

from __future__ import annotations

import os
from typing import Any

# ChromaDB's bundled PostHog telemetry client breaks against newer posthog
# releases, so telemetry is disabled before chromadb is imported.
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import posthog

posthog.disabled = True

import chromadb
import structlog
from chromadb.errors import NotFoundError

from bookrag.interfaces.vector_store_provider import IVectorStoreProvider
from bookrag.models.rag import CollectionSpec, CollectionStatus, Record, SearchHit
from bookrag.utils.errors import BookRAGError, RetrievalUnavailableError, StoreWriteError

logger = structlog.get_logger(logger_name=__name__)

_WRITE_BATCH = 500


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """Embedding function that is never called.

    bookrag always passes pre-computed vectors, so this keeps ChromaDB from
    loading its default ONNX model on collection access.
    """

    def __init__(self) -> None:
        pass

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError(
            "bookrag uses pre-computed embeddings; "
            "ChromaDB's built-in embedding should never be called."
        )

    @staticmethod
    def name() -> str:
        return "noop_precomputed"


class ChromaDBProvider(IVectorStoreProvider):
    """Vector store provider backed by ChromaDB with local persistence.

    Parameters
    ----------
    persist_directory:
        Directory for the on-disk database.
    client:
        Pre-built ChromaDB client, e.g. an ``EphemeralClient`` in tests.
        When given, *persist_directory* is ignored.
    """

    def __init__(
        self,
        persist_directory: str = "./data/chromadb",
        client: Any | None = None,
    ) -> None:
        self._persist_directory = persist_directory
        if client is None:
            client = chromadb.PersistentClient(
                path=persist_directory,
                settings=chromadb.config.Settings(anonymized_telemetry=False),
            )
        self._client = client
        self._loaded: set[str] = set()

    # ------------------------------------------------------------------
    # Collection management
    # ------------------------------------------------------------------

    async def ensure_collection(self, spec: CollectionSpec) -> CollectionStatus:
        try:
            existing = self._open(spec.name)
            if existing is not None:
                self._check_compatible(existing, spec)
                logger.info("chromadb_collection_exists", collection=spec.name)
                return CollectionStatus.ALREADY_EXISTS

            self._client.create_collection(
                name=spec.name,
                metadata={"hnsw:space": spec.metric, "dimension": spec.dimension},
                embedding_function=_NoopEmbeddingFunction(),
            )
        except StoreWriteError:
            raise
        except Exception as exc:
            raise StoreWriteError(
                message=f"ChromaDB could not prepare collection {spec.name!r}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info(
            "chromadb_collection_created",
            collection=spec.name,
            metric=spec.metric,
            dimension=spec.dimension,
        )
        return CollectionStatus.CREATED

    async def load_collection(self, name: str) -> CollectionStatus:
        """Mark *name* ready for search.

        ChromaDB keeps persistent collections queryable at all times, so
        loading only verifies the collection exists.
        """
        if name in self._loaded:
            return CollectionStatus.ALREADY_LOADED
        self._require(name, RetrievalUnavailableError)
        self._loaded.add(name)
        return CollectionStatus.LOADED

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert(self, collection: str, records: list[Record]) -> int:
        """Add *records*; identifiers already present are left untouched.

        Returns the number of records actually added, measured as the
        change in collection size.
        """
        if not records:
            return 0
        target = self._require(collection, StoreWriteError)
        try:
            before = target.count()
            for start in range(0, len(records), _WRITE_BATCH):
                batch = records[start : start + _WRITE_BATCH]
                target.add(**self._to_columns(batch))
            inserted = target.count() - before
        except Exception as exc:
            raise StoreWriteError(
                message=f"ChromaDB insert failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info("chromadb_insert", collection=collection, records=len(records), inserted=inserted)
        return inserted

    async def upsert(self, collection: str, records: list[Record]) -> int:
        if not records:
            return 0
        target = self._require(collection, StoreWriteError)
        try:
            for start in range(0, len(records), _WRITE_BATCH):
                batch = records[start : start + _WRITE_BATCH]
                target.upsert(**self._to_columns(batch))
        except Exception as exc:
            raise StoreWriteError(
                message=f"ChromaDB upsert failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info("chromadb_upsert", collection=collection, records=len(records))
        return len(records)

    async def delete(
        self,
        collection: str,
        where: dict[str, Any] | None = None,
        ids: list[str] | None = None,
    ) -> int:
        if not where and not ids:
            raise ValueError("delete requires a where filter or an id list")
        target = self._open(collection)
        if target is None:
            return 0
        try:
            existing = target.get(where=self._to_where(where), ids=ids, include=["metadatas"])
            matched = existing["ids"] or []
            if matched:
                target.delete(ids=matched)
        except Exception as exc:
            raise StoreWriteError(
                message=f"ChromaDB delete failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info("chromadb_delete", collection=collection, deleted=len(matched))
        return len(matched)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def search(
        self,
        collection: str,
        query_vector: list[float],
        top_k: int,
        output_fields: list[str] | None = None,
    ) -> list[SearchHit]:
        target = self._require(collection, RetrievalUnavailableError)
        try:
            available = target.count()
            if available == 0 or top_k < 1:
                return []
            results = target.query(
                query_embeddings=[query_vector],
                n_results=min(top_k, available),
                include=["documents", "metadatas", "distances"],
            )
        except Exception as exc:
            raise RetrievalUnavailableError(
                message=f"ChromaDB query failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        ids = results["ids"][0] if results["ids"] else []
        documents = results["documents"][0] if results.get("documents") else [""] * len(ids)
        metadatas = results["metadatas"][0] if results.get("metadatas") else [{}] * len(ids)
        distances = results["distances"][0] if results.get("distances") else [0.0] * len(ids)
        metric = (target.metadata or {}).get("hnsw:space", "cosine")

        hits: list[SearchHit] = []
        for record_id, text, meta, distance in zip(ids, documents, metadatas, distances, strict=True):
            fields: dict[str, Any] = dict(meta or {})
            fields["text"] = text or ""
            if output_fields is not None:
                fields = {key: value for key, value in fields.items() if key in output_fields}
            hits.append(
                SearchHit(
                    record_id=record_id,
                    score=self._distance_to_score(float(distance), metric),
                    fields=fields,
                )
            )

        logger.debug(
            "chromadb_query",
            collection=collection,
            requested=top_k,
            results=len(hits),
            top_score=hits[0].score if hits else None,
        )
        return hits

    async def describe_collection(self, name: str) -> CollectionSpec | None:
        """Read the metric and dimension recorded when the collection was created."""
        target = self._open(name)
        if target is None:
            return None
        metadata = target.metadata or {}
        dimension = metadata.get("dimension")
        if dimension is None:
            # Created outside bookrag; fall back to the width of a stored vector.
            sample = target.get(limit=1, include=["embeddings"])
            embeddings = sample.get("embeddings")
            if embeddings is None or len(embeddings) == 0:
                return None
            dimension = len(embeddings[0])
        return CollectionSpec(
            name=name,
            dimension=int(dimension),
            metric=metadata.get("hnsw:space", "l2"),
        )

    async def count(self, collection: str) -> int:
        target = self._open(collection)
        if target is None:
            return 0
        return target.count()

    def get_provider_name(self) -> str:
        return "chromadb"

    def is_available(self) -> bool:
        """Return ``True`` if the ChromaDB client responds."""
        try:
            self._client.heartbeat()
            return True
        except Exception:
            return False

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _open(self, name: str) -> Any | None:
        """Return the named collection, or ``None`` if it does not exist."""
        try:
            return self._client.get_collection(
                name=name, embedding_function=_NoopEmbeddingFunction()
            )
        except NotFoundError:
            return None
        except ValueError:
            # Collection persisted with a different embedding function
            # config; vectors are always supplied explicitly, so open as-is.
            return self._client.get_collection(name=name)

    def _require(self, name: str, error_cls: type[BookRAGError]) -> Any:
        try:
            target = self._open(name)
        except Exception as exc:
            raise error_cls(
                message=f"ChromaDB could not open collection {name!r}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        if target is None:
            raise error_cls(
                message=f"Collection {name!r} does not exist",
                provider_name=self.get_provider_name(),
            )
        return target

    def _check_compatible(self, collection: Any, spec: CollectionSpec) -> None:
        metadata = collection.metadata or {}
        metric = metadata.get("hnsw:space", "l2")
        dimension = metadata.get("dimension")
        if metric != spec.metric or (dimension is not None and int(dimension) != spec.dimension):
            raise StoreWriteError(
                message=(
                    f"Collection {spec.name!r} exists with metric={metric} "
                    f"dimension={dimension}, expected metric={spec.metric} "
                    f"dimension={spec.dimension}"
                ),
                provider_name=self.get_provider_name(),
            )

    @staticmethod
    def _to_columns(records: list[Record]) -> dict[str, list[Any]]:
        return {
            "ids": [r.record_id for r in records],
            "embeddings": [r.vector for r in records],
            "documents": [r.text for r in records],
            "metadatas": [r.to_metadata() for r in records],
        }

    @staticmethod
    def _to_where(where: dict[str, Any] | None) -> dict[str, Any] | None:
        """ChromaDB takes one key per filter; several keys are combined with $and."""
        if not where or len(where) == 1:
            return where or None
        return {"$and": [{key: value} for key, value in where.items()]}

    @staticmethod
    def _distance_to_score(distance: float, metric: str) -> float:
        if metric == "l2":
            return -distance
        return 1.0 - distance
