"""Shared pytest fixtures for the bookrag test suite."""

from __future__ import annotations

import hashlib
import struct
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import structlog

from bookrag.interfaces.embedding_provider import IEmbeddingProvider
from bookrag.interfaces.llm_provider import ILLMProvider
from bookrag.interfaces.vector_store_provider import IVectorStoreProvider
from bookrag.models.rag import (
    CollectionSpec,
    CollectionStatus,
    Document,
    Record,
    SearchHit,
    Unit,
)
from bookrag.utils.errors import EmbeddingUnavailableError, RetrievalUnavailableError


def _configure_test_logging() -> None:
    # Loggers must not hold on to pytest's per-test capture streams.
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        logger_factory=structlog.ReturnLoggerFactory(),
        cache_logger_on_first_use=False,
    )


_configure_test_logging()


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    _configure_test_logging()


# ---------------------------------------------------------------------------
# Deterministic embeddings
# ---------------------------------------------------------------------------

_EMBEDDING_DIM = 128


def _hash_to_vector(text: str, dim: int = _EMBEDDING_DIM) -> list[float]:
    """Generate a deterministic fixed-length vector by hashing *text*.

    Uses SHA-256 to hash the text, then unpacks bytes into floats and
    normalises to unit length.  Same text always produces the same vector.
    """
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    raw = digest
    while len(raw) < dim * 4:
        raw += hashlib.sha256(raw).digest()
    raw = raw[: dim * 4]
    # Unpack as unsigned ints so NaN/inf bit patterns never appear.
    values = [v / 2**32 - 0.5 for v in struct.unpack(f"<{dim}I", raw)]
    magnitude = max(sum(v * v for v in values) ** 0.5, 1e-10)
    return [v / magnitude for v in values]


class MockEmbeddingProvider(IEmbeddingProvider):
    """In-memory deterministic embedding provider for tests.

    Any text containing one of ``fail_on`` raises
    :class:`EmbeddingUnavailableError`, which lets tests break a single
    chunk of a single unit.
    """

    def __init__(self, dim: int = _EMBEDDING_DIM, fail_on: set[str] | None = None) -> None:
        self._dim = dim
        self.fail_on = set(fail_on or ())
        self.calls = 0

    def _vector(self, text: str) -> list[float]:
        if any(marker in text for marker in self.fail_on):
            raise EmbeddingUnavailableError(
                message="mock embedding outage", provider_name="mock-embedding"
            )
        return _hash_to_vector(text, self._dim)

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls += 1
        return [self._vector(t) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        self.calls += 1
        return self._vector(text)

    def get_dimension(self) -> int:
        return self._dim

    def get_provider_name(self) -> str:
        return "mock-embedding"

    def is_available(self) -> bool:
        return True


class MockVectorStore(IVectorStoreProvider):
    """In-memory vector store backed by a dict per collection.

    Scores hits by dot product, which equals cosine similarity for the
    unit-length vectors produced by :func:`_hash_to_vector`.
    """

    def __init__(self) -> None:
        self.collections: dict[str, dict[str, Record]] = {}
        self.specs: dict[str, CollectionSpec] = {}
        self.loaded: set[str] = set()
        self.write_calls: list[tuple[str, list[str]]] = []
        self.fail_search = False
        self.short_count: int | None = None

    async def ensure_collection(self, spec: CollectionSpec) -> CollectionStatus:
        if spec.name in self.collections:
            return CollectionStatus.ALREADY_EXISTS
        self.collections[spec.name] = {}
        self.specs[spec.name] = spec
        return CollectionStatus.CREATED

    async def load_collection(self, name: str) -> CollectionStatus:
        if name in self.loaded:
            return CollectionStatus.ALREADY_LOADED
        self.loaded.add(name)
        return CollectionStatus.LOADED

    async def insert(self, collection: str, records: list[Record]) -> int:
        self.write_calls.append(("insert", [r.record_id for r in records]))
        store = self.collections[collection]
        added = 0
        for record in records:
            if record.record_id not in store:
                store[record.record_id] = record
                added += 1
        if self.short_count is not None:
            return self.short_count
        return added

    async def upsert(self, collection: str, records: list[Record]) -> int:
        self.write_calls.append(("upsert", [r.record_id for r in records]))
        store = self.collections[collection]
        for record in records:
            store[record.record_id] = record
        return len(records)

    async def search(
        self,
        collection: str,
        query_vector: list[float],
        top_k: int,
        output_fields: list[str] | None = None,
    ) -> list[SearchHit]:
        if self.fail_search:
            raise RetrievalUnavailableError("mock store offline", provider_name="mock-store")
        scored: list[SearchHit] = []
        for record in self.collections.get(collection, {}).values():
            score = sum(a * b for a, b in zip(query_vector, record.vector))
            fields: dict[str, Any] = {**record.to_metadata(), "text": record.text}
            if output_fields is not None:
                fields = {k: v for k, v in fields.items() if k in output_fields}
            scored.append(SearchHit(record_id=record.record_id, score=score, fields=fields))
        scored.sort(key=lambda hit: hit.score, reverse=True)
        return scored[:top_k]

    async def delete(
        self,
        collection: str,
        where: dict[str, Any] | None = None,
        ids: list[str] | None = None,
    ) -> int:
        if not where and not ids:
            raise ValueError("delete requires a where filter or an id list")
        store = self.collections.get(collection, {})
        doomed = [
            rid
            for rid, record in store.items()
            if (ids is None or rid in ids)
            and all(record.to_metadata().get(k) == v for k, v in (where or {}).items())
        ]
        for rid in doomed:
            del store[rid]
        return len(doomed)

    async def count(self, collection: str) -> int:
        return len(self.collections.get(collection, {}))

    async def describe_collection(self, name: str) -> CollectionSpec | None:
        return self.specs.get(name)

    def get_provider_name(self) -> str:
        return "mock-store"

    def is_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def embedding_provider() -> MockEmbeddingProvider:
    return MockEmbeddingProvider()


@pytest.fixture
def vector_store() -> MockVectorStore:
    return MockVectorStore()


@pytest.fixture
def collection_spec() -> CollectionSpec:
    return CollectionSpec(name="test_books", dimension=_EMBEDDING_DIM, metric="cosine")


@pytest.fixture
def mock_llm_provider() -> ILLMProvider:
    """Mock ILLMProvider that returns a fixed answer.

    Override with ``mock_llm_provider.complete.return_value = "custom"`` or
    ``mock_llm_provider.complete.side_effect = ...`` for specific tests.
    """
    mock = MagicMock(spec=ILLMProvider)
    mock.get_provider_name.return_value = "mock-llm"
    mock.is_available.return_value = True
    mock.validate_credentials = AsyncMock(return_value=True)
    mock.complete = AsyncMock(return_value="Ishmael goes to sea to drive off the spleen.")
    return mock


_CHAPTER_ONE = (
    "Call me Ishmael. Some years ago, never mind how long precisely, having "
    "little or no money in my purse, and nothing particular to interest me on "
    "shore, I thought I would sail about a little and see the watery part of "
    "the world. It is a way I have of driving off the spleen and regulating "
    "the circulation."
)

_CHAPTER_TWO = (
    "I stuffed a shirt or two into my old carpet-bag, tucked it under my arm, "
    "and started for Cape Horn and the Pacific. Quitting the good city of old "
    "Manhatto, I duly arrived in New Bedford. It was a Saturday night in "
    "December."
)

_CHAPTER_THREE = (
    "Entering that gable-ended Spouter-Inn, you found yourself in a wide, low, "
    "straggling entry with old-fashioned wainscots, reminding one of the "
    "bulwarks of some condemned old craft."
)


@pytest.fixture
def sample_document() -> Document:
    """Three-chapter document with short, distinct chapters."""
    return Document(
        document_id="moby",
        name="Moby Dick",
        units=(
            Unit(unit_index=1, title="Loomings", text=_CHAPTER_ONE),
            Unit(unit_index=2, title="The Carpet-Bag", text=_CHAPTER_TWO),
            Unit(unit_index=3, title="The Spouter-Inn", text=_CHAPTER_THREE),
        ),
    )
