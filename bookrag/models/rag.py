"""RAG pipeline data models.

Defines Pydantic v2 models for the documents being ingested, the chunks
and records derived from them, vector-store search results, and the
reports produced by ingestion and question answering.  All models use
frozen config so that nothing downstream can mutate a chunk or a result
after it has been created.

Pipeline overview:

    1. LOADING: a document loader turns a file into a :class:`Document`
       made of ordered :class:`Unit` objects (chapters).
    2. CHUNKING: each unit is split into overlapping :class:`Chunk` spans.
    3. EMBEDDING + STORAGE: each chunk plus its vector becomes a
       :class:`Record` written to the vector store.
    4. RETRIEVAL: a question vector is matched against stored records,
       producing ranked :class:`RetrievedChunk` objects.
    5. GENERATION: retrieved passages become the context for the answer.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

TAG_SEPARATOR = ","


def make_record_id(document_id: str, unit_index: int, chunk_index: int) -> str:
    """Render the composite chunk key as a persisted record identifier."""
    return f"{document_id}_{unit_index}_{chunk_index}"


# ---------------------------------------------------------------------------
# Document / Unit: the loaded source text.
# ---------------------------------------------------------------------------
class Unit(BaseModel):
    """One addressable division of a document, usually a chapter."""

    model_config = ConfigDict(frozen=True)

    unit_index: int = Field(ge=1, description="1-based, stable position within the document.")
    title: str = Field(default="", description="Heading of the unit, if one was detected.")
    text: str = Field(description="Raw text of the unit.")
    date: str = Field(default="", description="Entry date for diary units, e.g. 2026-01-10.")
    mood: str = Field(default="", description="Mood label for diary units.")
    tags: tuple[str, ...] = Field(default=(), description="Free-form labels for diary units.")

    @field_validator("tags")
    @classmethod
    def _check_tags(cls, tags: tuple[str, ...]) -> tuple[str, ...]:
        cleaned = tuple(tag.strip() for tag in tags if tag.strip())
        for tag in cleaned:
            if TAG_SEPARATOR in tag:
                raise ValueError(f"tag {tag!r} must not contain {TAG_SEPARATOR!r}")
        return cleaned


class Document(BaseModel):
    """An immutable, ordered sequence of units loaded from one source file."""

    model_config = ConfigDict(frozen=True)

    document_id: str = Field(min_length=1, description="Stable identifier of the document.")
    name: str = Field(description="Display name, e.g. the book title or file stem.")
    units: tuple[Unit, ...] = Field(default=(), description="Units in reading order.")

    @model_validator(mode="after")
    def _check_unit_order(self) -> Document:
        previous = 0
        for unit in self.units:
            if unit.unit_index <= previous:
                raise ValueError(
                    f"unit indices must be strictly ascending, got {unit.unit_index} "
                    f"after {previous}"
                )
            previous = unit.unit_index
        return self


# ---------------------------------------------------------------------------
# Chunk / Record: the ingestion path.
# ---------------------------------------------------------------------------
class Chunk(BaseModel):
    """A bounded span of text derived from exactly one unit.

    Identity is the composite ``(document_id, unit_index, chunk_index)``,
    rendered by :attr:`record_id`.  Re-chunking the same text with the same
    parameters yields the same identifiers.
    """

    model_config = ConfigDict(frozen=True)

    document_id: str
    document_name: str = ""
    unit_index: int = Field(ge=1)
    chunk_index: int = Field(ge=0, description="0-based position within the unit.")
    text: str
    date: str = ""
    mood: str = ""
    tags: tuple[str, ...] = ()

    @property
    def record_id(self) -> str:
        return make_record_id(self.document_id, self.unit_index, self.chunk_index)


class Record(BaseModel):
    """The persisted form of a chunk: its text, metadata and embedding."""

    model_config = ConfigDict(frozen=True)

    record_id: str
    vector: list[float]
    document_id: str
    document_name: str = ""
    unit_index: int
    chunk_index: int
    text: str
    date: str = ""
    mood: str = ""
    tags: tuple[str, ...] = ()

    @classmethod
    def from_chunk(cls, chunk: Chunk, vector: list[float]) -> Record:
        return cls(
            record_id=chunk.record_id,
            vector=vector,
            document_id=chunk.document_id,
            document_name=chunk.document_name,
            unit_index=chunk.unit_index,
            chunk_index=chunk.chunk_index,
            text=chunk.text,
            date=chunk.date,
            mood=chunk.mood,
            tags=chunk.tags,
        )

    def to_metadata(self) -> dict[str, str | int]:
        """Scalar metadata stored alongside the vector.

        Diary fields are only present when set, so they can be used as
        equality filters (``mood == "sad"``).  Tags are stored joined by
        :data:`TAG_SEPARATOR` because store metadata must be scalar.
        """
        metadata: dict[str, str | int] = {
            "document_id": self.document_id,
            "document_name": self.document_name,
            "unit_index": self.unit_index,
            "chunk_index": self.chunk_index,
        }
        if self.date:
            metadata["date"] = self.date
        if self.mood:
            metadata["mood"] = self.mood
        if self.tags:
            metadata["tags"] = TAG_SEPARATOR.join(self.tags)
        return metadata


# ---------------------------------------------------------------------------
# Vector-store contract types.
# ---------------------------------------------------------------------------
Metric = Literal["cosine", "ip", "l2"]


class CollectionSpec(BaseModel):
    """Name, vector dimension and similarity metric of a collection."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    dimension: int = Field(gt=0)
    metric: Metric = "cosine"


class CollectionStats(BaseModel):
    """Record count of a collection plus its stored layout.

    ``spec`` is ``None`` when the collection has not been created yet.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    spec: CollectionSpec | None = None
    record_count: int = 0


class CollectionStatus(str, Enum):
    """Structured outcome of preparing or loading a collection.

    Every member is a success.  "Already exists" and "already loaded" are
    reported here rather than raised so callers never inspect error text.
    """

    CREATED = "created"
    ALREADY_EXISTS = "already_exists"
    LOADED = "loaded"
    ALREADY_LOADED = "already_loaded"


class SearchHit(BaseModel):
    """One raw result from a vector-store search.

    ``score`` follows the higher-is-more-similar convention regardless of
    the store's native distance.
    """

    model_config = ConfigDict(frozen=True)

    record_id: str
    score: float
    fields: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# RetrievedChunk: the query path.
# ---------------------------------------------------------------------------
class RetrievedChunk(BaseModel):
    """A stored chunk returned by retrieval, with its similarity score."""

    model_config = ConfigDict(frozen=True)

    record_id: str
    document_id: str = ""
    document_name: str = ""
    unit_index: int = 0
    chunk_index: int = 0
    text: str = ""
    date: str = ""
    mood: str = ""
    tags: tuple[str, ...] = ()
    score: float = Field(description="Similarity to the question; higher is closer.")

    @property
    def sort_key(self) -> tuple[float, int, int]:
        """Descending score, then ascending (unit, chunk) position."""
        return (-self.score, self.unit_index, self.chunk_index)

    @classmethod
    def from_hit(cls, hit: SearchHit) -> RetrievedChunk:
        fields = hit.fields
        return cls(
            record_id=hit.record_id,
            document_id=str(fields.get("document_id", "")),
            document_name=str(fields.get("document_name", "")),
            unit_index=int(fields.get("unit_index", 0)),
            chunk_index=int(fields.get("chunk_index", 0)),
            text=str(fields.get("text", "")),
            date=str(fields.get("date", "")),
            mood=str(fields.get("mood", "")),
            tags=tuple(tag for tag in str(fields.get("tags", "")).split(TAG_SEPARATOR) if tag),
            score=hit.score,
        )


# ---------------------------------------------------------------------------
# Ingestion reporting.
# ---------------------------------------------------------------------------
class IngestionState(str, Enum):
    """Lifecycle of a single ingestion run."""

    IDLE = "idle"
    PREPARING_STORE = "preparing_store"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    WRITING = "writing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class UnitOutcome(BaseModel):
    """What happened to one unit during ingestion."""

    model_config = ConfigDict(frozen=True)

    unit_index: int
    status: Literal["written", "skipped", "failed"]
    chunk_count: int = Field(default=0, ge=0)
    inserted_count: int = Field(default=0, ge=0)
    error: str | None = None
    count_mismatch: bool = False


class IngestionReport(BaseModel):
    """Final tally of an ingestion run plus the per-unit outcomes."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    document_name: str = ""
    collection: str = ""
    state: IngestionState = IngestionState.IDLE
    units: tuple[UnitOutcome, ...] = ()
    total_inserted: int = Field(default=0, ge=0)
    total_chunks: int = Field(default=0, ge=0)
    ingestion_time: float = Field(default=0.0, ge=0.0, description="Wall-clock seconds.")

    @property
    def failed_unit(self) -> int | None:
        for outcome in self.units:
            if outcome.status == "failed":
                return outcome.unit_index
        return None

    @property
    def units_written(self) -> int:
        return sum(1 for outcome in self.units if outcome.status == "written")


# ---------------------------------------------------------------------------
# QAResponse: result of one question.
# ---------------------------------------------------------------------------
class QAResponse(BaseModel):
    """Answer text plus the passages it was grounded on."""

    model_config = ConfigDict(frozen=True)

    question: str
    answer: str
    sources: tuple[RetrievedChunk, ...] = ()
    used_fallback: bool = Field(
        default=False,
        description="True when nothing was retrieved and the fixed no-answer message was returned.",
    )
