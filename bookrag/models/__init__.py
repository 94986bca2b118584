"""Pydantic data models for bookrag."""

from bookrag.models.rag import (
    Chunk,
    CollectionSpec,
    CollectionStats,
    CollectionStatus,
    Document,
    IngestionReport,
    IngestionState,
    QAResponse,
    Record,
    RetrievedChunk,
    SearchHit,
    Unit,
    UnitOutcome,
    make_record_id,
)

__all__ = [
    "Chunk",
    "CollectionSpec",
    "CollectionStats",
    "CollectionStatus",
    "Document",
    "IngestionReport",
    "IngestionState",
    "QAResponse",
    "Record",
    "RetrievedChunk",
    "SearchHit",
    "Unit",
    "UnitOutcome",
    "make_record_id",
]
