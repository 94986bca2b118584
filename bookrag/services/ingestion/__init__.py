"""Ingestion pipeline: chunk, embed and write documents unit by unit."""

from bookrag.services.ingestion.chunker import TextChunker
from bookrag.services.ingestion.collection_admin import CollectionAdmin
from bookrag.services.ingestion.embedder import Embedder
from bookrag.services.ingestion.ingestion_service import IngestionService

__all__ = ["CollectionAdmin", "Embedder", "IngestionService", "TextChunker"]
