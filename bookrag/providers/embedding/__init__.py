"""Embedding provider adapters."""

from bookrag.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider
from bookrag.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["NomicEmbeddingProvider", "OpenAIEmbeddingProvider"]
