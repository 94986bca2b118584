"""Abstract base class for text-embedding service providers.

Defines the contract for generating embedding vectors from text.
Implementations may wrap an OpenAI-compatible embeddings endpoint, Nomic
``nomic-embed-text`` served locally by Ollama, or any other backend.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   OpenAIEmbeddingProvider  - OpenAI-compatible /embeddings endpoint
#   NomicEmbeddingProvider   - nomic-embed-text via Ollama (local)
# Located in: bookrag/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by both pipelines.

    Callers normally go through
    :class:`~bookrag.services.ingestion.embedder.Embedder`, which validates
    what a provider returns before it reaches the vector store.
    """

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            One or more text strings to embed.  Implementations handle
            batching internally if the underlying API has a per-call limit.

        Returns
        -------
        list[list[float]]
            Embedding vectors corresponding positionally to *texts*.

        Raises
        ------
        bookrag.utils.errors.EmbeddingUnavailableError
            If the embedding API call fails.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string."""

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the embedding vectors.

        Must remain constant for the lifetime of the provider instance and
        match the dimension of the target collection.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"openai-text-embedding-3-small"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured and reachable."""
