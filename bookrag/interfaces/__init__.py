"""Public interface definitions for all external collaborators.

Every external service is accessed through the abstract base classes
defined in this package.  Concrete adapters live in ``bookrag/providers/``
and are injected into the services at construction time, so tests can
substitute in-memory doubles.

    Interface              ->  Concrete implementations
    -------------------------------------------------------------
    IEmbeddingProvider     ->  OpenAIEmbeddingProvider, NomicEmbeddingProvider
    IVectorStoreProvider   ->  ChromaDBProvider
    ILLMProvider           ->  OpenAILLMProvider, AnthropicLLMProvider,
                               OllamaLLMProvider
    IDocumentLoader        ->  EPUBLoader, TextBookLoader
"""

from bookrag.interfaces.document_loader import IDocumentLoader
from bookrag.interfaces.embedding_provider import IEmbeddingProvider
from bookrag.interfaces.llm_provider import ILLMProvider
from bookrag.interfaces.vector_store_provider import IVectorStoreProvider

__all__ = [
    "IDocumentLoader",
    "IEmbeddingProvider",
    "ILLMProvider",
    "IVectorStoreProvider",
]
