"""Provider selection and service wiring from :class:`Settings`.

Every service takes its collaborators through the constructor; this module
is the one place that decides which concrete adapters to build.  Provider
imports are deferred so that, for example, the Anthropic SDK is never
imported unless an Anthropic key is configured.

Selection order:
    - Embedding: OpenAI-compatible (if a key is set) -> Nomic via Ollama
    - Generation: OpenAI-compatible -> Anthropic -> Ollama
    - Vector store: ChromaDB (always)

The collection dimension always comes from the chosen embedding provider,
so a collection built with one model is never queried with another
model's vectors.

Collection maintenance (deletes and statistics) needs no embedding model
and is built from the vector store alone.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from bookrag.config.settings import Settings
from bookrag.models.rag import CollectionSpec
from bookrag.services.ingestion.embedder import Embedder

if TYPE_CHECKING:
    from bookrag.interfaces.embedding_provider import IEmbeddingProvider
    from bookrag.interfaces.llm_provider import ILLMProvider
    from bookrag.interfaces.vector_store_provider import IVectorStoreProvider
    from bookrag.services.ingestion.collection_admin import CollectionAdmin
    from bookrag.services.ingestion.ingestion_service import IngestionService
    from bookrag.services.qa_service import QAService

logger = structlog.get_logger(logger_name=__name__)

NO_EMBEDDING_MESSAGE = (
    "No embedding provider available.\n"
    "Set one of:\n"
    "  OPENAI_API_KEY  - for an OpenAI-compatible embeddings endpoint\n"
    "  OLLAMA_BASE_URL - for nomic-embed-text via Ollama (default: http://localhost:11434)\n"
)


def build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider | None:
    """Return the first available embedding provider, or ``None``."""
    if app_settings.openai_api_key:
        from bookrag.providers.embedding.openai_embedding_provider import (
            OpenAIEmbeddingProvider,
        )

        provider = OpenAIEmbeddingProvider(settings=app_settings)
        if provider.is_available():
            return provider

    from bookrag.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider

    nomic = NomicEmbeddingProvider(settings=app_settings)
    if nomic.is_available():
        return nomic
    return None


def build_llm_provider(app_settings: Settings) -> ILLMProvider:
    """Return the preferred text-generation provider.

    Falls through to Ollama, which needs no credentials.
    """
    if app_settings.openai_api_key:
        from bookrag.providers.llm.openai_provider import OpenAILLMProvider

        return OpenAILLMProvider(settings=app_settings)
    if app_settings.anthropic_api_key:
        from bookrag.providers.llm.anthropic_provider import AnthropicLLMProvider

        return AnthropicLLMProvider(settings=app_settings)

    from bookrag.providers.llm.ollama_provider import OllamaLLMProvider

    return OllamaLLMProvider(settings=app_settings)


def build_vector_store(app_settings: Settings) -> IVectorStoreProvider:
    from bookrag.providers.vector_store.chromadb_provider import ChromaDBProvider

    return ChromaDBProvider(persist_directory=app_settings.chromadb_persist_dir)


def build_embedder(app_settings: Settings, provider: IEmbeddingProvider) -> Embedder:
    return Embedder(
        provider,
        dimension=provider.get_dimension(),
        max_concurrency=app_settings.embedding_concurrency,
        batch_size=app_settings.embedding_batch_size,
    )


def build_collection_spec(app_settings: Settings, dimension: int) -> CollectionSpec:
    return CollectionSpec(
        name=app_settings.chromadb_collection,
        dimension=dimension,
        metric=app_settings.vector_metric,
    )


def build_collection_admin(
    app_settings: Settings,
    vector_store: IVectorStoreProvider | None = None,
) -> CollectionAdmin:
    """Wire delete and stats support for the configured collection."""
    from bookrag.services.ingestion.collection_admin import CollectionAdmin

    store = vector_store or build_vector_store(app_settings)
    return CollectionAdmin(store, app_settings.chromadb_collection)


def build_ingestion_service(
    app_settings: Settings,
    vector_store: IVectorStoreProvider | None = None,
) -> tuple[IngestionService | None, str]:
    """Wire the ingestion pipeline.

    Returns
    -------
    tuple[IngestionService | None, str]
        The service and a status line, or ``None`` with an error message
        when no embedding provider is available.
    """
    from bookrag.providers.loaders.diary_loader import DiaryLoader
    from bookrag.providers.loaders.epub_loader import EPUBLoader
    from bookrag.providers.loaders.text_loader import TextBookLoader
    from bookrag.services.ingestion.chunker import TextChunker
    from bookrag.services.ingestion.ingestion_service import IngestionService

    embedding_provider = build_embedding_provider(app_settings)
    if embedding_provider is None:
        return None, NO_EMBEDDING_MESSAGE

    embedder = build_embedder(app_settings, embedding_provider)
    store = vector_store or build_vector_store(app_settings)
    service = IngestionService(
        chunker=TextChunker(app_settings.chunk_size, app_settings.chunk_overlap),
        embedder=embedder,
        vector_store=store,
        collection=build_collection_spec(app_settings, embedder.dimension),
        write_mode=app_settings.write_mode,
        strict_write_counts=app_settings.strict_write_counts,
        loaders=[EPUBLoader(), TextBookLoader(), DiaryLoader()],
    )
    status = (
        f"Embedding: {embedding_provider.get_provider_name()} ({embedder.dimension}d) "
        f"| Store: {store.get_provider_name()}/{app_settings.chromadb_collection}"
    )
    logger.info("ingestion_service_built", status=status)
    return service, status


def build_qa_service(
    app_settings: Settings,
    vector_store: IVectorStoreProvider | None = None,
    llm: ILLMProvider | None = None,
) -> tuple[QAService | None, str]:
    """Wire the query pipeline: retriever, assembler and answer generator."""
    from bookrag.services.generation.answer_generator import AnswerGenerator
    from bookrag.services.qa_service import QAService
    from bookrag.services.retrieval.context_assembler import ContextAssembler
    from bookrag.services.retrieval.retriever import Retriever

    embedding_provider = build_embedding_provider(app_settings)
    if embedding_provider is None:
        return None, NO_EMBEDDING_MESSAGE

    embedder = build_embedder(app_settings, embedding_provider)
    store = vector_store or build_vector_store(app_settings)
    llm_provider = llm or build_llm_provider(app_settings)

    service = QAService(
        retriever=Retriever(
            embedder,
            store,
            collection=app_settings.chromadb_collection,
            min_score=app_settings.retrieval_min_score,
        ),
        assembler=ContextAssembler(),
        generator=AnswerGenerator(
            llm_provider,
            role=app_settings.assistant_role,
            temperature=app_settings.generation_temperature,
            max_tokens=app_settings.generation_max_tokens,
        ),
        top_k=app_settings.retrieval_top_k,
        no_answer_message=app_settings.no_answer_message,
    )
    status = (
        f"Embedding: {embedding_provider.get_provider_name()} "
        f"| LLM: {llm_provider.get_provider_name()} "
        f"| Store: {store.get_provider_name()}/{app_settings.chromadb_collection}"
    )
    return service, status
