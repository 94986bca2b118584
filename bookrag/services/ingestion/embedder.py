"""Validated, order-preserving embedding adapter.

Wraps an :class:`~bookrag.interfaces.embedding_provider.IEmbeddingProvider`
and guarantees that whatever comes back is a vector of the configured
dimension made of finite numbers.  Anything else (an unreachable service,
a short vector, a ``None`` inside the list) becomes an
:class:`~bookrag.utils.errors.EmbeddingUnavailableError`.  A zero vector is
never substituted for a failed embedding.

Batches are split into provider calls of ``batch_size`` texts that run
concurrently under a semaphore, then re-joined in input order so that
``vectors[i]`` is always the embedding of ``texts[i]``.
"""

from __future__ import annotations

import asyncio
import math
from numbers import Real

import structlog

from bookrag.interfaces.embedding_provider import IEmbeddingProvider
from bookrag.utils.concurrency import throttled_gather
from bookrag.utils.errors import EmbeddingUnavailableError

logger = structlog.get_logger(logger_name=__name__)


class Embedder:
    """Stateless text-to-vector adapter used by ingestion and retrieval.

    Parameters
    ----------
    provider:
        The embedding backend.
    dimension:
        Expected vector length.  Defaults to ``provider.get_dimension()``.
    max_concurrency:
        Maximum number of provider calls in flight at once.
    batch_size:
        Number of texts per provider call.  ``1`` issues one call per text.
    """

    def __init__(
        self,
        provider: IEmbeddingProvider,
        dimension: int | None = None,
        max_concurrency: int = 8,
        batch_size: int = 16,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self._provider = provider
        self._dimension = dimension if dimension is not None else provider.get_dimension()
        if self._dimension <= 0:
            raise ValueError(f"dimension must be positive, got {self._dimension}")
        self._max_concurrency = max_concurrency
        self._batch_size = batch_size

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def provider_name(self) -> str:
        return self._provider.get_provider_name()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed(self, text: str) -> list[float]:
        """Embed a single text, e.g. a question at query time."""
        try:
            vector = await self._provider.embed_single(text)
        except EmbeddingUnavailableError as exc:
            raise EmbeddingUnavailableError(
                message=exc.message, provider_name=exc.provider_name, chunk_index=0
            ) from exc
        except Exception as exc:
            raise EmbeddingUnavailableError(
                message=f"Embedding request failed: {exc}",
                provider_name=self.provider_name,
                chunk_index=0,
            ) from exc
        return self._validate(vector, 0)

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts*, returning vectors in the same order.

        All batches run concurrently (bounded by ``max_concurrency``).  If
        any batch fails, the error for the lowest failing text index is
        raised and no vectors are returned.

        Raises
        ------
        EmbeddingUnavailableError
            With ``chunk_index`` set to the position of the first failing
            text.
        """
        if not texts:
            return []

        starts = list(range(0, len(texts), self._batch_size))
        semaphore = asyncio.Semaphore(self._max_concurrency)
        results = await throttled_gather(
            [self._embed_batch(texts[s : s + self._batch_size], s) for s in starts],
            semaphore=semaphore,
            return_exceptions=True,
        )

        vectors: list[list[float]] = []
        for result in results:
            if isinstance(result, BaseException):
                raise result
            vectors.extend(result)

        logger.debug(
            "embedding_batch_complete",
            provider=self.provider_name,
            texts=len(texts),
            calls=len(starts),
        )
        return vectors

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _embed_batch(self, batch: list[str], offset: int) -> list[list[float]]:
        try:
            if len(batch) == 1:
                raw = [await self._provider.embed_single(batch[0])]
            else:
                raw = await self._provider.embed(batch)
        except EmbeddingUnavailableError as exc:
            index = offset + (exc.chunk_index or 0)
            raise EmbeddingUnavailableError(
                message=exc.message, provider_name=exc.provider_name, chunk_index=index
            ) from exc
        except Exception as exc:
            raise EmbeddingUnavailableError(
                message=f"Embedding request failed: {exc}",
                provider_name=self.provider_name,
                chunk_index=offset,
            ) from exc

        if not isinstance(raw, list) or len(raw) != len(batch):
            got = len(raw) if isinstance(raw, list) else type(raw).__name__
            raise EmbeddingUnavailableError(
                message=f"Expected {len(batch)} vectors, got {got}",
                provider_name=self.provider_name,
                chunk_index=offset,
            )
        return [self._validate(vector, offset + i) for i, vector in enumerate(raw)]

    def _validate(self, vector: object, index: int) -> list[float]:
        """Check dimension and numeric content, returning a plain float list."""
        if not isinstance(vector, (list, tuple)):
            raise EmbeddingUnavailableError(
                message=f"Malformed embedding: expected a sequence, got {type(vector).__name__}",
                provider_name=self.provider_name,
                chunk_index=index,
            )
        if len(vector) != self._dimension:
            raise EmbeddingUnavailableError(
                message=(
                    f"Embedding dimension mismatch: expected {self._dimension}, "
                    f"got {len(vector)}"
                ),
                provider_name=self.provider_name,
                chunk_index=index,
            )
        for value in vector:
            if isinstance(value, bool) or not isinstance(value, Real) or not math.isfinite(value):
                raise EmbeddingUnavailableError(
                    message=f"Malformed embedding: non-numeric value {value!r}",
                    provider_name=self.provider_name,
                    chunk_index=index,
                )
        return [float(value) for value in vector]
