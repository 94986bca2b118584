"""Nomic embedding provider adapter (local/free via Ollama).

Talks to Ollama's native ``/api/embed`` endpoint, which accepts a list of
inputs per request, and implements :class:`IEmbeddingProvider` with
``nomic-embed-text`` (768 dimensions) by default.  No API key is needed.

Every returned vector is checked against the dimension this provider
advertises, since Ollama serves whatever model is pulled under the
configured name.
"""

from __future__ import annotations

import httpx
import structlog

from bookrag.config.settings import Settings
from bookrag.interfaces.embedding_provider import IEmbeddingProvider
from bookrag.utils.errors import EmbeddingUnavailableError

logger = structlog.get_logger(logger_name=__name__)

_OLLAMA_BATCH_LIMIT = 512
_REQUEST_TIMEOUT = httpx.Timeout(120.0, connect=5.0)

_MODEL_DIMENSIONS: dict[str, int] = {
    "nomic-embed-text": 768,
    "mxbai-embed-large": 1024,
    "bge-m3": 1024,
    "all-minilm": 384,
}


def _base_model_name(name: str) -> str:
    """``"nomic-embed-text:latest"`` -> ``"nomic-embed-text"``."""
    return name.split(":", 1)[0]


class NomicEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by an embedding model served via Ollama.

    Parameters
    ----------
    settings:
        Supplies ``ollama_base_url``, ``ollama_embedding_model`` and, for
        models missing from the known-dimension table,
        ``embedding_dimension``.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._base_url = settings.ollama_base_url.rstrip("/")
        self._model = settings.ollama_embedding_model or "nomic-embed-text"
        self._dimension = _MODEL_DIMENSIONS.get(
            _base_model_name(self._model), settings.embedding_dimension
        )

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors, batching 512 texts per request."""
        if not texts:
            return []

        all_embeddings: list[list[float]] = []
        try:
            async with httpx.AsyncClient(timeout=_REQUEST_TIMEOUT) as client:
                for start in range(0, len(texts), _OLLAMA_BATCH_LIMIT):
                    batch = texts[start : start + _OLLAMA_BATCH_LIMIT]
                    response = await client.post(
                        f"{self._base_url}/api/embed",
                        json={"model": self._model, "input": batch},
                    )
                    all_embeddings.extend(self._parse(response, len(batch), start))
                    logger.info(
                        "nomic_embedding_batch",
                        model=self._model,
                        batch_size=len(batch),
                    )
        except httpx.HTTPError as exc:
            raise EmbeddingUnavailableError(
                message=f"Ollama embedding request failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return all_embeddings

    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string."""
        result = await self.embed([text])
        return result[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "nomic_embedding"

    def is_available(self) -> bool:
        """Return ``True`` if Ollama is reachable and the model is pulled."""
        if not self._base_url:
            return False
        try:
            response = httpx.get(f"{self._base_url}/api/tags", timeout=3.0)
        except (httpx.ConnectError, httpx.TimeoutException):
            return False
        if response.status_code != 200:
            return False
        try:
            models = response.json().get("models", [])
        except ValueError:
            return False
        wanted = _base_model_name(self._model)
        pulled = {_base_model_name(str(m.get("name", ""))) for m in models}
        if wanted not in pulled:
            logger.warning("nomic_model_not_pulled", model=self._model, pulled=sorted(pulled))
            return False
        return True

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _parse(
        self, response: httpx.Response, expected: int, offset: int
    ) -> list[list[float]]:
        """Extract and check the ``embeddings`` array of an ``/api/embed`` reply."""
        if response.status_code != 200:
            try:
                detail = response.json().get("error", response.text)
            except ValueError:
                detail = response.text
            raise EmbeddingUnavailableError(
                message=f"Ollama returned HTTP {response.status_code}: {detail}",
                provider_name=self.get_provider_name(),
            )

        embeddings = response.json().get("embeddings") or []
        if len(embeddings) != expected:
            raise EmbeddingUnavailableError(
                message=f"Ollama returned {len(embeddings)} embeddings for {expected} inputs",
                provider_name=self.get_provider_name(),
            )
        for index, vector in enumerate(embeddings):
            if len(vector) != self._dimension:
                raise EmbeddingUnavailableError(
                    message=(
                        f"Model {self._model!r} returned a {len(vector)}-dimensional "
                        f"vector, expected {self._dimension}"
                    ),
                    provider_name=self.get_provider_name(),
                    chunk_index=offset + index,
                )
        return embeddings
