"""Utility modules for bookrag.

- **errors** -- exception hierarchy rooted at :class:`BookRAGError`.
- **logging** -- structlog setup with console/JSON dual rendering.
- **concurrency** -- semaphore-bounded ``asyncio.gather``.
"""

from bookrag.utils.concurrency import throttled_gather
from bookrag.utils.errors import (
    BookRAGError,
    ConfigurationError,
    EmbeddingUnavailableError,
    GenerationUnavailableError,
    IngestionUnitError,
    OperationCancelledError,
    RetrievalUnavailableError,
    StoreWriteError,
)
from bookrag.utils.logging import configure_logging, get_logger

__all__ = [
    "BookRAGError",
    "ConfigurationError",
    "EmbeddingUnavailableError",
    "GenerationUnavailableError",
    "IngestionUnitError",
    "OperationCancelledError",
    "RetrievalUnavailableError",
    "StoreWriteError",
    "configure_logging",
    "get_logger",
    "throttled_gather",
]
