"""Application settings loaded from environment variables via pydantic-settings.

Settings come from two sources, in priority order:

  1. **Environment variables**, e.g. ``OPENAI_API_KEY=sk-abc123``
  2. **.env file** in the working directory (local development)

Field ``chunk_size`` maps to env var ``CHUNK_SIZE`` and so on.  None of
the tuning defaults (chunk width, overlap, K) are contracts; they can be
changed per deployment.
"""

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from bookrag.config.prompts import PERSONAS
from bookrag.utils.errors import ConfigurationError


class Settings(BaseSettings):
    """bookrag application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # === Model providers ===
    # Empty string = "not configured"; provider selection in
    # bookrag.factory skips providers with empty keys.
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible endpoints (TogetherAI, DashScope, ...)
    openai_text_model: str = ""
    openai_embedding_model: str = ""
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5"
    ollama_base_url: str = "http://localhost:11434"
    ollama_text_model: str = "llama3.1"
    ollama_embedding_model: str = "nomic-embed-text"

    # === Embeddings ===
    embedding_dimension: int = Field(default=1024, gt=0)
    embedding_concurrency: int = Field(default=8, ge=1)
    embedding_batch_size: int = Field(default=16, ge=1)

    # === Vector store ===
    chromadb_persist_dir: str = "./data/chromadb"
    chromadb_collection: str = "ebook_collection"
    vector_metric: Literal["cosine", "ip", "l2"] = "cosine"

    # === Ingestion ===
    chunk_size: int = 500
    chunk_overlap: int = 50
    write_mode: Literal["insert", "upsert"] = "insert"
    strict_write_counts: bool = False

    # === Retrieval & generation ===
    retrieval_top_k: int = Field(default=3, ge=1)
    retrieval_min_score: float | None = None
    generation_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    generation_max_tokens: int = Field(default=2000, gt=0)
    # Persona "book" or "diary" picks the role line and fallback answer;
    # an explicit ASSISTANT_ROLE or NO_ANSWER_MESSAGE wins over the persona.
    assistant_persona: Literal["book", "diary"] = "book"
    assistant_role: str = ""
    no_answer_message: str = ""

    # === App config ===
    app_env: str = "development"
    log_level: str = "INFO"

    @model_validator(mode="after")
    def _check_and_fill(self) -> "Settings":
        if self.chunk_size <= 0:
            raise ConfigurationError(f"chunk_size must be positive, got {self.chunk_size}")
        if not 0 <= self.chunk_overlap < self.chunk_size:
            raise ConfigurationError(
                f"chunk_overlap must be in [0, {self.chunk_size}), got {self.chunk_overlap}"
            )
        role, no_answer = PERSONAS[self.assistant_persona]
        if not self.assistant_role:
            self.assistant_role = role
        if not self.no_answer_message:
            self.no_answer_message = no_answer
        return self

