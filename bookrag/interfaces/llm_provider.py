"""Abstract base class for text-generation service providers.

Implementations may wrap an OpenAI-compatible chat endpoint, the Anthropic
API, or a local Ollama server.  The answer generator only ever talks to
this interface, so swapping providers never touches query logic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations: OpenAILLMProvider, AnthropicLLMProvider, OllamaLLMProvider
# Located in: bookrag/providers/llm/
class ILLMProvider(ABC):
    """Contract for chat-completion services."""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ) -> str:
        """Generate a text completion from the model.

        Parameters
        ----------
        system_prompt:
            The system/instruction message that sets the model's behaviour.
        user_prompt:
            The user-facing prompt containing the actual request and data.
        temperature:
            Sampling temperature (0.0 = deterministic, 1.0 = creative).
        max_tokens:
            Upper bound on the number of tokens in the response.

        Returns
        -------
        str
            The model's text response, unmodified.

        Raises
        ------
        bookrag.utils.errors.GenerationUnavailableError
            If the API call fails or returns no text.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"openai"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if credentials are present for this provider."""

    @abstractmethod
    async def validate_credentials(self) -> bool:
        """Make a lightweight call to confirm the credentials actually work."""
