"""Text-generation provider adapters."""

from bookrag.providers.llm.anthropic_provider import AnthropicLLMProvider
from bookrag.providers.llm.ollama_provider import OllamaLLMProvider
from bookrag.providers.llm.openai_provider import OpenAILLMProvider

__all__ = ["AnthropicLLMProvider", "OllamaLLMProvider", "OpenAILLMProvider"]
