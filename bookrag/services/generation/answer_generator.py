"""Grounded answer generation from an assembled context block.

The :class:`AnswerGenerator` wraps the context and question in a fixed
instruction template and makes exactly one call to the text-generation
provider.  The model's text is returned unmodified: no parsing, no retry,
no streaming.  Any provider failure surfaces as
:class:`~bookrag.utils.errors.GenerationUnavailableError`; choosing a
fallback message is the caller's job.
"""

from __future__ import annotations

import structlog

from bookrag.config.prompts import DEFAULT_ROLE
from bookrag.interfaces.llm_provider import ILLMProvider
from bookrag.utils.errors import GenerationUnavailableError
from bookrag.utils.logging import get_logger

logger: structlog.BoundLogger = get_logger(__name__)

_REQUIREMENTS = (
    "Answer requirements:\n"
    "1. Base the answer on the passages above. If they are relevant, answer in detail.\n"
    "2. If several passages are relevant, combine them into one coherent answer.\n"
    "3. If the passages do not contain enough information, say so plainly "
    "instead of guessing.\n"
    "4. Stay faithful to the text; do not invent events or characters.\n"
    "5. You may quote the passages directly to support the answer."
)


class AnswerGenerator:
    """One-shot prompt builder and LLM invoker.

    Parameters
    ----------
    llm:
        Text-generation provider.
    role:
        Persona line opening the instruction, e.g. a book companion or a
        diary assistant.
    temperature:
        Sampling temperature passed to the provider.
    max_tokens:
        Response length cap passed to the provider.
    """

    def __init__(
        self,
        llm: ILLMProvider,
        role: str = DEFAULT_ROLE,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ) -> None:
        self._llm = llm
        self._role = role
        self._temperature = temperature
        self._max_tokens = max_tokens

    def build_prompts(self, question: str, context: str) -> tuple[str, str]:
        """Return ``(system_prompt, user_prompt)`` for *question* and *context*."""
        system_prompt = (
            f"{self._role}\n"
            "Ground every statement in the passages you are given. "
            "If they do not cover the question, say that the book does not answer it."
        )
        user_prompt = (
            "Here are passages retrieved from the book:\n\n"
            f"{context}\n\n"
            f"Question: {question}\n\n"
            f"{_REQUIREMENTS}\n\n"
            "Answer:"
        )
        return system_prompt, user_prompt

    async def generate(self, question: str, context: str) -> str:
        """Ask the provider once and return its raw text.

        Raises
        ------
        GenerationUnavailableError
            If the provider call fails for any reason.
        """
        system_prompt, user_prompt = self.build_prompts(question, context)
        provider = self._llm.get_provider_name()
        try:
            answer = await self._llm.complete(
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            )
        except GenerationUnavailableError:
            raise
        except Exception as exc:
            raise GenerationUnavailableError(
                message=f"Text generation failed: {exc}",
                provider_name=provider,
            ) from exc

        logger.info(
            "answer_generated",
            provider=provider,
            question=question[:80],
            context_chars=len(context),
            answer_chars=len(answer),
        )
        return answer
