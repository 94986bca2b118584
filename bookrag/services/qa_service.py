"""Question answering over an ingested book.

Chains the query pipeline:

  1. RETRIEVE -- :class:`~bookrag.services.retrieval.retriever.Retriever`
                 finds the K passages nearest the question.  Store or
                 embedder failures degrade to "no passages".
  2. ASSEMBLE -- :class:`~bookrag.services.retrieval.context_assembler.ContextAssembler`
                 renders them into one labelled context block.
  3. GENERATE -- :class:`~bookrag.services.generation.answer_generator.AnswerGenerator`
                 asks the LLM once.

When the context block is empty the LLM is never called; the configured
no-answer message is returned instead.  Generation failures are not
masked: :class:`~bookrag.utils.errors.GenerationUnavailableError` reaches
the caller.

Cancellation is cooperative.  Each stage checks the optional
``cancel_event`` before starting and raises
:class:`~bookrag.utils.errors.OperationCancelledError` if it is set.
Searches are read-only, so stopping between stages is always safe.
"""

from __future__ import annotations

import asyncio

import structlog

from bookrag.config.prompts import DEFAULT_NO_ANSWER
from bookrag.models.rag import QAResponse
from bookrag.services.generation.answer_generator import AnswerGenerator
from bookrag.services.retrieval.context_assembler import ContextAssembler
from bookrag.services.retrieval.retriever import Retriever
from bookrag.utils.errors import OperationCancelledError
from bookrag.utils.logging import get_logger

logger: structlog.BoundLogger = get_logger(__name__)


class QAService:
    """Retrieve, assemble and generate an answer for one question at a time.

    Parameters
    ----------
    retriever:
        Passage lookup for the target collection.
    assembler:
        Context renderer.
    generator:
        LLM answer generator.
    top_k:
        Default number of passages to retrieve.
    no_answer_message:
        Returned verbatim when nothing relevant was retrieved.
    """

    def __init__(
        self,
        retriever: Retriever,
        assembler: ContextAssembler,
        generator: AnswerGenerator,
        top_k: int = 3,
        no_answer_message: str = DEFAULT_NO_ANSWER,
    ) -> None:
        if top_k < 1:
            raise ValueError(f"top_k must be >= 1, got {top_k}")
        self._retriever = retriever
        self._assembler = assembler
        self._generator = generator
        self._top_k = top_k
        self._no_answer_message = no_answer_message

    async def answer(
        self,
        question: str,
        k: int | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> QAResponse:
        """Answer *question* from the book's passages.

        Parameters
        ----------
        question:
            The user's natural-language question.
        k:
            Number of passages to retrieve.  Defaults to ``top_k``.
        cancel_event:
            When set, the next stage does not start.

        Raises
        ------
        ValueError
            If *question* is blank or ``k < 1``.
        OperationCancelledError
            If ``cancel_event`` is set before a stage starts.
        GenerationUnavailableError
            If the LLM call fails.
        """
        if not question or not question.strip():
            raise ValueError("question must not be empty")
        top_k = self._top_k if k is None else k

        self._check_cancelled(cancel_event, "retrieve")
        chunks = await self._retriever.retrieve(question, top_k)

        self._check_cancelled(cancel_event, "assemble")
        context = self._assembler.assemble(chunks)
        if not context:
            logger.info("qa_no_context", question=question[:80], k=top_k)
            return QAResponse(
                question=question,
                answer=self._no_answer_message,
                sources=(),
                used_fallback=True,
            )

        self._check_cancelled(cancel_event, "generate")
        answer = await self._generator.generate(question, context)

        logger.info(
            "qa_answered",
            question=question[:80],
            sources=len(chunks),
            top_score=chunks[0].score,
        )
        return QAResponse(question=question, answer=answer, sources=tuple(chunks))

    @staticmethod
    def _check_cancelled(cancel_event: asyncio.Event | None, stage: str) -> None:
        if cancel_event is not None and cancel_event.is_set():
            logger.info("qa_cancelled", stage=stage)
            raise OperationCancelledError(f"Question cancelled before {stage} stage")
