# =============================================================================
# bookrag/cli/ask.py - CLI Ask Command (question answering)
# =============================================================================
#
# Answers a question about the ingested book(s):
#   1. embed the question and retrieve the K nearest passages
#   2. render them into a labelled context block
#   3. ask the configured LLM for a grounded answer
#
# Usage examples:
#   python -m bookrag.cli.ask "Why does Ahab hunt the white whale?"
#   python -m bookrag.cli.ask "Who is Queequeg?" -k 5 --show-sources
#   python -m bookrag.cli.ask "When did I feel lonely?" --persona diary
# =============================================================================

"""Standalone CLI for asking questions about ingested books."""

from __future__ import annotations

import argparse
import asyncio
import sys

from bookrag.config.prompts import PERSONAS
from bookrag.config.settings import Settings
from bookrag.models.rag import QAResponse
from bookrag.utils.errors import BookRAGError, GenerationUnavailableError
from bookrag.utils.logging import configure_logging

_PREVIEW_CHARS = 200


def _print_sources(response: QAResponse) -> None:
    print(f"Retrieved {len(response.sources)} passage(s):")
    for rank, chunk in enumerate(response.sources, start=1):
        preview = chunk.text[:_PREVIEW_CHARS].replace("\n", " ")
        if len(chunk.text) > _PREVIEW_CHARS:
            preview += "..."
        print(
            f"  [{rank}] score={chunk.score:.4f} chapter={chunk.unit_index} "
            f"chunk={chunk.chunk_index} {chunk.document_name}"
        )
        if chunk.date or chunk.mood:
            print(f"      date={chunk.date or '-'} mood={chunk.mood or '-'}")
        print(f"      {preview}")
    print()


async def _handle_ask(args: argparse.Namespace, service) -> int:  # noqa: ANN001
    """Answer one question and print it."""
    print(f"Question: {args.question}\n")
    try:
        response = await service.answer(args.question, k=args.k)
    except GenerationUnavailableError as exc:
        print(f"Error: the language model is unavailable: {exc}", file=sys.stderr)
        return 1

    if args.show_sources and response.sources:
        _print_sources(response)
    print("Answer:")
    print(response.answer)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m bookrag.cli.ask",
        description="Ask a question about the books in the bookrag collection.",
    )
    parser.add_argument("question", help="Natural-language question")
    parser.add_argument(
        "-k",
        type=int,
        default=None,
        help="Number of passages to retrieve (default: RETRIEVAL_TOP_K)",
    )
    parser.add_argument(
        "--show-sources",
        dest="show_sources",
        action="store_true",
        help="Print the retrieved passages before the answer",
    )
    parser.add_argument(
        "--persona",
        choices=sorted(PERSONAS),
        default=None,
        help="Answer voice and fallback message (default: ASSISTANT_PERSONA)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for question answering; returns the exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.k is not None and args.k < 1:
        parser.error("-k must be at least 1")

    try:
        app_settings = Settings()
    except BookRAGError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    if args.persona is not None:
        role, no_answer = PERSONAS[args.persona]
        app_settings = app_settings.model_copy(
            update={
                "assistant_persona": args.persona,
                "assistant_role": role,
                "no_answer_message": no_answer,
            }
        )
    configure_logging(app_settings.log_level)

    from bookrag.factory import build_qa_service

    service, status_msg = build_qa_service(app_settings)
    if service is None:
        print(f"Error: {status_msg}", file=sys.stderr)
        return 1
    print(f"Providers: {status_msg}\n")

    try:
        return asyncio.run(_handle_ask(args, service))
    except (BookRAGError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
