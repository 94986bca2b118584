"""Answer generation over an assembled context."""

from bookrag.services.generation.answer_generator import AnswerGenerator

__all__ = ["AnswerGenerator"]
