"""Query pipeline: question retrieval and context rendering."""

from bookrag.services.retrieval.context_assembler import DELIMITER, ContextAssembler
from bookrag.services.retrieval.retriever import Retriever

__all__ = ["DELIMITER", "ContextAssembler", "Retriever"]
