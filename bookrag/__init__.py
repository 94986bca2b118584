"""bookrag: retrieval-augmented question answering over long-form text."""

__version__ = "0.1.0"
