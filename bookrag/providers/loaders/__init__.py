"""Document loaders for supported book and diary formats."""

from bookrag.providers.loaders.diary_loader import DiaryLoader
from bookrag.providers.loaders.epub_loader import EPUBLoader
from bookrag.providers.loaders.text_loader import TextBookLoader

__all__ = ["DiaryLoader", "EPUBLoader", "TextBookLoader"]
