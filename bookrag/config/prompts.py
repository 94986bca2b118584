"""Persona lines and fixed messages used by the query path.

Kept in the config package so both :class:`~bookrag.config.settings.Settings`
and the services can import them without the config layer depending on
the services.
"""

DEFAULT_ROLE = (
    "You are a knowledgeable reading companion who answers questions "
    "about a book using only the passages provided to you."
)

DIARY_ROLE = (
    "You are a warm, attentive diary assistant. Answer questions about the "
    "author's diary entries in a kind, natural voice, address the author as "
    "\"you\", and show empathy for how they felt."
)

DEFAULT_NO_ANSWER = (
    "Sorry, I could not find any passages in the book that relate to "
    "this question."
)

DIARY_NO_ANSWER = "Sorry, I could not find any diary entries that relate to this question."

PERSONAS: dict[str, tuple[str, str]] = {
    "book": (DEFAULT_ROLE, DEFAULT_NO_ANSWER),
    "diary": (DIARY_ROLE, DIARY_NO_ANSWER),
}
