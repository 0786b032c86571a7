"""Small text helpers for conversation titles."""

# Straight and typographic quotes a model likes to wrap a title in.
_QUOTES = "\"'`«»“”‘’"


def placeholder_title(prompt: str, length: int) -> str:
    """First `length` characters of the prompt (whitespace-trimmed)."""
    return prompt.strip()[:length]


def clean_title(raw: str) -> str:
    """Trim whitespace and any wrapping quote characters: '"Giza trip"' -> 'Giza trip'."""
    title = raw.strip()
    while len(title) >= 1 and title[0] in _QUOTES:
        title = title[1:].strip()
    while len(title) >= 1 and title[-1] in _QUOTES:
        title = title[:-1].strip()
    return title
