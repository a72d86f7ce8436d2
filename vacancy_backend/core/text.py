from __future__ import annotations

import re
import unicodedata


def fold(text: str | None) -> str:
    """Case-insensitive form used for search and ordering; keeps inner spaces."""

    if not text:
        return ""
    return unicodedata.normalize("NFKC", str(text)).casefold()


_LIKE_SPECIALS = re.compile(r"([\\%_])")


def escape_like(text: str) -> str:
    """Make ``%``, ``_`` and ``\\`` match literally inside a LIKE pattern."""

    return _LIKE_SPECIALS.sub(r"\\\1", text)
