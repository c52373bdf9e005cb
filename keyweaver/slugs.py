"""Normalisation of free text into key-safe tokens."""

from __future__ import annotations

import re
import unicodedata

FALLBACK_TOKEN = "text"

DISALLOWED_PATTERN = re.compile(r"[^a-z0-9\s_-]")
SEPARATOR_RUN_PATTERN = re.compile(r"[\s-]+")
UNDERSCORE_RUN_PATTERN = re.compile(r"_+")


def strip_diacritics(text: str) -> str:
    """Decompose accented characters and drop the combining marks."""

    decomposed = unicodedata.normalize("NFD", text)
    return "".join(char for char in decomposed if not unicodedata.combining(char))


def slugify(text: str) -> str:
    """Turn arbitrary text into a token made of ``[a-z0-9_]``.

    The result may be empty when the input has no usable characters; use
    :func:`slug_or_fallback` when a token is always required.
    """

    lowered = strip_diacritics(text.lower())
    kept = DISALLOWED_PATTERN.sub("", lowered)
    underscored = SEPARATOR_RUN_PATTERN.sub("_", kept)
    collapsed = UNDERSCORE_RUN_PATTERN.sub("_", underscored)
    return collapsed.strip("_")


def slug_or_fallback(text: str) -> str:
    return slugify(text) or FALLBACK_TOKEN
