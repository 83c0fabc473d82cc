"""
quotebook.engine.normalize — Quote Text Normalization
======================================================

Readers paste the "same" quote with different typography: guillemets vs.
straight quotes, em dashes vs. hyphens, trailing ellipses.  Every like,
like-count and self-like check compares quotes by the canonical key built
here, so identical quotes never fragment into several keys.

This module is pure calculation — no database I/O.
"""

from __future__ import annotations

import re

__all__ = ["KEY_SEPARATOR", "compute_key", "normalize"]

KEY_SEPARATOR = "|||"

# Guillemets, curly/smart double and single quotes, low-9 quotes, straight quotes
_QUOTE_CHARS = re.compile("[«»‹›“”„‟‘’‚‛\"']")
# Em dash, en dash, minus sign or hyphen, swallowing the spacing around it
# ("Hello — world" and "hello-world" must meet)
_DASH_CHARS = re.compile("\\s*[-—–−]\\s*")
_WHITESPACE = re.compile(r"\s+")
# One or more periods / ellipsis chars, optionally mixed with whitespace, at the end
_TRAILING_DOTS = re.compile("[\\s.…]*[.…][\\s.…]*$")


def normalize(text: str | None) -> str:
    """Reduce *text* to its canonical comparison form.

    Steps, in order: drop quotation marks, unify dashes to ``-``, collapse
    whitespace, strip trailing periods/ellipses, trim, case-fold.

    Total: ``None``, non-strings and empty strings all map to ``""``.
    Normalization never introduces ``|``, so :data:`KEY_SEPARATOR` cannot
    appear inside a normalized field.
    """
    if not text or not isinstance(text, str):
        return ""

    normalized = _QUOTE_CHARS.sub("", text)
    normalized = _DASH_CHARS.sub("-", normalized)
    normalized = _WHITESPACE.sub(" ", normalized)
    normalized = _TRAILING_DOTS.sub("", normalized)
    return normalized.strip().casefold()


def compute_key(text: str | None, author: str | None = None) -> str:
    """Build the NormalizedKey for a (text, author) pair."""
    return f"{normalize(text)}{KEY_SEPARATOR}{normalize(author or '')}"
