from __future__ import annotations

import re

from .settings import settings


# Underscore counts as canonical so normalize(normalize(x)) == normalize(x).
NON_CANONICAL_RE = re.compile(r"[^A-Za-z0-9 _]+")


def _is_ascii_alnum(ch: str) -> bool:
    return ch.isascii() and ch.isalnum()


def normalize_name(raw: str, prefix: str | None = None) -> str:
    """Turn an arbitrary unit name into the identifier used for compose projects.

    Runs of characters outside ``[A-Za-z0-9 _]`` collapse into one underscore and the
    result is lowercased. Names that do not start with a letter or digit get
    ``prefix`` (``settings.name_prefix`` by default) prepended; the prefix must
    already be in normalized form for the result to be stable under renormalization.
    """
    if prefix is None:
        prefix = settings.name_prefix
    replaced = NON_CANONICAL_RE.sub("_", raw).lower()
    if not replaced:
        raise ValueError("Cannot normalize an empty unit name.")
    if not _is_ascii_alnum(replaced[0]):
        return prefix + replaced
    return replaced
