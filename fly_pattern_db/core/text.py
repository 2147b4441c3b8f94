"""Slug and name normalization helpers."""

import re

_SIZE_TOKEN = re.compile(r"\b(?:size|sz\.?)\s*#?\s*\d+(?:[/-]\d+)?\b|#\s*\d+(?:[/-]\d+)?\b", re.I)
_PATTERN_SUFFIX = re.compile(r"\s+(?:fly\s+)?pattern$|\s+fly$", re.I)


def slugify(text: str) -> str:
    """Generate a URL-safe slug from a pattern name."""
    s = text.lower().strip()
    s = re.sub(r"['’]", "", s)
    s = re.sub(r"[^a-z0-9]+", "-", s)
    return s.strip("-")


def normalize_pattern_name(name: str) -> str:
    """
    Normalize a pattern name for comparison.

    Lowercases, collapses whitespace and strips trailing "fly" / "fly pattern".
    """
    s = " ".join(name.lower().split())
    s = _PATTERN_SUFFIX.sub("", s)
    return s.strip()


def normalize_material_name(name: str) -> str:
    """
    Normalize a material name for exact and alias comparison.

    Lowercases, trims, collapses whitespace and strips "size N" tokens.
    A name that is nothing but a size token keeps that token.
    """
    s = " ".join(name.lower().replace("’", "'").split())
    stripped = " ".join(_SIZE_TOKEN.sub(" ", s).split())
    return stripped or s


def title_case(text: str) -> str:
    """Capitalize the first letter of each whitespace-separated word."""
    return " ".join(word[:1].upper() + word[1:] for word in text.split())
