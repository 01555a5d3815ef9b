"""Text normalization shared by header detection, status mapping and name matching."""

import re
import unicodedata
from uuid import UUID

_PARENTHESES = re.compile(r"\([^)]*\)")


def fold(value: str) -> str:
    """
    Normalize a name for comparison.

    Lowercase, accents removed, whitespace collapsed:
    "  João  SILVA " → "joao silva".
    """
    decomposed = unicodedata.normalize("NFKD", value)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return " ".join(stripped.lower().split())


def strip_parentheses(value: str) -> str:
    """Remove parenthesized fragments: "Casa Lima (reforma)" → "Casa Lima"."""
    return " ".join(_PARENTHESES.sub(" ", value).split())


def cell_text(value: object) -> str:
    """String form of a cell, empty for blanks."""
    if value is None:
        return ""
    return str(value).strip()


def as_uuid(value: object) -> UUID | None:
    """The UUID a reference spells out, or None when it is a free-text name."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value).strip())
    except (ValueError, TypeError):
        return None
