"""
DocChat - Text Utilities
=========================
Helpers for text cleaning, filename inspection and preview
truncation.

These utilities are consumed by the ingestion service, the chat
engine and the HTTP layer, and must stay stateless and side-effect-free.
"""

from __future__ import annotations

import re
import unicodedata
from pathlib import PurePath


# ── Non-printable character pattern ────────────────────────────────────
# Control characters (C0/C1) except \n, \r, \t, plus BOM, zero-width
# characters, soft hyphens and directional marks left by PDF extraction.
_NON_PRINTABLE_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f\ufeff\u200b\u200c\u200d\u200e\u200f\u00ad\u2060\ufffe]")

PREVIEW_LENGTH = 200


def clean_text(text: str) -> str:
    """
    Sanitise raw document text before chunking.

    Steps:
        1. Unicode NFC normalisation.
        2. Strip non-printable / zero-width characters.
        3. Collapse runs of horizontal whitespace into a single space,
           *preserving* newlines.
        4. Strip leading / trailing whitespace from every line.
        5. Collapse 3+ consecutive blank lines to 2.

    Args:
        text: Raw text extracted from a source file or request body.

    Returns:
        Cleaned text ready for splitting.
    """
    text = unicodedata.normalize("NFC", text)
    text = _NON_PRINTABLE_RE.sub("", text)
    text = re.sub(r"[^\S\n]+", " ", text)
    lines = [line.strip() for line in text.splitlines()]
    text = "\n".join(lines)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def file_extension(filename: str) -> str:
    """
    Return the lower-case extension of *filename* without the dot.

    A leading dot alone (``".env"``) is not an extension.

    Examples::

        "Report.PDF"   → "pdf"
        "notes.tar.md" → "md"
        ".env"         → ""
        "README"       → ""
    """
    return PurePath(filename).suffix.lower().lstrip(".")


def truncate_preview(content: str, limit: int = PREVIEW_LENGTH) -> str:
    """Cut *content* to *limit* characters, marking the cut with ``...``."""
    if len(content) <= limit:
        return content
    return content[:limit] + "..."
