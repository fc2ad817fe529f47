"""Canonical text form and content hash of a chunk.

Two chunks whose text differs only in line endings, trailing whitespace or the
number of blank lines between paragraphs normalize to the same text and
therefore hash to the same digest.
"""

import hashlib
import re

_MULTI_BLANK_LINES = re.compile(r"\n{3,}")
_TRAILING_WHITESPACE = re.compile(r"[ \t]+$", re.MULTILINE)


def normalize_content(text: str) -> str:
    """Normalize chunk text before hashing and embedding.

    Unifies line endings to "\\n", strips trailing spaces and tabs on every line,
    collapses three or more consecutive newlines to two and trims the result.

    Args:
        text (str): Raw chunk text.

    Returns:
        str: The canonical text.
    """
    if not text:
        return ""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _TRAILING_WHITESPACE.sub("", text)
    text = _MULTI_BLANK_LINES.sub("\n\n", text)
    return text.strip()


def hash_content(text: str) -> str:
    """SHA-256 hex digest of the normalized text.

    Normalization runs here as well, so a raw text and its normalized form
    always produce the same digest.
    """
    return hashlib.sha256(normalize_content(text).encode("utf-8")).hexdigest()
