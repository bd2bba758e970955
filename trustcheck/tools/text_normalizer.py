"""
Text normalization for comparing model claims against profile text.

Normalization: compatibility-decompose, drop combining marks, lowercase,
recompose, and collapse runs of spaces/tabs (newlines are kept). This makes
"Ｆｒｅｅ", "Frée" and "free" compare equal.
"""

import re
import unicodedata
from typing import List

_HSPACE_RE = re.compile(r'[^\S\n]+')
_BLANK_LINES_RE = re.compile(r'\n\s*\n+')


def compress_whitespace(text: str) -> str:
    """Collapse horizontal whitespace and blank lines, keep single newlines."""
    if not text:
        return ""
    text = _HSPACE_RE.sub(' ', text)
    text = _BLANK_LINES_RE.sub('\n', text)
    return "\n".join(line.strip() for line in text.split("\n")).strip()


def normalize_text(text: str) -> str:
    """Normalize text for case/diacritic/width-insensitive comparison."""
    if not text or not text.strip():
        return ""
    text = compress_whitespace(text)
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    return unicodedata.normalize("NFKC", stripped.lower())


def contains_normalized(text: str, substr: str) -> bool:
    """True if `substr` occurs in `text` after normalizing both."""
    if not text or not substr:
        return False

    norm_text = normalize_text(text)
    norm_sub = normalize_text(substr)
    if not norm_text or not norm_sub:
        return substr.lower() in text.lower()
    return norm_sub in norm_text


def split_words(excerpts: List[str]) -> List[str]:
    """Split every excerpt into whitespace-separated words, in order."""
    words: List[str] = []
    for excerpt in excerpts:
        if excerpt:
            words.extend(excerpt.split())
    return words
