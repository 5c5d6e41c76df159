"""Word lists and alphabets used to build practice corpora."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Set

from keydrill.models.ngram import graphemes, nfc

logger = logging.getLogger(__name__)

LAYOUTS: Dict[str, str] = {
    "letters": "qwertyuiopasdfghjklzxcvbnm",
}


def layout_chars(layout: str) -> str:
    """Return the alphabet for a named layout.

    Raises:
        KeyError: If the layout is unknown.
    """
    try:
        return LAYOUTS[layout]
    except KeyError:
        raise KeyError(f"unknown layout {layout!r}; expected one of {sorted(LAYOUTS)}") from None


def clean_corpus(words: Iterable[str], chars: str) -> List[str]:
    """Normalize and filter raw words into a practice corpus.

    Words are trimmed, lowercased and NFC-normalized; words using any
    character outside ``chars`` are dropped, as are blanks and repeats.
    Order of first appearance is kept.
    """
    alphabet = set(graphemes(chars))
    seen: Set[str] = set()
    cleaned: List[str] = []
    for raw in words:
        word = nfc(raw.strip().lower())
        if not word or word in seen:
            continue
        if all(unit in alphabet for unit in graphemes(word)):
            seen.add(word)
            cleaned.append(word)
    return cleaned


def read_word_list(path: str | Path) -> List[str]:
    """Read a newline-separated word list from disk."""
    text = Path(path).read_text(encoding="utf-8")
    words = text.splitlines()
    logger.debug("Read %d lines from %s", len(words), path)
    return words
