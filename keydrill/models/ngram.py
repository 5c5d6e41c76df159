"""Core n-gram utilities and the corpus index.

Provides NFC normalization, unit (grapheme) splitting, fixed-width window
extraction, and `NgramIndexer`, which rebuilds the `CorpusIndex` for the
active word list and seeds the performance store with priors.
"""

from __future__ import annotations

import logging
import unicodedata
from typing import TYPE_CHECKING, Dict, FrozenSet, Iterable, List, Set, Tuple

from keydrill.models.drill_config import MAX_SUPPORTED_NGRAM_SIZE

if TYPE_CHECKING:  # Only for type hints to avoid circular imports at runtime
    from keydrill.models.performance import PerformanceStore

logger = logging.getLogger(__name__)

MIN_NGRAM_SIZE = 1
MAX_NGRAM_SIZE = MAX_SUPPORTED_NGRAM_SIZE


def nfc(s: str | None) -> str:
    """Return the NFC-normalized version of the input string.

    Accepts optional or non-string inputs, coercing them to strings prior to
    normalization so all downstream comparisons operate on NFC text.
    """
    if s is None:
        value = ""
    else:
        value = str(s)
    return unicodedata.normalize("NFC", value)


def graphemes(text: str | None) -> List[str]:
    """Split NFC text into units: a base character plus trailing combining marks.

    Sequences with a precomposed form are already single code points after
    NFC; anything left over (e.g. a letter with two stacked accents) stays
    glued to its base so it still counts as one character.
    """
    units: List[str] = []
    for ch in nfc(text):
        if units and unicodedata.combining(ch):
            units[-1] += ch
        else:
            units.append(ch)
    return units


def ngram_length(ngram: str) -> int:
    """Return the width of an n-gram in units."""
    return len(graphemes(ngram))


def validate_ngram_size(size: int, max_size: int = MAX_NGRAM_SIZE) -> bool:
    """Validate that an n-gram size is within configured bounds."""
    return MIN_NGRAM_SIZE <= size <= max_size


def windows(word: str, k: int) -> List[str]:
    """Return every contiguous run of ``k`` units in ``word``, in order.

    A word shorter than ``k`` yields an empty list.

    Raises:
        ValueError: If ``k`` is outside 1..MAX_NGRAM_SIZE.
    """
    if not validate_ngram_size(k):
        raise ValueError(f"invalid n-gram size: {k}")
    units = graphemes(word)
    return ["".join(units[i : i + k]) for i in range(len(units) - k + 1)]


class CorpusIndex:
    """N-grams present in the active corpus, by size, with word postings."""

    def __init__(
        self,
        words: Tuple[str, ...],
        by_size: Dict[int, FrozenSet[str]],
        postings: Dict[str, Tuple[str, ...]],
    ) -> None:
        self.words = words
        self._by_size = by_size
        self._postings = postings

    @classmethod
    def empty(cls) -> "CorpusIndex":
        return cls(words=(), by_size={}, postings={})

    def ngrams(self, size: int) -> FrozenSet[str]:
        """Return all n-grams of the given size found in the corpus."""
        return self._by_size.get(size, frozenset())

    def contains(self, ngram: str, size: int | None = None) -> bool:
        """Return True if the n-gram occurs in at least one corpus word."""
        if size is None:
            return ngram in self._postings
        return ngram in self._by_size.get(size, frozenset())

    def words_containing(self, ngram: str) -> Tuple[str, ...]:
        """Return the corpus words containing ``ngram``, in corpus order."""
        return self._postings.get(nfc(ngram), ())

    def __len__(self) -> int:
        return len(self._postings)


class NgramIndexer:
    """Builds a `CorpusIndex` and keeps the performance store in step with it."""

    def __init__(self, store: "PerformanceStore", max_ngram_size: int = MAX_NGRAM_SIZE) -> None:
        if not validate_ngram_size(max_ngram_size):
            raise ValueError(f"invalid max n-gram size: {max_ngram_size}")
        self.store = store
        self.max_ngram_size = max_ngram_size

    def rebuild_index(self, corpus: Iterable[str]) -> CorpusIndex:
        """Index every window of size 1..max_ngram_size over ``corpus``.

        Every n-gram without a performance record gets one with the store's
        prior. Existing records are left untouched, including those of
        n-grams absent from this corpus.
        """
        words = tuple(nfc(w) for w in corpus)
        by_size: Dict[int, Set[str]] = {k: set() for k in range(1, self.max_ngram_size + 1)}
        postings: Dict[str, List[str]] = {}
        created = 0

        for k in range(1, self.max_ngram_size + 1):
            for word in words:
                for ngram in windows(word, k):
                    by_size[k].add(ngram)
                    posting = postings.setdefault(ngram, [])
                    if not posting or posting[-1] != word:
                        posting.append(word)
                    if ngram not in self.store:
                        self.store.ensure(ngram)
                        created += 1

        logger.info(
            "Indexed %d words into %d n-grams (%d new records)",
            len(words),
            len(postings),
            created,
        )
        return CorpusIndex(
            words=words,
            by_size={k: frozenset(v) for k, v in by_size.items()},
            postings={ngram: tuple(ws) for ngram, ws in postings.items()},
        )
