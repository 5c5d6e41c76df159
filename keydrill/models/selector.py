"""Thompson-sampling selection of the next n-gram to practice."""

from __future__ import annotations

import logging
import random
from typing import AbstractSet, FrozenSet, List, Optional

from keydrill.models.ngram import CorpusIndex, ngram_length, nfc
from keydrill.models.performance import PerformanceStore

logger = logging.getLogger(__name__)


def parse_restriction_set(text: str | None) -> FrozenSet[str]:
    """Parse whitespace-separated n-grams into a restriction set."""
    if not text:
        return frozenset()
    return frozenset(nfc(token) for token in text.split() if token.strip())


class BanditSelector:
    """Pick an arm (n-gram) by sampling each eligible posterior once.

    Arms with few observations have wide posteriors and win often enough to
    get explored; arms with a high mean need-for-practice win the rest of
    the time. Ties go to the arm inserted first into the store.
    """

    def __init__(
        self,
        store: PerformanceStore,
        index: Optional[CorpusIndex] = None,
        restriction: Optional[AbstractSet[str]] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.store = store
        self.index = index or CorpusIndex.empty()
        self.restriction: Optional[FrozenSet[str]] = None
        self.set_restriction(restriction)
        self.rng = rng or random.Random()

    def set_index(self, index: CorpusIndex) -> None:
        self.index = index

    def set_restriction(self, restriction: Optional[AbstractSet[str]]) -> None:
        """Install (or with None, remove) the restriction filter."""
        if restriction is None:
            self.restriction = None
        else:
            self.restriction = frozenset(nfc(r) for r in restriction)

    def candidates(self, size: int, exclude: AbstractSet[str] = frozenset()) -> List[str]:
        """Return eligible n-grams of ``size`` in store insertion order."""
        in_corpus = self.index.ngrams(size)
        eligible: List[str] = []
        for key in self.store:
            if key not in in_corpus or key in exclude:
                continue
            if self.restriction is not None and key not in self.restriction:
                continue
            if ngram_length(key) != size:
                continue
            eligible.append(key)
        return eligible

    def select(self, size: int, exclude: AbstractSet[str] = frozenset()) -> Optional[str]:
        """Sample Beta(alpha, beta) for every candidate and return the largest.

        Returns None when no n-gram of ``size`` is eligible.
        """
        best_key: Optional[str] = None
        best_sample = -1.0
        for key in self.candidates(size, exclude):
            record = self.store.ensure(key)
            sample = self.rng.betavariate(record.alpha, record.beta)
            if sample > best_sample:
                best_key, best_sample = key, sample
        if best_key is None:
            logger.debug("No eligible n-gram of size %d", size)
        return best_key
