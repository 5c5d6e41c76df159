"""Turn a selected n-gram into a corpus word that exercises it."""

from __future__ import annotations

import logging
import random
from typing import Callable, Optional, Set

from keydrill.models.ngram import CorpusIndex
from keydrill.models.selector import BanditSelector

logger = logging.getLogger(__name__)

DiagnosticListener = Callable[[str], None]


def seen_status_message(ngram: str, seen: int) -> str:
    """Describe the picked n-gram for the diagnostic line."""
    if seen == 0:
        return f'picked word containing the ngram "{ngram}" which has never been seen before'
    return f'picked word containing the ngram "{ngram}" which has been seen {seen} times already'


class WordResolver:
    """Find a practice word for the n-gram the selector picks.

    N-grams whose corpus lookup fails are not retried, so the loop ends
    after at most one attempt per eligible n-gram.
    """

    def __init__(
        self,
        selector: BanditSelector,
        rng: Optional[random.Random] = None,
        on_diagnostic: Optional[DiagnosticListener] = None,
    ) -> None:
        self.selector = selector
        self.rng = rng or random.Random()
        self.on_diagnostic = on_diagnostic

    @property
    def index(self) -> CorpusIndex:
        return self.selector.index

    def find_word(self, ngram: str) -> Optional[str]:
        """Return a uniformly random corpus word containing ``ngram``."""
        candidates = self.index.words_containing(ngram)
        if not candidates:
            return None
        return self.rng.choice(candidates)

    def resolve(self, size: int) -> Optional[str]:
        """Select n-grams until one maps to a corpus word.

        Returns None once the selector has nothing left to offer.
        """
        tried: Set[str] = set()
        limit = len(self.selector.candidates(size))
        while len(tried) < limit:
            ngram = self.selector.select(size, exclude=tried)
            if ngram is None:
                break
            tried.add(ngram)
            word = self.find_word(ngram)
            if word is None:
                logger.warning("No corpus word contains selected n-gram %r", ngram)
                continue
            record = self.selector.store.ensure(ngram)
            self._emit(seen_status_message(ngram, record.seen))
            return word

        logger.info("No word available for n-gram size %d after %d tries", size, len(tried))
        return None

    def _emit(self, message: str) -> None:
        logger.info(message)
        if self.on_diagnostic is None:
            return
        try:
            self.on_diagnostic(message)
        except Exception as e:
            logger.error("Diagnostic listener failed: %s", e)
