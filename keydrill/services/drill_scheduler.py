"""DrillScheduler: wires the drill components together.

Owns the performance store, corpus index, selector, resolver and keystroke
session for one learner, plus the persistence and statistics collaborators.
All methods run on the caller's (input) thread; only the statistics layout
is computed elsewhere.
"""

from __future__ import annotations

import logging
import random
from pathlib import Path
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Union

from keydrill.helpers.debug_util import DebugUtil
from keydrill.models.collaborators import AudioCues, DrillView, NullAudio, NullView, call_advisory
from keydrill.models.corpus import clean_corpus, layout_chars
from keydrill.models.drill_config import DrillConfig
from keydrill.models.keystroke import Backspace, KeyDown, KeyUp, Reset, Submit
from keydrill.models.ngram import CorpusIndex, NgramIndexer
from keydrill.models.performance import PerformanceStore
from keydrill.models.selector import BanditSelector, parse_restriction_set
from keydrill.models.session import KeystrokeSession
from keydrill.models.snapshot import DrillSnapshot, SnapshotIntegrityError, SnapshotStore
from keydrill.models.word_resolver import WordResolver
from keydrill.services.stats_summarizer import StatsSummarizerService

logger = logging.getLogger(__name__)

Event = Union[KeyDown, KeyUp, Backspace, Reset, Submit]


class DrillScheduler:
    """Adaptive drill for one learner.

    Typical use::

        scheduler = DrillScheduler(config, corpus=words, view=my_view)
        scheduler.start()
        for event in events:
            scheduler.handle(event)
        scheduler.close()
    """

    def __init__(
        self,
        config: Optional[DrillConfig] = None,
        corpus: Optional[Iterable[str]] = None,
        view: Optional[DrillView] = None,
        audio: Optional[AudioCues] = None,
        summarizer: Optional[StatsSummarizerService] = None,
        snapshot_store: Optional[SnapshotStore] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.config = config or DrillConfig()
        self.view: DrillView = view or NullView()
        self.audio: AudioCues = audio or NullAudio()
        self.rng = rng or random.Random()
        self.debug_util = DebugUtil(logger=logger)

        self.store = PerformanceStore(
            prior_alpha=self.config.prior_alpha,
            prior_beta=self.config.prior_beta,
            mass_cap=self.config.mass_cap,
            on_first_seen=self._celebrate,
        )
        self.indexer = NgramIndexer(self.store, max_ngram_size=self.config.max_ngram_size)
        self.selector = BanditSelector(self.store, rng=self.rng)
        self.resolver = WordResolver(self.selector, rng=self.rng, on_diagnostic=self._diagnostic)
        self.session = KeystrokeSession(
            self.store,
            self.resolver,
            ngram_size=self.config.ngram_size,
            max_ngram_size=self.config.max_ngram_size,
            latency_cap_ms=self.config.latency_cap_ms,
            resolve_attempts=self.config.word_resolve_attempts,
            view=self.view,
            audio=self.audio,
            clock=clock,
            on_word_loaded=self._on_word_loaded,
        )
        self.summarizer = summarizer or StatsSummarizerService(
            bins=self.config.histogram_bins, row_height=self.config.histogram_row_height
        )
        self.snapshot_store = snapshot_store or SnapshotStore(
            self.config.state_path, expected_version=self.config.data_version
        )

        self.current_layout = self.config.layout
        self.chars = layout_chars(self.current_layout)
        self.raw_corpus: List[str] = list(corpus or [])
        self.corpus: List[str] = []
        self.index = CorpusIndex.empty()

    # ------------------------------------------------------------------
    # lifecycle

    def start(self) -> bool:
        """Restore saved progress (or start fresh), index the corpus, load a word."""
        try:
            snapshot = self.snapshot_store.read()
        except FileNotFoundError:
            logger.info("No saved progress; starting fresh")
        except SnapshotIntegrityError as e:
            logger.warning("Saved progress discarded: %s", e.message)
            call_advisory(self.view.show_status, "Saved progress was incompatible and has been reset.")
        else:
            self._apply_snapshot(snapshot)
        self.set_corpus(self.raw_corpus)
        return self.next_word()

    def close(self) -> None:
        self.save()
        self.summarizer.shutdown(wait=False)

    # ------------------------------------------------------------------
    # corpus, size, restrictions

    def set_corpus(self, words: Iterable[str]) -> int:
        """Replace the corpus and rebuild the index before any later selection.

        Returns the number of usable words after cleaning.
        """
        self.raw_corpus = list(words)
        corpus = clean_corpus(self.raw_corpus, self.chars)
        index = self.indexer.rebuild_index(corpus)
        self.corpus = corpus
        self.index = index
        self.selector.set_index(index)
        if not corpus:
            logger.warning("Corpus is empty after filtering to %r", self.chars)
        self.debug_util.debugMessage(f"corpus: {len(corpus)} words, {len(index)} n-grams")
        return len(corpus)

    def set_layout(self, layout: str) -> None:
        """Switch the alphabet and re-filter the current corpus."""
        self.chars = layout_chars(layout)
        self.current_layout = layout
        self.set_corpus(self.raw_corpus)

    def set_ngram_size(self, size: int) -> None:
        """Change the active n-gram width.

        Raises:
            NgramSizeError: If ``size`` is outside 1..max_ngram_size.
        """
        self.config.check_size(size)
        self.config.ngram_size = size
        self.session.ngram_size = size
        self.refresh_stats()

    @property
    def ngram_size(self) -> int:
        return self.session.ngram_size

    def load_restrictions(self, text: str) -> int:
        """Restrict selection to the whitespace-separated n-grams in ``text``."""
        restriction = parse_restriction_set(text)
        self.selector.set_restriction(restriction)
        call_advisory(self.view.show_status, f"loaded {len(restriction)} ngrams for restriction")
        self.refresh_stats()
        self.next_word()
        return len(restriction)

    def clear_restrictions(self) -> None:
        self.selector.set_restriction(None)
        call_advisory(self.view.show_status, "ngram restrictions cleared")

    @property
    def restriction(self) -> Optional[FrozenSet[str]]:
        return self.selector.restriction

    # ------------------------------------------------------------------
    # input

    def handle(self, event: Event) -> bool:
        """Feed one keystroke event to the session. Returns True on a new word."""
        return self.session.handle(event)

    def next_word(self) -> bool:
        advanced = self.session.advance()
        self.session.render()
        return advanced

    @property
    def current_word(self) -> str:
        return self.session.state.current_word

    # ------------------------------------------------------------------
    # persistence

    def snapshot(self) -> DrillSnapshot:
        return DrillSnapshot(
            version=self.config.data_version,
            item_performance={k: r.model_copy() for k, r in self.store.items()},
            chars=self.chars,
            current_layout=self.current_layout,
        )

    def save(self) -> None:
        try:
            self.snapshot_store.save(self.snapshot())
        except OSError as e:
            logger.error("Failed to save drill state: %s", e)

    def import_snapshot(self, snapshot: Union[DrillSnapshot, Dict[str, Any]]) -> bool:
        """Replace the whole store with imported data.

        Incompatible data is refused with a status message and the current
        progress is kept.
        """
        try:
            if isinstance(snapshot, DrillSnapshot):
                snapshot = DrillSnapshot.from_dict(
                    data=snapshot.to_dict(), expected_version=self.config.data_version
                )
            else:
                snapshot = DrillSnapshot.from_dict(
                    data=snapshot, expected_version=self.config.data_version
                )
        except SnapshotIntegrityError as e:
            logger.warning("Refusing imported drill state: %s", e.message)
            call_advisory(self.view.show_status, f"Import refused: {e.message}")
            return False

        self._apply_snapshot(snapshot)
        self.set_corpus(self.raw_corpus)
        self.refresh_stats()
        self.session.reset_word()
        self.next_word()
        return True

    def import_file(self, path: Union[str, Path]) -> bool:
        try:
            snapshot = self.snapshot_store.import_from(path)
        except (FileNotFoundError, SnapshotIntegrityError) as e:
            message = e.message if isinstance(e, SnapshotIntegrityError) else str(e)
            logger.warning("Import from %s failed: %s", path, message)
            call_advisory(self.view.show_status, f"Import refused: {message}")
            return False
        return self.import_snapshot(snapshot)

    def export_file(self, path: Union[str, Path]) -> None:
        self.snapshot_store.export_to(path, self.snapshot())

    def reset_database(self) -> None:
        """Forget all progress and start over with fresh priors."""
        self.store.clear()
        self.chars = layout_chars(self.config.layout)
        self.current_layout = self.config.layout
        self.set_corpus(self.raw_corpus)
        self.session.reset_word()
        self.save()
        self.next_word()

    # ------------------------------------------------------------------
    # statistics

    def refresh_stats(self) -> int:
        """Ask the summarizer for a fresh layout of the active size."""
        records = self.store.records_of_size(self.ngram_size)
        snapshot = {k: r.model_dump() for k, r in records.items()}
        return self.summarizer.request(snapshot, self.ngram_size)

    def render_stats(self) -> None:
        """Hand the newest finished layout (if any) to the view."""
        layout = self.summarizer.take_layout()
        if layout is not None:
            call_advisory(self.view.show_layout, layout)

    # ------------------------------------------------------------------
    # internal callbacks

    def _apply_snapshot(self, snapshot: DrillSnapshot) -> None:
        self.store.replace(snapshot.item_performance)
        self.current_layout = snapshot.current_layout
        self.chars = snapshot.chars

    def _on_word_loaded(self, word: str) -> None:
        self.refresh_stats()
        self.render_stats()
        self.save()

    def _celebrate(self, ngram: str) -> None:
        if self.config.celebrate_first_seen:
            call_advisory(self.view.celebrate, ngram)

    def _diagnostic(self, text: str) -> None:
        # the resolver has already logged it
        if self.debug_util.is_loud():
            self.debug_util.debugMessage(text)
        call_advisory(self.view.show_diagnostic, text)
