"""Pytest configuration for the test suite."""

import random
import sys
from concurrent.futures import Executor, Future
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Tuple

import pytest

project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from keydrill.models.collaborators import AudioCategory, PositionStatus
from keydrill.models.drill_config import DrillConfig
from keydrill.models.ngram import CorpusIndex, NgramIndexer
from keydrill.models.performance import PerformanceStore
from keydrill.models.selector import BanditSelector
from keydrill.models.word_resolver import WordResolver


class RecordingView:
    """DrillView that records every call for assertions."""

    def __init__(self) -> None:
        self.renders: List[Tuple[str, int, List[PositionStatus], str]] = []
        self.layouts: List[Sequence[Any]] = []
        self.diagnostics: List[str] = []
        self.statuses: List[str] = []
        self.celebrations: List[str] = []

    def render_word(
        self, word: str, cursor: int, statuses: List[PositionStatus], keys_typed: str
    ) -> None:
        self.renders.append((word, cursor, statuses, keys_typed))

    def show_layout(self, layout: Sequence[Any]) -> None:
        self.layouts.append(layout)

    def show_diagnostic(self, text: str) -> None:
        self.diagnostics.append(text)

    def show_status(self, text: str) -> None:
        self.statuses.append(text)

    def celebrate(self, ngram: str) -> None:
        self.celebrations.append(ngram)


class RecordingAudio:
    def __init__(self) -> None:
        self.cues: List[Tuple[AudioCategory, str]] = []

    def play(self, category: AudioCategory, key: str) -> None:
        self.cues.append((category, key))


class ManualExecutor(Executor):
    """Executor that runs nothing until the test completes a future by hand."""

    def __init__(self) -> None:
        self.pending: List[Tuple[Future, Callable[..., Any], tuple]] = []

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future:
        future: Future = Future()
        self.pending.append((future, fn, args))
        return future

    def run(self, index: int) -> None:
        """Compute and deliver the result of the ``index``-th submitted call."""
        future, fn, args = self.pending[index]
        try:
            future.set_result(fn(*args))
        except Exception as e:  # pragma: no cover - surfaced through the future
            future.set_exception(e)

    def fail(self, index: int, error: Exception) -> None:
        self.pending[index][0].set_exception(error)


class FakeClock:
    def __init__(self, start_ms: float = 0.0) -> None:
        self.now = start_ms

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def rng() -> random.Random:
    """Seeded RNG so sampling tests are repeatable."""
    return random.Random(1234)


@pytest.fixture
def config() -> DrillConfig:
    return DrillConfig()


@pytest.fixture
def store() -> PerformanceStore:
    return PerformanceStore()


@pytest.fixture
def view() -> RecordingView:
    return RecordingView()


@pytest.fixture
def audio() -> RecordingAudio:
    return RecordingAudio()


@pytest.fixture
def manual_executor() -> ManualExecutor:
    return ManualExecutor()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(start_ms=1_000.0)


@pytest.fixture
def build_resolver(store: PerformanceStore, rng: random.Random) -> Callable[..., WordResolver]:
    """Factory: index a corpus into ``store`` and return a resolver over it."""

    def _build(
        corpus: Sequence[str],
        restriction: Optional[Sequence[str]] = None,
        on_diagnostic: Optional[Callable[[str], None]] = None,
    ) -> WordResolver:
        index: CorpusIndex = NgramIndexer(store).rebuild_index(corpus)
        selector = BanditSelector(
            store,
            index=index,
            restriction=set(restriction) if restriction is not None else None,
            rng=rng,
        )
        return WordResolver(selector, rng=rng, on_diagnostic=on_diagnostic)

    return _build
