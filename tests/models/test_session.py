"""Tests for the per-word KeystrokeSession state machine."""

from typing import Callable, List, Optional

import pytest

from keydrill.models.collaborators import AudioCategory, PositionStatus
from keydrill.models.keystroke import Backspace, KeyDown, KeyUp, Reset, Submit
from keydrill.models.performance import PerformanceStore
from keydrill.models.session import CORRECTED, KeystrokeSession, SessionPhase
from keydrill.models.word_resolver import WordResolver


class CountingResolver:
    """Wraps a resolver and counts resolve calls."""

    def __init__(self, inner: Optional[WordResolver] = None, words: Optional[List[Optional[str]]] = None) -> None:
        self.inner = inner
        self.words = list(words or [])
        self.calls = 0

    def resolve(self, size: int) -> Optional[str]:
        self.calls += 1
        if self.inner is not None:
            return self.inner.resolve(size)
        return self.words.pop(0) if self.words else None


def tap(session: KeystrokeSession, key: str, clock, dt: float = 100.0) -> bool:
    """Press and release ``key`` after ``dt`` milliseconds."""
    clock.advance(dt)
    advanced = session.handle(KeyDown(key=key))
    session.handle(KeyUp(code=key))
    return advanced


@pytest.fixture
def make_session(store: PerformanceStore, build_resolver, view, audio, clock) -> Callable[..., KeystrokeSession]:
    def _make(corpus=("cat",), ngram_size: int = 3, **kwargs) -> KeystrokeSession:
        resolver = CountingResolver(build_resolver(list(corpus)))
        return KeystrokeSession(
            store,
            resolver,  # type: ignore[arg-type]
            ngram_size=ngram_size,
            view=view,
            audio=audio,
            clock=clock,
            **kwargs,
        )

    return _make


class TestWordCompletion:
    """Test objective: finishing a word resolves exactly one new word."""

    def test_correct_word_triggers_one_resolve(self, make_session, clock) -> None:
        session = make_session()
        assert session.advance() is True
        assert session.resolver.calls == 1

        assert tap(session, "c", clock) is False
        assert tap(session, "a", clock) is False
        assert tap(session, "t", clock) is True

        assert session.resolver.calls == 2
        assert session.state.current_word == "cat"
        assert session.state.cursor == 0
        assert session.phase == SessionPhase.TYPING

    def test_uncorrected_error_blocks_advance(self, make_session, clock, view) -> None:
        session = make_session()
        session.advance()
        for key in "cxt":
            assert tap(session, key, clock) is False

        assert session.resolver.calls == 1
        assert session.state.error_positions == {1: True}
        assert session.handle(Submit()) is False
        assert session.resolver.calls == 1
        assert view.statuses[-1] == "Fix the marked mistakes before moving on."

    def test_corrected_marks_allow_advance(self, make_session, clock) -> None:
        session = make_session()
        session.advance()
        tap(session, "c", clock)
        tap(session, "x", clock)
        session.handle(Backspace())
        tap(session, "a", clock)
        assert session.state.error_positions == {1: CORRECTED}
        assert tap(session, "t", clock) is True
        assert session.resolver.calls == 2

    def test_space_at_end_submits(self, make_session, clock, audio) -> None:
        session = make_session()
        session.load_word("cat")
        for key in "cxt":
            tap(session, key, clock)
        audio.cues.clear()

        assert session.handle(KeyDown(key=" ")) is False
        assert audio.cues == [(AudioCategory.CORRECT, "Enter")]
        assert session.resolver.calls == 0

    def test_space_retries_after_exhaustion(self, store, build_resolver, clock) -> None:
        build_resolver(["cat"])
        resolver = CountingResolver(words=[None, None, None, "cat"])
        session = KeystrokeSession(store, resolver, ngram_size=3, clock=clock)  # type: ignore[arg-type]
        session.load_word("cat")
        for key in "cat":
            tap(session, key, clock)
        assert session.exhausted is True

        assert session.handle(KeyDown(key=" ")) is True
        assert session.exhausted is False
        assert resolver.calls == 4


class TestExhaustion:
    def test_status_after_failed_attempts(self, store: PerformanceStore, view) -> None:
        resolver = CountingResolver(words=[])
        session = KeystrokeSession(store, resolver, ngram_size=2, view=view)  # type: ignore[arg-type]
        assert session.advance() is False
        assert resolver.calls == 3
        assert session.exhausted is True
        assert "No word available for n-gram size 2" in view.statuses[-1]

    def test_attempt_count_is_configurable(self, store: PerformanceStore) -> None:
        resolver = CountingResolver(words=[None, "dog"])
        session = KeystrokeSession(store, resolver, resolve_attempts=2)  # type: ignore[arg-type]
        assert session.advance() is True
        assert session.state.current_word == "dog"


class TestAttribution:
    """Test objective: rewards flow to the n-grams ending at each keystroke."""

    def test_cat_scenario(self, make_session, store: PerformanceStore, clock) -> None:
        session = make_session()
        session.load_word("cat")

        tap(session, "c", clock)
        assert all(record.seen == 0 for _, record in store.items())

        tap(session, "a", clock)
        assert store.get("a").seen == 1
        assert store.get("ca").seen == 1
        assert store.get("c").seen == 0

        tap(session, "t", clock)
        assert store.get("cat").seen == 1
        assert store.get("at").seen == 1
        assert store.get("t").seen == 1
        assert store.get("c").seen == 0

    def test_latency_reward(self, make_session, store: PerformanceStore, clock) -> None:
        session = make_session()
        session.load_word("cat")
        tap(session, "c", clock)
        tap(session, "a", clock, dt=100.0)
        record = store.get("a")
        assert record.alpha == pytest.approx(1.2)
        assert record.beta == pytest.approx(1.8)

    def test_mistake_reward(self, make_session, store: PerformanceStore, clock) -> None:
        session = make_session()
        session.load_word("cat")
        tap(session, "c", clock)
        tap(session, "x", clock, dt=10.0)
        record = store.get("ca")
        assert (record.alpha, record.beta) == (pytest.approx(2.0), pytest.approx(1.0))

    def test_event_timestamp_preferred_over_clock(self, make_session, store: PerformanceStore) -> None:
        session = make_session()
        session.load_word("cat")
        session.handle(KeyDown(key="c", timestamp_ms=0))
        session.handle(KeyDown(key="a", timestamp_ms=500))
        record = store.get("a")
        assert record.alpha == pytest.approx(2.0)

    def test_backspace_does_not_update(self, make_session, store: PerformanceStore, clock, monkeypatch) -> None:
        session = make_session()
        session.load_word("cat")
        tap(session, "c", clock)
        tap(session, "a", clock)

        calls: List[str] = []
        original = store.update
        monkeypatch.setattr(store, "update", lambda ngram, reward: calls.append(ngram) or original(ngram, reward))
        window_before = list(session.state.recent_window)
        last_before = session.state.last_keystroke_time

        session.handle(Backspace())

        assert calls == []
        assert session.state.cursor == 1
        assert session.state.keys_typed == "c"
        assert list(session.state.recent_window) == window_before
        assert session.state.last_keystroke_time == last_before

    def test_unknown_window_ngrams_skipped(self, make_session, store: PerformanceStore, clock) -> None:
        session = make_session()
        session.load_word("cat")
        tap(session, "c", clock)
        tap(session, "a", clock)
        session.handle(Backspace())
        tap(session, "a", clock)
        assert "aa" not in store
        assert "caa" not in store
        assert store.get("a").seen == 2

    def test_window_limited_by_max_size(self, store: PerformanceStore, build_resolver, clock) -> None:
        resolver = build_resolver(["abcd"])
        session = KeystrokeSession(store, resolver, ngram_size=1, max_ngram_size=2, clock=clock)
        session.load_word("abcd")
        for key in "abc":
            tap(session, key, clock)
        assert session.state.recent_window.maxlen == 2
        assert list(session.state.recent_window) == ["b", "c"]
        assert store.get("bc").seen == 1


class TestResetAndDebounce:
    def test_reset_clears_timing(self, make_session, store: PerformanceStore, clock) -> None:
        session = make_session()
        session.load_word("cat")
        tap(session, "c", clock)
        tap(session, "a", clock)

        session.handle(Reset())

        state = session.state
        assert state.last_keystroke_time is None
        assert state.cursor == 0
        assert state.keys_typed == ""
        assert state.error_positions == {}
        assert len(state.recent_window) == 0

        tap(session, "c", clock)
        assert store.get("c").seen == 0

    def test_held_key_is_ignored_until_released(self, make_session, clock) -> None:
        session = make_session(corpus=["book"], ngram_size=1)
        session.load_word("book")
        tap(session, "b", clock)
        session.handle(KeyDown(key="o"))
        session.handle(KeyDown(key="o"))
        assert session.state.cursor == 2

        session.handle(KeyUp(code="o"))
        session.handle(KeyDown(key="o"))
        assert session.state.cursor == 3

    def test_backspace_removes_a_whole_unit(self, make_session, clock, view) -> None:
        # q with dot below and dot above has no precomposed form
        stacked = "q\u0323\u0307"
        session = make_session(corpus=["a" + stacked + "b"], ngram_size=1)
        session.load_word("a" + stacked + "b")
        tap(session, "a", clock)
        tap(session, stacked, clock)
        assert session.state.keys_typed == "a" + stacked

        session.handle(Backspace())

        assert session.state.cursor == 1
        assert session.state.keys_typed == "a"
        assert view.renders[-1][3] == "a"

    def test_key_before_word_loaded_ignored(self, make_session) -> None:
        session = make_session()
        assert session.handle(KeyDown(key="c")) is False
        assert session.state.cursor == 0
        assert session.state.keys_typed == ""

    def test_key_past_end_ignored(self, make_session, clock) -> None:
        session = make_session()
        session.load_word("cat")
        for key in "cxt":
            tap(session, key, clock)
        tap(session, "q", clock)
        assert session.state.cursor == 3
        assert session.state.keys_typed == "cxt"


class TestRendering:
    def test_statuses_after_each_event(self, make_session, clock, view) -> None:
        session = make_session()
        session.load_word("cat")
        session.handle(KeyDown(key="c"))
        session.handle(KeyDown(key="x"))
        assert view.renders[-1] == (
            "cat",
            2,
            [PositionStatus.GOOD, PositionStatus.ERROR, PositionStatus.CURRENT],
            "cx",
        )

        session.handle(Backspace())
        word, cursor, statuses, typed = view.renders[-1]
        assert cursor == 1
        assert statuses == [PositionStatus.GOOD, PositionStatus.CURRENT, PositionStatus.NORMAL]
        assert typed == "c"

    def test_corrected_status(self, make_session, clock, view) -> None:
        session = make_session()
        session.load_word("cat")
        tap(session, "x", clock)
        session.handle(Backspace())
        tap(session, "c", clock)
        assert view.renders[-1][2][0] == PositionStatus.CORRECTED

    def test_failing_view_does_not_break_typing(self, store: PerformanceStore, build_resolver, clock) -> None:
        class BrokenView:
            def __getattr__(self, name):
                def fail(*args):
                    raise RuntimeError("window closed")

                return fail

        session = KeystrokeSession(store, build_resolver(["cat"]), ngram_size=3, view=BrokenView(), clock=clock)
        session.load_word("cat")
        tap(session, "c", clock)
        assert session.state.cursor == 1


class TestAudioAndHooks:
    def test_cues_for_a_clean_word(self, make_session, clock, audio) -> None:
        session = make_session()
        session.load_word("cat")
        for key in "cat":
            tap(session, key, clock)
        assert audio.cues == [
            (AudioCategory.CORRECT, "c"),
            (AudioCategory.CORRECT, "a"),
            (AudioCategory.CORRECT, "t"),
            (AudioCategory.NEXT_WORD, ""),
        ]

    def test_mistake_and_backspace_cues(self, make_session, clock, audio) -> None:
        session = make_session()
        session.load_word("cat")
        tap(session, "z", clock)
        session.handle(Backspace())
        assert audio.cues == [(AudioCategory.MISTAKE, "z"), (AudioCategory.CORRECT, "Backspace")]

    def test_word_loaded_hook(self, make_session) -> None:
        loaded: List[str] = []
        session = make_session(on_word_loaded=loaded.append)
        session.advance()
        assert loaded == ["cat"]
