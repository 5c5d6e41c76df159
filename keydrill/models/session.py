"""Per-word typing state machine.

`KeystrokeSession` consumes keystroke events for the current word, scores
each keystroke by latency and correctness, feeds those rewards to the
`PerformanceStore`, and asks the `WordResolver` for the next word when the
current one is finished.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from enum import Enum
from typing import Callable, Deque, Dict, List, Optional, Set, Union

from keydrill.models.collaborators import (
    AudioCategory,
    AudioCues,
    DrillView,
    NullAudio,
    NullView,
    PositionStatus,
    call_advisory,
)
from keydrill.models.keystroke import Backspace, KeyDown, KeyUp, Reset, Submit
from keydrill.models.ngram import MAX_NGRAM_SIZE, graphemes, nfc
from keydrill.models.performance import DEFAULT_LATENCY_CAP_MS, PerformanceStore, item_reward
from keydrill.models.word_resolver import WordResolver

logger = logging.getLogger(__name__)

CORRECTED = "corrected"

ErrorMark = Union[bool, str]
Event = Union[KeyDown, KeyUp, Backspace, Reset, Submit]


class SessionPhase(str, Enum):
    AWAITING_WORD = "awaiting_word"
    TYPING = "typing"
    WORD_COMPLETE = "word_complete"


class SessionState:
    """Typing progress through a single word."""

    def __init__(self, word: str = "", max_ngram_size: int = MAX_NGRAM_SIZE) -> None:
        self.current_word: str = nfc(word)
        self.units: List[str] = graphemes(self.current_word)
        self.cursor: int = 0
        self.keys_typed: str = ""
        self.error_positions: Dict[int, ErrorMark] = {}
        self.recent_window: Deque[str] = deque(maxlen=max_ngram_size)
        self.last_keystroke_time: Optional[float] = None

    @property
    def word_length(self) -> int:
        return len(self.units)

    def has_plain_errors(self) -> bool:
        """Return True if any position is still marked as an uncorrected error."""
        return any(mark is True for mark in self.error_positions.values())

    def clear_progress(self) -> None:
        self.cursor = 0
        self.keys_typed = ""
        self.error_positions = {}
        self.recent_window.clear()
        self.last_keystroke_time = None

    def statuses(self) -> List[PositionStatus]:
        """Per-position display status for the renderer."""
        result: List[PositionStatus] = []
        for i in range(self.word_length):
            if i > self.cursor:
                result.append(PositionStatus.NORMAL)
            elif i == self.cursor:
                result.append(PositionStatus.CURRENT)
            elif self.error_positions.get(i) == CORRECTED:
                result.append(PositionStatus.CORRECTED)
            elif self.error_positions.get(i):
                result.append(PositionStatus.ERROR)
            else:
                result.append(PositionStatus.GOOD)
        return result


class KeystrokeSession:
    """Drive one word at a time from keystroke events.

    Latency is measured between consecutive keystrokes of the same word, so
    the first keystroke after a new word or a reset only starts the clock.
    """

    def __init__(
        self,
        store: PerformanceStore,
        resolver: WordResolver,
        ngram_size: int = 1,
        max_ngram_size: int = MAX_NGRAM_SIZE,
        latency_cap_ms: float = DEFAULT_LATENCY_CAP_MS,
        resolve_attempts: int = 3,
        view: Optional[DrillView] = None,
        audio: Optional[AudioCues] = None,
        clock: Optional[Callable[[], float]] = None,
        on_word_loaded: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.ngram_size = ngram_size
        self.max_ngram_size = max_ngram_size
        self.latency_cap_ms = latency_cap_ms
        self.resolve_attempts = resolve_attempts
        self.view: DrillView = view or NullView()
        self.audio: AudioCues = audio or NullAudio()
        self.clock: Callable[[], float] = clock or (lambda: time.monotonic() * 1000.0)
        self.on_word_loaded = on_word_loaded

        self.state = SessionState(max_ngram_size=max_ngram_size)
        self.phase = SessionPhase.AWAITING_WORD
        self.held_keys: Set[str] = set()
        self.exhausted = False

    def handle(self, event: Event) -> bool:
        """Process one event in arrival order.

        Returns:
            True if the event caused a new word to be loaded.
        """
        advanced = False
        if isinstance(event, KeyDown):
            advanced = self._key_down(event)
        elif isinstance(event, KeyUp):
            self.held_keys.discard(event.code)
            return False
        elif isinstance(event, Backspace):
            self._backspace()
        elif isinstance(event, Reset):
            self.reset_word()
        elif isinstance(event, Submit):
            advanced = self.advance()
        else:
            raise TypeError(f"unsupported event: {event!r}")
        self.render()
        return advanced

    def load_word(self, word: str) -> None:
        """Start typing ``word`` from a clean state."""
        self.state = SessionState(word, max_ngram_size=self.max_ngram_size)
        self.phase = SessionPhase.TYPING
        self.exhausted = False
        logger.debug("Loaded word %r", self.state.current_word)
        if self.on_word_loaded is not None:
            call_advisory(self.on_word_loaded, self.state.current_word)

    def advance(self) -> bool:
        """Move on to a freshly resolved word.

        Refused while any position holds an uncorrected error. If no word can
        be resolved the current one stays loaded and ``exhausted`` is set.
        """
        if self.state.has_plain_errors():
            call_advisory(self.view.show_status, "Fix the marked mistakes before moving on.")
            return False

        for attempt in range(1, self.resolve_attempts + 1):
            word = self.resolver.resolve(self.ngram_size)
            if word is not None:
                self.load_word(word)
                return True
            logger.debug("Resolve attempt %d/%d produced no word", attempt, self.resolve_attempts)

        self.exhausted = True
        logger.warning("No word available for n-gram size %d", self.ngram_size)
        call_advisory(
            self.view.show_status,
            f"No word available for n-gram size {self.ngram_size}; check the corpus and restrictions.",
        )
        return False

    def reset_word(self) -> None:
        """Clear progress on the current word and restart latency timing."""
        self.state.clear_progress()
        if self.state.current_word:
            self.phase = SessionPhase.TYPING

    def render(self) -> None:
        state = self.state
        call_advisory(
            self.view.render_word,
            state.current_word,
            state.cursor,
            state.statuses(),
            state.keys_typed,
        )

    def _key_down(self, event: KeyDown) -> bool:
        state = self.state
        if not state.current_word:
            return False
        if event.key == " " and state.cursor >= state.word_length:
            call_advisory(self.audio.play, AudioCategory.CORRECT, "Enter")
            return self.advance()
        if state.cursor >= state.word_length or event.code in self.held_keys:
            return False
        self.held_keys.add(event.code)

        now = event.timestamp_ms if event.timestamp_ms is not None else self.clock()
        i = state.cursor
        target = state.units[i]
        state.keys_typed += event.key

        is_correct = event.key == target
        if is_correct:
            if state.error_positions.get(i):
                state.error_positions[i] = CORRECTED
            call_advisory(self.audio.play, AudioCategory.CORRECT, event.key)
        else:
            state.error_positions[i] = True
            call_advisory(self.audio.play, AudioCategory.MISTAKE, event.key)

        state.recent_window.append(target)
        if state.last_keystroke_time is not None:
            latency = now - state.last_keystroke_time
            state.last_keystroke_time = now
            self._attribute(item_reward(latency, is_correct, self.latency_cap_ms))
        else:
            state.last_keystroke_time = now

        state.cursor += 1
        if state.cursor >= state.word_length and not state.has_plain_errors():
            self.phase = SessionPhase.WORD_COMPLETE
            call_advisory(self.audio.play, AudioCategory.NEXT_WORD, "")
            return self.advance()
        return False

    def _attribute(self, reward: float) -> None:
        """Credit ``reward`` to every n-gram ending at the latest keystroke."""
        window = list(self.state.recent_window)
        for k in range(1, len(window) + 1):
            ngram = "".join(window[-k:])
            if ngram not in self.store:
                # only possible after a mid-word backspace repeats a target char
                logger.debug("Skipping reward for n-gram %r outside the store", ngram)
                continue
            self.store.update(ngram, reward)

    def _backspace(self) -> None:
        state = self.state
        call_advisory(self.audio.play, AudioCategory.CORRECT, "Backspace")
        if state.cursor > 0:
            state.cursor -= 1
            state.keys_typed = "".join(graphemes(state.keys_typed)[:-1])
