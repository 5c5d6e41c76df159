"""Interfaces of the UI and audio layers the scheduler talks to.

Both are advisory: the scheduler calls them through `call_advisory`, which
logs and swallows any failure so rendering or playback problems never
interrupt input handling.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, List, Protocol, Sequence

logger = logging.getLogger(__name__)


class PositionStatus(str, Enum):
    """Display status of one character of the current word."""

    NORMAL = "normal"
    CURRENT = "current"
    GOOD = "good"
    ERROR = "error"
    CORRECTED = "corrected"


class AudioCategory(str, Enum):
    CORRECT = "correct"
    MISTAKE = "mistake"
    NEXT_WORD = "next_word"


class DrillView(Protocol):
    """What the drill needs from a user interface."""

    def render_word(
        self, word: str, cursor: int, statuses: List[PositionStatus], keys_typed: str
    ) -> None: ...

    def show_layout(self, layout: Sequence[Any]) -> None: ...

    def show_diagnostic(self, text: str) -> None: ...

    def show_status(self, text: str) -> None: ...

    def celebrate(self, ngram: str) -> None: ...


class AudioCues(Protocol):
    def play(self, category: AudioCategory, key: str) -> None: ...


class NullView:
    """A view that discards everything; used when running headless."""

    def render_word(
        self, word: str, cursor: int, statuses: List[PositionStatus], keys_typed: str
    ) -> None:
        return None

    def show_layout(self, layout: Sequence[Any]) -> None:
        return None

    def show_diagnostic(self, text: str) -> None:
        return None

    def show_status(self, text: str) -> None:
        return None

    def celebrate(self, ngram: str) -> None:
        return None


class NullAudio:
    def play(self, category: AudioCategory, key: str) -> None:
        return None


def call_advisory(fn: Callable[..., Any], *args: Any) -> None:
    """Invoke a collaborator callback, logging and swallowing any failure."""
    try:
        fn(*args)
    except Exception as e:
        logger.error("Advisory call %s failed: %s", getattr(fn, "__qualname__", fn), e)
