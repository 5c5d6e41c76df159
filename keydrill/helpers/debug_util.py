"""Switch between logged and printed debug output.

In "quiet" mode messages go to a logger at DEBUG level, so they only show up
if the host application configures logging to display them. In "loud" mode
they are printed to stdout, which is handy when driving a drill from a
terminal. The mode comes from ``KEYDRILL_DEBUG_MODE`` unless given explicitly.
"""

import logging
import os
from typing import Optional

DEBUG_MODE_ENV = "KEYDRILL_DEBUG_MODE"
_MODES = ("quiet", "loud")


def _coerce_mode(mode: str) -> str:
    mode = mode.strip().lower()
    return mode if mode in _MODES else "quiet"


class DebugUtil:
    """Route debug messages to a logger (quiet) or stdout (loud)."""

    def __init__(self, mode: Optional[str] = None, logger: Optional[logging.Logger] = None) -> None:
        if mode is None:
            mode = os.environ.get(DEBUG_MODE_ENV, "quiet")
        self._mode = _coerce_mode(mode)
        self._logger = logger or logging.getLogger(__name__)

    def debug_mode(self) -> str:
        return self._mode

    def set_mode(self, mode: str) -> None:
        """Change the mode. Unknown values fall back to "quiet"."""
        self._mode = _coerce_mode(mode)

    def is_loud(self) -> bool:
        return self._mode == "loud"

    def is_quiet(self) -> bool:
        return self._mode == "quiet"

    def debugMessage(self, *args: object) -> None:
        message = " ".join(str(arg) for arg in args)
        if not message:
            return
        if self._mode == "loud":
            print(f"[DEBUG] {message}", flush=True)
        else:
            self._logger.debug(message)
