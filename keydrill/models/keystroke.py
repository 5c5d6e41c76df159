"""Keystroke input events consumed by the drill session.

Input is a tagged union discriminated on ``kind`` so the session never
deals with UI-toolkit event objects.
"""

from __future__ import annotations

import unicodedata
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator, model_validator


class KeyDown(BaseModel):
    """A character key pressed.

    ``code`` identifies the physical key for key-repeat debouncing; it
    defaults to the character itself.
    """

    kind: Literal["key_down"] = "key_down"
    key: str = Field(..., min_length=1)
    code: str = ""
    timestamp_ms: Optional[float] = None

    @field_validator("key", mode="before")
    @classmethod
    def _normalize_nfc(cls, v: object) -> str:
        """Normalize the typed character to NFC so it compares with corpus text."""
        if v is None:
            return ""
        if not isinstance(v, str):
            v = str(v)
        return unicodedata.normalize("NFC", v)

    @model_validator(mode="after")
    def _default_code(self) -> "KeyDown":
        if not self.code:
            self.code = self.key
        return self


class KeyUp(BaseModel):
    """A key released; clears its held flag."""

    kind: Literal["key_up"] = "key_up"
    code: str


class Backspace(BaseModel):
    kind: Literal["backspace"] = "backspace"


class Reset(BaseModel):
    """Start the current word over (the ctrl+backspace shortcut)."""

    kind: Literal["reset"] = "reset"


class Submit(BaseModel):
    """Ask for the next word (enter, or space at the end of a word)."""

    kind: Literal["submit"] = "submit"


KeystrokeEvent = Annotated[
    Union[KeyDown, KeyUp, Backspace, Reset, Submit],
    Field(discriminator="kind"),
]

_event_adapter: TypeAdapter[Any] = TypeAdapter(KeystrokeEvent)


def event_from_dict(data: Dict[str, Any]) -> Union[KeyDown, KeyUp, Backspace, Reset, Submit]:
    """Validate a plain mapping (e.g. decoded JSON) into a keystroke event."""
    return _event_adapter.validate_python(data)
