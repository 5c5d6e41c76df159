"""Drill configuration settings.

Defines the tunable constants of the drill scheduler (n-gram sizes, reward
ceiling, forgetting cap, prior, histogram geometry) with validation. Values
can be overridden from ``KEYDRILL_*`` environment variables or a ``.env`` file.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

MAX_SUPPORTED_NGRAM_SIZE = 3
DATA_CURRENT_VERSION = 3
ENV_PREFIX = "KEYDRILL_"


class NgramSizeError(Exception):
    """Raised when an n-gram size outside the configured range is requested."""

    def __init__(self, message: str = "Invalid n-gram size") -> None:
        """Initialize the error with a helpful message."""
        self.message = message
        super().__init__(self.message)


class DrillConfig(BaseSettings):
    """Drill scheduler configuration with validation.

    Attributes:
        max_ngram_size: Largest n-gram width tracked (K_max).
        ngram_size: Active n-gram width used for selection and statistics.
        latency_cap_ms: Latency ceiling; correct answers at or above it score 1.
        mass_cap: Total pseudo-count C at which alpha/beta are rescaled.
        prior_alpha: Alpha of the prior for newly created records.
        prior_beta: Beta of the prior for newly created records.
        histogram_bins: Number of equal-width buckets in the progress layout.
        histogram_row_height: Vertical stacking step (pixels) per bucket member.
        word_resolve_attempts: How many resolve rounds to try before giving up.
        data_version: Snapshot version this build reads and writes.
        layout: Name of the alphabet used to filter the corpus.
        celebrate_first_seen: Whether first-time n-grams trigger a celebration.
        state_path: JSON file used by the persistence collaborator.
    """

    max_ngram_size: int = Field(default=MAX_SUPPORTED_NGRAM_SIZE, ge=1, le=MAX_SUPPORTED_NGRAM_SIZE)
    ngram_size: int = Field(default=1, ge=1)
    latency_cap_ms: float = Field(default=500.0, gt=0)
    mass_cap: float = Field(default=20.0, gt=0)
    prior_alpha: float = Field(default=1.0, gt=0)
    prior_beta: float = Field(default=1.0, gt=0)
    histogram_bins: int = Field(default=15, ge=1)
    histogram_row_height: int = Field(default=18, ge=1)
    word_resolve_attempts: int = Field(default=3, ge=1)
    data_version: int = DATA_CURRENT_VERSION
    layout: str = "letters"
    celebrate_first_seen: bool = True
    state_path: str = "keydrill_state.json"

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_assignment=True,
    )

    @field_validator("layout")
    @classmethod
    def validate_layout(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("layout cannot be blank.")
        return v.strip()

    @model_validator(mode="after")
    def check_ngram_size(self) -> "DrillConfig":
        if self.ngram_size > self.max_ngram_size:
            raise ValueError(
                f"ngram_size {self.ngram_size} exceeds max_ngram_size {self.max_ngram_size}"
            )
        return self

    def ngram_sizes(self) -> range:
        """Return the range of tracked n-gram widths, 1..max_ngram_size."""
        return range(1, self.max_ngram_size + 1)

    def check_size(self, size: int) -> int:
        """Validate an n-gram size against this configuration.

        Raises:
            NgramSizeError: If size is not within 1..max_ngram_size.
        """
        if not isinstance(size, int) or size < 1 or size > self.max_ngram_size:
            raise NgramSizeError(
                f"n-gram size must be between 1 and {self.max_ngram_size}, got {size!r}"
            )
        return size

    @classmethod
    def from_env(cls, env_file: Optional[Union[str, Path]] = None, **overrides: Any) -> "DrillConfig":
        """Build a config from ``KEYDRILL_*`` environment variables.

        Each field maps to ``KEYDRILL_<FIELD_NAME>`` (for example
        ``KEYDRILL_PRIOR_BETA=0.001``). ``env_file`` replaces the default
        ``.env`` lookup. Keyword overrides win over the environment, and a
        malformed value raises a pydantic ``ValidationError``.
        """
        if env_file is None:
            config = cls(**overrides)
        else:
            config = cls(_env_file=env_file, **overrides)
        logger.debug("DrillConfig loaded: %s", config.model_dump())
        return config
