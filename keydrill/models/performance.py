"""Per-n-gram performance model.

Each n-gram owns a Beta(alpha, beta) posterior over its "need for practice"
and a seen-counter. `PerformanceStore` owns the update rule, including the
rescaling that bounds total pseudo-count so recent typing keeps moving the
posterior mean.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from keydrill.models.ngram import ngram_length, nfc

logger = logging.getLogger(__name__)

DEFAULT_LATENCY_CAP_MS = 500.0
DEFAULT_MASS_CAP = 20.0

FirstSeenListener = Callable[[str], None]


class PerformanceRecord(BaseModel):
    """Beta posterior parameters and observation count for one n-gram."""

    alpha: float = Field(..., gt=0)
    beta: float = Field(..., gt=0)
    seen: int = Field(default=0, ge=0)

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    @property
    def mass(self) -> float:
        """Total pseudo-count alpha + beta."""
        return self.alpha + self.beta

    @property
    def mean(self) -> float:
        """Posterior mean of the Beta distribution."""
        return self.alpha / (self.alpha + self.beta)


def item_reward(latency_ms: float, is_correct: bool, latency_cap_ms: float = DEFAULT_LATENCY_CAP_MS) -> float:
    """Score one keystroke by how much more practice it calls for.

    Mistakes score 1. Correct keystrokes score their latency as a fraction of
    ``latency_cap_ms``, so slow hits land near 1 and fast ones near 0.
    """
    if not is_correct:
        return 1.0
    latency_limited = min(max(float(latency_ms), 0.0), latency_cap_ms)
    return latency_limited / latency_cap_ms


class PerformanceStore:
    """Insertion-ordered mapping from n-gram to `PerformanceRecord`."""

    def __init__(
        self,
        prior_alpha: float = 1.0,
        prior_beta: float = 1.0,
        mass_cap: float = DEFAULT_MASS_CAP,
        on_first_seen: Optional[FirstSeenListener] = None,
    ) -> None:
        if prior_alpha <= 0 or prior_beta <= 0:
            raise ValueError("prior parameters must be positive")
        if mass_cap <= 0:
            raise ValueError("mass_cap must be positive")
        self.prior_alpha = prior_alpha
        self.prior_beta = prior_beta
        self.mass_cap = mass_cap
        self.on_first_seen = on_first_seen
        self._records: Dict[str, PerformanceRecord] = {}

    def __contains__(self, ngram: object) -> bool:
        return isinstance(ngram, str) and nfc(ngram) in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)

    def keys(self) -> List[str]:
        """Return n-gram keys in insertion order."""
        return list(self._records)

    def items(self) -> List[Tuple[str, PerformanceRecord]]:
        return list(self._records.items())

    def get(self, ngram: str) -> Optional[PerformanceRecord]:
        return self._records.get(nfc(ngram))

    def ensure(self, ngram: str) -> PerformanceRecord:
        """Return the record for ``ngram``, creating it with the prior if missing."""
        key = nfc(ngram)
        record = self._records.get(key)
        if record is None:
            record = PerformanceRecord(alpha=self.prior_alpha, beta=self.prior_beta, seen=0)
            self._records[key] = record
        return record

    def mean(self, ngram: str) -> float:
        record = self.get(ngram)
        if record is None:
            raise KeyError(ngram)
        return record.mean

    def records_of_size(self, size: int) -> Dict[str, PerformanceRecord]:
        """Return the records whose n-gram is ``size`` units wide."""
        return {k: r for k, r in self._records.items() if ngram_length(k) == size}

    def update(self, ngram: str, reward: float) -> PerformanceRecord:
        """Fold one reward into the n-gram's posterior.

        alpha gains ``reward`` and beta gains ``1 - reward``. Once the total
        reaches ``mass_cap`` both are scaled by C/(C+1). ``seen`` always
        increases by one and is never rescaled.

        Raises:
            ValueError: If ``reward`` is outside [0, 1].
        """
        if not 0.0 <= reward <= 1.0:
            raise ValueError(f"reward must be within [0, 1], got {reward}")
        key = nfc(ngram)
        record = self.ensure(key)
        first_time = record.seen == 0

        alpha_new = record.alpha + reward
        beta_new = record.beta + (1.0 - reward)
        if alpha_new + beta_new >= self.mass_cap:
            scale = self.mass_cap / (self.mass_cap + 1.0)
            alpha_new *= scale
            beta_new *= scale

        updated = PerformanceRecord(alpha=alpha_new, beta=beta_new, seen=record.seen + 1)
        self._records[key] = updated

        if first_time:
            self._notify_first_seen(key)
        return updated

    def _notify_first_seen(self, ngram: str) -> None:
        if self.on_first_seen is None:
            return
        try:
            self.on_first_seen(ngram)
        except Exception as e:
            logger.error("First-seen notification failed for %r: %s", ngram, e)

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        """Return a detached plain-dict copy of every record."""
        return {k: r.model_dump() for k, r in self._records.items()}

    def replace(self, records: Mapping[str, PerformanceRecord | Mapping[str, Any]]) -> None:
        """Swap in a whole new set of records (between words only)."""
        fresh: Dict[str, PerformanceRecord] = {}
        for key, value in records.items():
            if isinstance(value, PerformanceRecord):
                fresh[nfc(key)] = value.model_copy()
            else:
                fresh[nfc(key)] = PerformanceRecord.model_validate(dict(value))
        self._records = fresh
        logger.debug("Performance store replaced with %d records", len(fresh))

    def clear(self) -> None:
        self._records = {}
