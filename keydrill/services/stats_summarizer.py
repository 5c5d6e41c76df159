"""Background histogram layout of n-gram performance.

`summarize` converts a performance snapshot into a binned two-dimensional
layout (bucket across, rank within bucket down) so a renderer can draw the
progress strip without any statistics. `StatsSummarizerService` runs it in
an isolated worker and keeps only the newest response.
"""

from __future__ import annotations

import copy
import logging
import math
import threading
from concurrent.futures import Executor, Future, ProcessPoolExecutor
from typing import Any, Callable, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field

from keydrill.models.ngram import ngram_length

logger = logging.getLogger(__name__)

HISTOGRAM_BINS = 15
HISTOGRAM_LINE_HEIGHT_PIXELS = 18

LayoutListener = Callable[[List["LayoutEntry"]], None]


class LayoutEntry(BaseModel):
    """Placement of one n-gram in the progress histogram."""

    item: str = Field(..., min_length=1)
    row: int = Field(..., ge=0)
    bucket: int = Field(..., ge=0)
    top: int = Field(..., ge=0)
    left: float = Field(..., ge=0.0, le=100.0)
    rounded_score: int = Field(..., ge=0, le=100)

    model_config = {"extra": "forbid"}


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def summarize(
    item_performance: Mapping[str, Mapping[str, Any]],
    ngram_size: int,
    bins: int = HISTOGRAM_BINS,
    row_height: int = HISTOGRAM_LINE_HEIGHT_PIXELS,
) -> List[LayoutEntry]:
    """Bin every n-gram of ``ngram_size`` by normalized score.

    score = 1 - alpha / (alpha + beta), so a higher score means more
    practice is needed. Scores are min/max normalized (all 0 when they are
    equal) and split into ``bins`` equal-width buckets; the top edge falls
    into the last bucket. Members of a bucket are stacked by ascending score.
    """
    scores: Dict[str, float] = {}
    for item, params in item_performance.items():
        if ngram_length(item) != ngram_size:
            continue
        alpha = float(params["alpha"])
        beta = float(params["beta"])
        scores[item] = 1.0 - alpha / (alpha + beta)

    if not scores:
        return []

    max_score = max(scores.values())
    min_score = min(scores.values())
    spread = max_score - min_score

    buckets: Dict[int, List[str]] = {}
    for item, score in sorted(scores.items(), key=lambda pair: pair[1]):
        score_normed = (score - min_score) / spread if spread != 0 else 0.0
        bucket = min(int(math.floor(score_normed * bins)), bins - 1)
        buckets.setdefault(bucket, []).append(item)

    layout: List[LayoutEntry] = []
    for bucket in sorted(buckets):
        for row, item in enumerate(buckets[bucket]):
            layout.append(
                LayoutEntry(
                    item=item,
                    row=row,
                    bucket=bucket,
                    top=row * row_height,
                    left=bucket / bins * 100,
                    rounded_score=_round_half_up(scores[item] * 100),
                )
            )
    return layout


class StatsSummarizerService:
    """Run `summarize` off the input thread and keep the newest result.

    Every request gets a sequence number. A response is applied only if its
    number is higher than the last applied one, so a slow, superseded
    request can never overwrite a newer layout.
    """

    def __init__(
        self,
        executor: Optional[Executor] = None,
        bins: int = HISTOGRAM_BINS,
        row_height: int = HISTOGRAM_LINE_HEIGHT_PIXELS,
        on_layout: Optional[LayoutListener] = None,
    ) -> None:
        self._owns_executor = executor is None
        self._executor: Executor = executor or ProcessPoolExecutor(max_workers=1)
        self.bins = bins
        self.row_height = row_height
        self.on_layout = on_layout
        self._lock = threading.Lock()
        self._next_seq = 0
        self._applied_seq = 0
        self._latest: Optional[List[LayoutEntry]] = None

    @property
    def applied_seq(self) -> int:
        with self._lock:
            return self._applied_seq

    @property
    def latest_layout(self) -> Optional[List[LayoutEntry]]:
        with self._lock:
            return self._latest

    def request(self, item_performance: Mapping[str, Mapping[str, Any]], ngram_size: int) -> int:
        """Queue a layout computation over a private copy of the snapshot.

        Returns the sequence number tagged on the request. Never blocks on
        the result.
        """
        snapshot = copy.deepcopy(dict(item_performance))
        with self._lock:
            self._next_seq += 1
            seq = self._next_seq
        try:
            future = self._executor.submit(
                summarize, snapshot, ngram_size, self.bins, self.row_height
            )
        except Exception as e:
            logger.error("Could not submit stats request %d: %s", seq, e)
            return seq
        future.add_done_callback(lambda f: self._on_done(seq, f))
        return seq

    def take_layout(self) -> Optional[List[LayoutEntry]]:
        """Return the newest unconsumed layout and clear it."""
        with self._lock:
            layout, self._latest = self._latest, None
            return layout

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=wait)

    def _on_done(self, seq: int, future: "Future[List[LayoutEntry]]") -> None:
        try:
            layout = future.result()
        except Exception as e:
            logger.error("Stats request %d failed: %s", seq, e)
            return

        with self._lock:
            if seq <= self._applied_seq:
                logger.debug("Dropping stale stats response %d (applied %d)", seq, self._applied_seq)
                return
            self._applied_seq = seq
            self._latest = layout

        if self.on_layout is not None:
            try:
                self.on_layout(layout)
            except Exception as e:
                logger.error("Layout listener failed: %s", e)
