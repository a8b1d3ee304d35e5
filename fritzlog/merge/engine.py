"""
Incremental merge of freshly fetched log batches into the stored history.

Consumes time-ordered (old → new) LogRecord batches, decides which records are
new and which stored record must be updated in place, and issues the minimal
store operations: one read of the latest row, at most one replace, then
appends.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from fritzlog.core.exceptions import MergeError
from fritzlog.data.schema import LogRecord
from fritzlog.store.base import LogStore

logger = logging.getLogger(__name__)


class UnsortedBatch(MergeError):
    """Raised when a batch is not sorted old → new by timestamp."""

    def __init__(self, index: int, previous: LogRecord, current: LogRecord):
        self.index = index
        self.previous = previous
        self.current = current
        super().__init__(
            f"batch not sorted at index {index}: {current.timestamp} < {previous.timestamp}"
        )


class OverlapNotFound(MergeError):
    """
    Raised when a batch overlaps the stored history but does not contain the
    stored latest record.

    Either the device log advanced past everything a poll captured, or the
    stored latest row is stale relative to the device's history.
    """

    def __init__(self, latest: LogRecord):
        self.latest = latest
        super().__init__(f"batch does not contain the stored latest record {latest}")


class MergeCase(str, Enum):
    """Which branch of the merge decision applied."""

    EMPTY_BATCH = "empty_batch"
    EMPTY_STORE = "empty_store"
    ALL_NEWER = "all_newer"
    ALL_OLDER = "all_older"
    OVERLAP = "overlap"


@dataclass(frozen=True)
class MergeResult:
    """
    Outcome of merging one batch.

    Attributes:
        case: Decision branch taken
        replaced: Stored record that was overwritten, if any
        updated: Record that replaced it (the pivot), if any
        appended: Records appended as new rows, in batch order
        dropped: Batch records discarded as already persisted
    """

    case: MergeCase
    replaced: Optional[LogRecord] = None
    updated: Optional[LogRecord] = None
    appended: List[LogRecord] = field(default_factory=list)
    dropped: int = 0

    @property
    def incorporated(self) -> List[LogRecord]:
        """The updated pivot (if it changed) followed by the appended records."""
        head = [self.updated] if self.updated is not None else []
        return head + list(self.appended)

    @property
    def mutated(self) -> bool:
        return self.updated is not None or bool(self.appended)


def check_sorted(batch: Sequence[LogRecord]) -> None:
    """
    Verify the batch is sorted non-decreasing by timestamp.

    Raises:
        UnsortedBatch: At the first record older than its predecessor
    """
    for idx in range(1, len(batch)):
        if batch[idx].timestamp < batch[idx - 1].timestamp:
            raise UnsortedBatch(idx, batch[idx - 1], batch[idx])


def find_pivot(batch: Sequence[LogRecord], latest: LogRecord) -> Optional[int]:
    """Index of the batch record sharing latest's identity key (last match wins)."""
    for idx in range(len(batch) - 1, -1, -1):
        if latest.same_entry(batch[idx]):
            return idx
    return None


def plan_merge(batch: Sequence[LogRecord], latest: Optional[LogRecord]) -> MergeResult:
    """
    Decide the store mutations for one batch without touching any store.

    Args:
        batch: Records sorted old → new
        latest: Most recent stored record, or None for an empty store

    Returns:
        MergeResult describing the replace (if any) and appends to perform

    Raises:
        UnsortedBatch: If the batch is not time-ordered
        OverlapNotFound: If the batch overlaps history but lacks the pivot
    """
    check_sorted(batch)

    if not batch:
        return MergeResult(case=MergeCase.EMPTY_BATCH)

    if latest is None:
        return MergeResult(case=MergeCase.EMPTY_STORE, appended=list(batch))

    oldest = min(record.earliest_timestamp for record in batch)
    if oldest > latest.timestamp:
        return MergeResult(case=MergeCase.ALL_NEWER, appended=list(batch))

    if batch[-1].timestamp < latest.timestamp:
        return MergeResult(case=MergeCase.ALL_OLDER, dropped=len(batch))

    pivot_idx = find_pivot(batch, latest)
    if pivot_idx is None:
        raise OverlapNotFound(latest)

    pivot = batch[pivot_idx]
    changed = pivot.timestamp != latest.timestamp or pivot.repetition != latest.repetition
    if changed:
        _warn_if_anomalous(latest, pivot)

    return MergeResult(
        case=MergeCase.OVERLAP,
        replaced=latest if changed else None,
        updated=pivot if changed else None,
        appended=list(batch[pivot_idx + 1:]),
        dropped=pivot_idx if changed else pivot_idx + 1,
    )


def _warn_if_anomalous(latest: LogRecord, pivot: LogRecord) -> None:
    if (latest.repetition is None) != (pivot.repetition is None):
        logger.warning(
            "Repetition of %s flipped from %s to %s", latest, latest.repetition, pivot.repetition
        )
    if pivot.timestamp < latest.timestamp:
        logger.warning("Timestamp of %s moved backwards to %s", latest, pivot.timestamp)


@dataclass
class MergeEngine:
    """
    Applies merge decisions to a store.

    Notes:
    - Single writer: callers must serialize merges into the same store.
    - Store errors propagate unchanged; no internal retry. Re-running the
      same batch after a failure is safe, since the overlap point is
      re-derived from the store.
    """

    store: LogStore

    def merge(self, batch: Sequence[LogRecord]) -> MergeResult:
        check_sorted(batch)
        if not batch:
            return MergeResult(case=MergeCase.EMPTY_BATCH)

        latest = self.store.select_latest()
        result = plan_merge(batch, latest)

        if result.replaced is not None and result.updated is not None:
            self.store.replace(result.replaced, result.updated)
        if result.appended:
            self.store.append(result.appended)

        logger.debug(
            "Merged batch of %d (%s): %d updated, %d appended, %d dropped",
            len(batch),
            result.case.value,
            0 if result.updated is None else 1,
            len(result.appended),
            result.dropped,
        )
        return result


def append_new_logs(store: LogStore, batch: Sequence[LogRecord]) -> List[LogRecord]:
    """Merge ``batch`` into ``store`` and return the incorporated records."""
    return MergeEngine(store).merge(batch).incorporated
