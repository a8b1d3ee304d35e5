"""
Merge module: incorporate fetched batches into stored history exactly once.
"""

from .engine import (
    MergeCase,
    MergeEngine,
    MergeResult,
    OverlapNotFound,
    UnsortedBatch,
    append_new_logs,
    check_sorted,
    find_pivot,
    plan_merge,
)

__all__ = [
    "MergeEngine",
    "MergeResult",
    "MergeCase",
    "UnsortedBatch",
    "OverlapNotFound",
    "append_new_logs",
    "check_sorted",
    "find_pivot",
    "plan_merge",
]
