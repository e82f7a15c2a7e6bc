"""
Reconcile module for GraphSync.

This module handles:
- The application state cell and its watchers
- Merging novelty and migrating tempids
- Bounded transaction history
- The reconciler state machine and root registry
"""

from .history import History
from .merge import (
    TEMPIDS,
    MergeResult,
    default_merge,
    merge_novelty,
    merge_ref,
    merge_tree,
    migrate,
    sift_refs,
)
from .reconciler import SKIP, Reconciler, get_in, merge_sends
from .registry import RootRegistry
from .state import AppState

__all__ = [
    "AppState",
    "History",
    "TEMPIDS",
    "MergeResult",
    "default_merge",
    "merge_novelty",
    "merge_ref",
    "merge_tree",
    "migrate",
    "sift_refs",
    "SKIP",
    "Reconciler",
    "RootRegistry",
    "get_in",
    "merge_sends",
]
