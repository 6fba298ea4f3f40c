"""State/store layer.

This package is the single source of truth for which version of each feed
readers see: the latest snapshot that passed validation, its soft warnings,
its dangling references and the health of the feed behind it.
"""

from pygbfs.state.snapshot import DanglingReference, FeedHealth, FeedState, Snapshot
from pygbfs.state.store import SnapshotStore

__all__ = [
    "DanglingReference",
    "FeedHealth",
    "FeedState",
    "Snapshot",
    "SnapshotStore",
]
