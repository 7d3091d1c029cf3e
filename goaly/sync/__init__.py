"""Remote sync: three-way merge, orchestration and the Drive client."""

from goaly.sync.manager import SyncManager, canonicalize_payload, determine_sync_action
from goaly.sync.merge import (
    MAX_HISTORY_ENTRIES,
    compute_two_way_merge,
    merge_goal_histories,
    merge_payloads,
)
from goaly.sync.remote import DriveClient, StaticTokenProvider, TokenProvider

__all__ = [
    "MAX_HISTORY_ENTRIES",
    "DriveClient",
    "StaticTokenProvider",
    "SyncManager",
    "TokenProvider",
    "canonicalize_payload",
    "compute_two_way_merge",
    "determine_sync_action",
    "merge_goal_histories",
    "merge_payloads",
]
