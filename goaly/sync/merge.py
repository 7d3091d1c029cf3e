"""Three-way merge of goal payloads.

Given the last common snapshot (base), the local payload and the remote
payload, ``merge_payloads`` produces one payload. It is a pure function:
inputs are migrated copies, nothing is mutated and nothing is written.

Per goal id, over the union of ids on all three sides:
    1. present on one side only -> that side
    2. one side still equal to base while the other changed -> the changed side
    3. otherwise later ``lastUpdated`` wins, then later ``createdAt``,
       local on a full tie
    4. ``history`` is always the union of all three sides, deduplicated by
       id, sorted by timestamp and capped at MAX_HISTORY_ENTRIES

A goal missing from both local and remote is dropped even if base has it.
Settings come from whichever of local/remote has the later ``exportDate``.
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional

from goaly.core.dates import timestamp_ms, to_iso, utc_now
from goaly.core.migration import migrate_payload_to_current
from goaly.core.versioning import GOAL_FILE_VERSION
from goaly.types import Goal

logger = logging.getLogger(__name__)

# Newest entries kept in a merged history log
MAX_HISTORY_ENTRIES = 100


def _index_by_id(goals: Any) -> Dict[str, Dict[str, Any]]:
    index: Dict[str, Dict[str, Any]] = {}
    if not isinstance(goals, list):
        return index
    for goal in goals:
        if isinstance(goal, dict) and goal.get("id"):
            index[goal["id"]] = goal
    return index


def canonical_json(value: Any) -> str:
    """Stable serialization used for equality checks."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def merge_goal_histories(
    histories: Iterable[Any], limit: int = MAX_HISTORY_ENTRIES
) -> List[Dict[str, Any]]:
    """Union of history logs: first occurrence of each id wins, oldest first."""
    seen = set()
    merged = []
    for history in histories:
        if not isinstance(history, list):
            continue
        for entry in history:
            if not isinstance(entry, dict) or not entry.get("id"):
                continue
            if entry["id"] in seen:
                continue
            seen.add(entry["id"])
            merged.append(entry)

    # sorted() is stable, so entries with equal timestamps keep union order
    merged = sorted(merged, key=lambda entry: timestamp_ms(entry.get("timestamp")))
    if len(merged) > limit:
        return merged[-limit:]
    return merged


def _pick_against_base(
    local: Dict[str, Any], remote: Dict[str, Any], base: Optional[Dict[str, Any]]
) -> Optional[Dict[str, Any]]:
    if base is None:
        return None
    base_json = canonical_json(base)
    local_json = canonical_json(local)
    remote_json = canonical_json(remote)

    if local_json == base_json and remote_json != base_json:
        return remote
    if remote_json == base_json and local_json != base_json:
        return local
    return None


def _pick_by_timestamp(local: Dict[str, Any], remote: Dict[str, Any]) -> Dict[str, Any]:
    local_updated = timestamp_ms(local.get("lastUpdated"))
    remote_updated = timestamp_ms(remote.get("lastUpdated"))
    if local_updated != remote_updated:
        return local if local_updated > remote_updated else remote

    local_created = timestamp_ms(local.get("createdAt"))
    remote_created = timestamp_ms(remote.get("createdAt"))
    return local if local_created >= remote_created else remote


def pick_goal(
    local: Optional[Dict[str, Any]],
    remote: Optional[Dict[str, Any]],
    base: Optional[Dict[str, Any]],
) -> Optional[Dict[str, Any]]:
    """Choose the winning version of one goal (resolution rules 1-3)."""
    if local is not None and remote is None:
        return local
    if remote is not None and local is None:
        return remote
    if local is None and remote is None:
        return None

    picked = _pick_against_base(local, remote, base)
    if picked is not None:
        return picked
    return _pick_by_timestamp(local, remote)


def merge_goal(
    local: Optional[Dict[str, Any]],
    remote: Optional[Dict[str, Any]],
    base: Optional[Dict[str, Any]],
) -> Optional[Dict[str, Any]]:
    picked = pick_goal(local, remote, base)
    if picked is None:
        return None

    merged = dict(picked)
    merged["history"] = merge_goal_histories(
        [
            (local or {}).get("history"),
            (remote or {}).get("history"),
            (base or {}).get("history"),
        ]
    )
    return merged


def _choose_settings(local: Dict[str, Any], remote: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    remote = remote or {}
    local_date = timestamp_ms(local.get("exportDate")) if local.get("exportDate") else None
    remote_date = timestamp_ms(remote.get("exportDate")) if remote.get("exportDate") else None

    remote_newer = remote_date is not None and (local_date is None or remote_date > local_date)
    first, second = (remote, local) if remote_newer else (local, remote)
    chosen = first.get("settings")
    if chosen is None:
        chosen = second.get("settings")
    return chosen if isinstance(chosen, dict) else {}


def merge_payloads(base: Any = None, local: Any = None, remote: Any = None) -> Dict[str, Any]:
    """Merge three payloads into one current-version payload.

    Any argument may be None ("no such snapshot"). With ``base=None`` every
    goal present on both sides is decided by timestamps.

    Returns:
        ``{version, exportDate, goals, settings}`` where ``goals`` are
        ``Goal`` instances and ``exportDate`` is the merge time.
    """
    base_cur = migrate_payload_to_current(base) if base is not None else None
    local_cur = migrate_payload_to_current(local)
    remote_cur = migrate_payload_to_current(remote) if remote is not None else None

    base_idx = _index_by_id(base_cur["goals"] if base_cur else None)
    local_idx = _index_by_id(local_cur["goals"])
    remote_idx = _index_by_id(remote_cur["goals"] if remote_cur else None)

    # Insertion-ordered union: local ids, then remote, then base
    all_ids = list(dict.fromkeys([*local_idx, *remote_idx, *base_idx]))

    merged_goals = []
    for goal_id in all_ids:
        merged = merge_goal(local_idx.get(goal_id), remote_idx.get(goal_id), base_idx.get(goal_id))
        if merged is not None:
            merged_goals.append(Goal.from_dict(merged))

    logger.debug(
        f"Merged {len(merged_goals)} goals "
        f"(local={len(local_idx)}, remote={len(remote_idx)}, base={len(base_idx)})"
    )

    return {
        "version": GOAL_FILE_VERSION,
        "exportDate": to_iso(utc_now()),
        "goals": merged_goals,
        "settings": _choose_settings(local_cur, remote_cur),
    }


def compute_two_way_merge(local: Any, remote: Any) -> Dict[str, Any]:
    """Merge without a common ancestor."""
    return merge_payloads(base=None, local=local, remote=remote)
