"""Schema migration and payload serialization.

Every payload that enters the merge engine or gets applied to local state
passes through ``migrate_payload_to_current`` first. Migration is
idempotent: running it on an already-current payload only re-stamps the
version. Malformed goal entries are passed through untouched rather than
rejected.

Schema history handled here:
    - legacy bare-list files (no envelope, no version)
    - ``description`` folded into the first step
    - ``checkInDates`` / ``lastCheckInAt`` / ``nextCheckInAt`` renamed to
      their ``review*`` equivalents
"""

import logging
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from goaly.core.dates import to_iso, utc_now
from goaly.core.versioning import GOAL_FILE_VERSION
from goaly.types import Goal, generate_id, json_number

logger = logging.getLogger(__name__)

# Legacy field name -> current field name
LEGACY_REVIEW_FIELDS = {
    "checkInDates": "reviewDates",
    "lastCheckInAt": "lastReviewAt",
    "nextCheckInAt": "nextReviewAt",
}


def serialize_value(value: Any) -> Any:
    """Deep-copy ``value`` into plain JSON-compatible data.

    Goals become their wire dicts, datetimes ISO strings, enums their
    values, and non-finite numbers None.
    """
    if isinstance(value, Goal):
        return value.to_dict()
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: serialize_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_value(item) for item in value]
    return json_number(value)


def _serialize_goals(goals: Any) -> List[Any]:
    if not isinstance(goals, (list, tuple)):
        return []
    return [serialize_value(goal) for goal in goals]


def prepare_export_payload(goals: Iterable[Any], settings: Optional[Dict[str, Any]]) -> Dict:
    """Build a full export payload (files and remote sync documents)."""
    return {
        "version": GOAL_FILE_VERSION,
        "goals": _serialize_goals(list(goals)),
        "settings": serialize_value(settings) if settings is not None else None,
        "exportDate": to_iso(utc_now()),
    }


def prepare_goals_storage_payload(goals: Iterable[Any]) -> Dict[str, Any]:
    """Build the lighter payload kept in local storage."""
    return {
        "version": GOAL_FILE_VERSION,
        "goals": _serialize_goals(list(goals)),
    }


def migrate_goal_description_to_step(goal: Any, index: int = 0) -> Any:
    """Turn a legacy ``description`` into the goal's first step.

    Existing steps shift down by one. Goals without a usable description
    just get an empty ``steps`` list when they have none.
    """
    if not isinstance(goal, dict):
        return goal

    migrated = dict(goal)
    description = migrated.pop("description", None)

    if isinstance(description, str) and description.strip():
        existing = migrated.get("steps") if isinstance(migrated.get("steps"), list) else []
        description_step = {
            "id": f"{generate_id()}-{index}",
            "text": description.strip(),
            "completed": False,
            "order": 0,
        }
        reordered = []
        for step in existing:
            step = dict(step) if isinstance(step, dict) else {}
            order = step.get("order")
            if isinstance(order, bool) or not isinstance(order, (int, float)):
                order = 0
            step["order"] = order + 1
            reordered.append(step)
        migrated["steps"] = [description_step] + reordered
    elif not isinstance(migrated.get("steps"), list):
        migrated["steps"] = []

    return migrated


def migrate_check_in_to_review(goal: Any) -> Any:
    """Rename legacy check-in fields to review fields.

    A value already present under the new name is kept; the legacy key is
    dropped either way.
    """
    if not isinstance(goal, dict):
        return goal

    migrated = dict(goal)
    for legacy, current in LEGACY_REVIEW_FIELDS.items():
        if legacy not in migrated:
            continue
        legacy_value = migrated.pop(legacy)
        if migrated.get(current) is None:
            migrated[current] = legacy_value
    return migrated


def _migrate_goal(goal: Any, index: int) -> Any:
    return migrate_check_in_to_review(migrate_goal_description_to_step(goal, index))


def migrate_payload_to_current(payload: Any) -> Dict[str, Any]:
    """Migrate any stored or downloaded payload to the current schema.

    Args:
        payload: a bare list of goals (legacy files), an envelope dict, or
            anything else (treated as an empty dataset)

    Returns:
        A new dict stamped with ``GOAL_FILE_VERSION``; the input is never
        mutated.
    """
    if isinstance(payload, list):
        goals = [_migrate_goal(serialize_value(goal), i) for i, goal in enumerate(payload)]
        return {"version": GOAL_FILE_VERSION, "goals": goals}

    if not isinstance(payload, dict):
        if payload is not None:
            logger.warning(
                f"Ignoring {type(payload).__name__} payload during migration, expected list or dict"
            )
        return {"version": GOAL_FILE_VERSION, "goals": []}

    migrated = serialize_value(payload)
    migrated["version"] = GOAL_FILE_VERSION

    goals = migrated.get("goals")
    if isinstance(goals, list):
        migrated["goals"] = [_migrate_goal(goal, i) for i, goal in enumerate(goals)]
    else:
        migrated["goals"] = []

    return migrated
