"""
Shared types for goaly.

The goal entity, its status vocabulary and the result records returned by
the sync layer live here. Services, the merge engine and the CLI all speak
in these types; the JSON wire format stays camelCase while attributes are
snake_case.
"""

import copy
import math
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from goaly.core.dates import normalize_date, parse_local_date, to_iso, utc_now

# === Shared Utility Functions ===

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def generate_id() -> str:
    """Generate a new record id."""
    return str(uuid.uuid4())


def parse_int(value: Any) -> float:
    """Parse an integer the lenient way user input needs.

    Ints pass through, finite floats are truncated, strings contribute their
    leading integer (``"7 days"`` is 7). Anything else is ``nan``, which is
    kept rather than defaulted so that bad input stays visible downstream.
    """
    if isinstance(value, bool):
        return math.nan
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else math.nan
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        if match:
            return int(match.group(1))
    return math.nan


def is_nan(value: Any) -> bool:
    return isinstance(value, float) and math.isnan(value)


def same_number(a: Any, b: Any) -> bool:
    """Equality that treats two nan ratings as equal."""
    if is_nan(a) and is_nan(b):
        return True
    return a == b


def as_int(value: Any) -> Optional[int]:
    """Return ``value`` as an int when it is integral, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return int(value)
    return None


def json_number(value: Any) -> Any:
    """Numbers that JSON cannot carry (nan, inf) become None."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


# === Enums ===


class GoalStatus(str, Enum):
    """Lifecycle status of a goal.

    ``completed`` and ``notCompleted`` are terminal: the activation engine
    never touches them again.
    """

    ACTIVE = "active"
    INACTIVE = "inactive"
    PAUSED = "paused"
    COMPLETED = "completed"
    NOT_COMPLETED = "notCompleted"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({GoalStatus.COMPLETED, GoalStatus.NOT_COMPLETED})

VALID_STATUS_VALUES = frozenset(s.value for s in GoalStatus)

RECUR_PERIOD_UNITS = ("days", "weeks", "months")

DEFAULT_RECUR_PERIOD = 7


class HistoryEvent(str, Enum):
    """Events recorded in a goal's audit log."""

    CREATED = "created"
    UPDATED = "updated"
    STATUS_CHANGED = "statusChanged"
    PAUSED = "paused"
    UNPAUSED = "unpaused"
    REVIEWED = "reviewed"


def parse_status(value: Any) -> GoalStatus:
    """Map a raw status to ``GoalStatus``; unknown or missing means active."""
    if isinstance(value, GoalStatus):
        return value
    if isinstance(value, str) and value in VALID_STATUS_VALUES:
        return GoalStatus(value)
    return GoalStatus.ACTIVE


# === Sub-entity normalization ===


def _parse_steps(steps: Any) -> List[Dict[str, Any]]:
    if not isinstance(steps, list):
        return []
    parsed = []
    for index, step in enumerate(steps):
        step = step if isinstance(step, dict) else {}
        order = as_int(step.get("order"))
        parsed.append(
            {
                "id": step.get("id") or generate_id(),
                "text": step.get("text") or "",
                "completed": bool(step.get("completed")),
                "order": order if order is not None else index,
            }
        )
    return parsed


def _parse_resources(resources: Any) -> List[Dict[str, Any]]:
    if not isinstance(resources, list):
        return []
    parsed = []
    for resource in resources:
        resource = resource if isinstance(resource, dict) else {}
        parsed.append(
            {
                "id": resource.get("id") or generate_id(),
                "text": resource.get("text") or "",
                "type": resource.get("type") or "general",
            }
        )
    return parsed


def _parse_history(history: Any, now: datetime) -> List[Dict[str, Any]]:
    if not isinstance(history, list):
        return []
    parsed = []
    for entry in history:
        if not isinstance(entry, dict):
            continue
        normalized = copy.deepcopy(entry)
        normalized["id"] = entry.get("id") or generate_id()
        normalized["event"] = entry.get("event") or HistoryEvent.UPDATED.value
        normalized["timestamp"] = entry.get("timestamp") or to_iso(now)
        normalized["changes"] = list(entry.get("changes") or [])
        normalized.setdefault("before", None)
        normalized.setdefault("after", None)
        normalized["meta"] = entry.get("meta") if isinstance(entry.get("meta"), dict) else {}
        parsed.append(normalized)
    return parsed


def _first_date(primary: Any, fallback: Any) -> Optional[datetime]:
    if primary:
        return normalize_date(primary)
    if fallback:
        return normalize_date(fallback)
    return None


def make_history_entry(
    event: str,
    timestamp: datetime,
    changes: Optional[List[str]] = None,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
    meta: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Build one audit-log entry in its wire shape."""
    return {
        "id": generate_id(),
        "event": event.value if isinstance(event, Enum) else event,
        "timestamp": to_iso(timestamp),
        "changes": list(changes or []),
        "before": before,
        "after": after,
        "meta": dict(meta or {}),
    }


# === Goal ===


@dataclass
class Goal:
    """A tracked goal.

    ``motivation`` and ``urgency`` are ints, or ``nan`` when the input could
    not be parsed. ``pause_until_goal_id`` is a weak reference: a dangling
    id counts as satisfied.
    """

    id: str
    title: str
    motivation: float
    urgency: float
    status: GoalStatus = GoalStatus.ACTIVE
    created_at: datetime = field(default_factory=utc_now)
    last_updated: datetime = field(default_factory=utc_now)
    deadline: Optional[datetime] = None
    pause_until: Optional[datetime] = None
    pause_until_goal_id: Optional[str] = None
    review_dates: List[str] = field(default_factory=list)
    last_review_at: Optional[datetime] = None
    next_review_at: Optional[datetime] = None
    review_interval_index: Optional[int] = None
    steps: List[Dict[str, Any]] = field(default_factory=list)
    resources: List[Dict[str, Any]] = field(default_factory=list)
    history: List[Dict[str, Any]] = field(default_factory=list)
    # Recurrence metadata, carried through sync untouched
    is_recurring: bool = False
    recur_count: int = 0
    completion_count: int = 0
    not_completed_count: int = 0
    recur_period: int = DEFAULT_RECUR_PERIOD
    recur_period_unit: str = "days"

    @classmethod
    def from_dict(cls, data: Dict[str, Any], now: Optional[datetime] = None) -> "Goal":
        """Normalize raw goal data into a Goal.

        Never raises for malformed values: numbers degrade to ``nan``, dates
        to None (or ``now`` for the two bookkeeping timestamps), collections
        to empty lists. Legacy ``checkIn*`` fields are honored when the
        ``review*`` ones are absent.
        """
        now = now or utc_now()
        title = data.get("title")

        review_dates = data.get("reviewDates")
        if not isinstance(review_dates, list):
            review_dates = data.get("checkInDates")
        review_dates = list(review_dates) if isinstance(review_dates, list) else []

        recur_period = as_int(data.get("recurPeriod"))
        unit = data.get("recurPeriodUnit")

        return cls(
            id=data.get("id") or generate_id(),
            title="" if title is None else str(title),
            motivation=parse_int(data.get("motivation")),
            urgency=parse_int(data.get("urgency")),
            status=parse_status(data.get("status")),
            created_at=normalize_date(data.get("createdAt"), fallback=now),
            last_updated=normalize_date(data.get("lastUpdated"), fallback=now),
            deadline=parse_local_date(data.get("deadline")),
            pause_until=parse_local_date(data.get("pauseUntil")),
            pause_until_goal_id=data.get("pauseUntilGoalId") or None,
            review_dates=review_dates,
            last_review_at=_first_date(data.get("lastReviewAt"), data.get("lastCheckInAt")),
            next_review_at=_first_date(data.get("nextReviewAt"), data.get("nextCheckInAt")),
            review_interval_index=as_int(data.get("reviewIntervalIndex")),
            steps=_parse_steps(data.get("steps")),
            resources=_parse_resources(data.get("resources")),
            history=_parse_history(data.get("history"), now),
            is_recurring=bool(data.get("isRecurring")),
            recur_count=as_int(data.get("recurCount")) or 0,
            completion_count=as_int(data.get("completionCount")) or 0,
            not_completed_count=as_int(data.get("notCompletedCount")) or 0,
            recur_period=(
                recur_period if recur_period is not None and recur_period > 0
                else DEFAULT_RECUR_PERIOD
            ),
            recur_period_unit=unit if unit in RECUR_PERIOD_UNITS else "days",
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the JSON wire shape (camelCase keys, ISO dates)."""
        return {
            "id": self.id,
            "title": self.title,
            "motivation": json_number(self.motivation),
            "urgency": json_number(self.urgency),
            "status": self.status.value,
            "createdAt": to_iso(self.created_at),
            "lastUpdated": to_iso(self.last_updated),
            "deadline": to_iso(self.deadline),
            "pauseUntil": to_iso(self.pause_until),
            "pauseUntilGoalId": self.pause_until_goal_id,
            "reviewDates": list(self.review_dates),
            "lastReviewAt": to_iso(self.last_review_at),
            "nextReviewAt": to_iso(self.next_review_at),
            "reviewIntervalIndex": self.review_interval_index,
            "steps": copy.deepcopy(self.steps),
            "resources": copy.deepcopy(self.resources),
            "history": copy.deepcopy(self.history),
            "isRecurring": self.is_recurring,
            "recurCount": self.recur_count,
            "completionCount": self.completion_count,
            "notCompletedCount": self.not_completed_count,
            "recurPeriod": self.recur_period,
            "recurPeriodUnit": self.recur_period_unit,
        }

    def copy(self) -> "Goal":
        return Goal.from_dict(self.to_dict())

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


def create_goal(data: Dict[str, Any], now: Optional[datetime] = None) -> Goal:
    """Build a Goal from raw data (a Goal instance is copied)."""
    if isinstance(data, Goal):
        return data.copy()
    return Goal.from_dict(data, now=now)


# === Sync results ===


@dataclass
class SyncResult:
    """Result of a sync cycle."""

    uploaded: bool = False  # A remote write happened
    skipped: bool = False  # Another sync was in flight, nothing done
    reason: Optional[str] = None
    merged_goals: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return len(self.errors) == 0 and not self.skipped


@dataclass
class SyncDirection:
    """Outcome of the lightweight direction heuristic."""

    should_upload: bool
    reason: str
    local_version: Optional[str] = None
    remote_version: Optional[str] = None
    local_export_date: Optional[str] = None
    remote_export_date: Optional[str] = None


@dataclass
class RemoteDocument:
    """Metadata of the remote JSON document."""

    id: str
    modified_time: Optional[str] = None


@dataclass
class UploadResult:
    document_id: str
    version: str
    export_date: str


@dataclass
class DownloadResult:
    data: Any
    document_id: str
    modified_time: Optional[str] = None


@dataclass
class SyncStatus:
    """Snapshot of the remote side for status displays."""

    authenticated: bool
    container_id: Optional[str] = None
    document: Optional[RemoteDocument] = None
    error: Optional[str] = None

    @property
    def has_document(self) -> bool:
        return self.document is not None
