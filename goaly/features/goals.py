"""Goal lifecycle and priority-based activation.

``GoalService`` owns the in-memory goal list and its persisted copy. Status
is not set by hand except for the terminal outcomes: after every mutation
that can change eligibility or priority, ``auto_activate_goals_by_priority``
keeps exactly the top N eligible, unpaused goals active.

Priority:
    motivation + urgency * 10 + max(0, DEADLINE_BONUS_DAYS - days_until_deadline)

The deadline bonus only applies once the deadline is within the bonus
window; overdue deadlines keep growing the bonus. Equal priorities prefer
the older goal.
"""

import json
import logging
import math
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from goaly.core.dates import days_until, parse_local_date, set_to_midnight, utc_now
from goaly.core.events import Signal
from goaly.core.migration import prepare_goals_storage_payload, serialize_value
from goaly.features.priority_cache import PriorityCache
from goaly.storage import STORAGE_KEY_GOALS
from goaly.types import (
    DEFAULT_RECUR_PERIOD,
    RECUR_PERIOD_UNITS,
    TERMINAL_STATUSES,
    Goal,
    GoalStatus,
    HistoryEvent,
    as_int,
    create_goal,
    is_nan,
    make_history_entry,
    parse_int,
    same_number,
)

logger = logging.getLogger(__name__)

DEADLINE_BONUS_DAYS = 30


def _coerce_limit(max_active_goals: Any) -> int:
    """Slot count for an activation pass; anything unusable means no slots."""
    if isinstance(max_active_goals, bool):
        return 0
    if isinstance(max_active_goals, float) and not math.isfinite(max_active_goals):
        return 0
    if isinstance(max_active_goals, (int, float)):
        return max(0, int(max_active_goals))
    return 0


class GoalService:
    """Goal CRUD plus the activation engine.

    Args:
        store: key/value store (``LocalStore``) holding the goals document
        goals: initial goals (raw dicts or Goal instances)
        now_fn: clock, injectable for tests
        deadline_bonus_days: size of the deadline bonus window
    """

    def __init__(
        self,
        store,
        goals: Optional[List[Any]] = None,
        now_fn: Callable[[], datetime] = utc_now,
        deadline_bonus_days: int = DEADLINE_BONUS_DAYS,
    ):
        self.store = store
        self._now_fn = now_fn
        self.deadline_bonus_days = deadline_bonus_days
        self.goals: List[Goal] = [create_goal(g, now=now_fn()) for g in (goals or [])]
        self.after_save = Signal("goals.after_save")
        self.priority_cache = PriorityCache(self)

    def now(self) -> datetime:
        return self._now_fn()

    # === Persistence ===

    def load_goals(self) -> None:
        """Load goals from the store.

        Legacy bare-list documents and envelopes without a version are
        rewritten in the current format right away. A corrupt document is
        logged and leaves the in-memory list untouched.
        """
        saved = self.store.get_item(STORAGE_KEY_GOALS)
        if not saved:
            return
        try:
            parsed = json.loads(saved)
        except (TypeError, ValueError) as e:
            logger.error(f"Failed to load goals from storage: {e}", exc_info=True)
            return

        now = self.now()
        if isinstance(parsed, list):
            self.goals = [create_goal(g, now=now) for g in parsed if isinstance(g, dict)]
            self.priority_cache.invalidate()
            self.save_goals()
            return
        if isinstance(parsed, dict) and isinstance(parsed.get("goals"), list):
            self.goals = [create_goal(g, now=now) for g in parsed["goals"] if isinstance(g, dict)]
            self.priority_cache.invalidate()
            if not parsed.get("version"):
                self.save_goals()
            return
        logger.warning("Stored goals document has an unexpected shape, ignoring it")

    def save_goals(self) -> None:
        payload = prepare_goals_storage_payload(self.goals)
        self.store.set_item(STORAGE_KEY_GOALS, json.dumps(payload))
        self.after_save.emit()

    def replace_goals(self, raw_goals: Any) -> None:
        """Swap the whole goal list (import and sync apply). Does not persist."""
        if not isinstance(raw_goals, list):
            raw_goals = []
        now = self.now()
        goals = []
        for raw in raw_goals:
            if isinstance(raw, (dict, Goal)):
                goals.append(create_goal(raw, now=now))
            else:
                logger.warning(f"Skipping malformed goal entry of type {type(raw).__name__}")
        self.goals = goals
        self.priority_cache.invalidate()

    # === Lookup ===

    def get_goal(self, goal_id: str) -> Optional[Goal]:
        for goal in self.goals:
            if goal.id == goal_id:
                return goal
        return None

    def calculate_priority(self, goal: Goal, now: Optional[datetime] = None) -> float:
        priority = goal.motivation + goal.urgency * 10
        if goal.deadline is not None:
            remaining = days_until(goal.deadline, now or self.now())
            if not is_nan(remaining) and remaining <= self.deadline_bonus_days:
                priority += max(0, self.deadline_bonus_days - remaining)
        return priority

    def get_active_goals(self) -> List[Goal]:
        """Active, unpaused goals, highest cached priority first."""
        now = self.now()
        active = [
            g
            for g in self.goals
            if g.status == GoalStatus.ACTIVE and not self.is_goal_paused(g, now)
        ]
        priorities = self.priority_cache.get_all_priorities()
        return sorted(active, key=lambda g: self._priority_sort_key(g, priorities.get(g.id, 0)))

    @staticmethod
    def _priority_sort_key(goal: Goal, priority: float):
        # nan priorities sort after every number
        if is_nan(priority):
            return (1, 0, goal.created_at)
        return (0, -priority, goal.created_at)

    # === Status and pause rules ===

    def handle_status_transition(
        self, goal: Goal, new_status: GoalStatus, now: Optional[datetime] = None
    ) -> bool:
        """Move ``goal`` to ``new_status``. Returns False if it already had it."""
        new_status = GoalStatus(new_status)
        if goal.status == new_status:
            return False
        goal.status = new_status
        if new_status == GoalStatus.ACTIVE:
            goal.pause_until = None
            goal.pause_until_goal_id = None
        goal.last_updated = now or self.now()
        return True

    def is_goal_paused(self, goal: Optional[Goal], now: Optional[datetime] = None) -> bool:
        """Whether a pause date or an unfinished dependency holds ``goal`` back.

        Pure check; expired conditions are cleared by
        ``check_and_clear_pause_conditions``.
        """
        if goal is None:
            return False

        if goal.pause_until is not None:
            today = set_to_midnight(now or self.now())
            if set_to_midnight(goal.pause_until) > today:
                return True

        if goal.pause_until_goal_id:
            dependency = self.get_goal(goal.pause_until_goal_id)
            if dependency is not None and dependency.status != GoalStatus.COMPLETED:
                return True

        return False

    def check_and_clear_pause_conditions(self, now: Optional[datetime] = None) -> bool:
        """Drop pause dates that have passed and dependencies that are done or gone.

        Returns True if any goal changed.
        """
        now = now or self.now()
        today = set_to_midnight(now)
        any_changed = False

        for goal in self.goals:
            changed = False
            if goal.pause_until is not None and set_to_midnight(goal.pause_until) <= today:
                goal.pause_until = None
                changed = True
            if goal.pause_until_goal_id:
                dependency = self.get_goal(goal.pause_until_goal_id)
                if dependency is None or dependency.status == GoalStatus.COMPLETED:
                    goal.pause_until_goal_id = None
                    changed = True
            if changed:
                goal.last_updated = now
                any_changed = True

        if any_changed:
            self.priority_cache.invalidate()
        return any_changed

    # === Activation engine ===

    def auto_activate_goals_by_priority(self, max_active_goals: Any) -> None:
        """Keep the top ``max_active_goals`` eligible, unpaused goals active.

        1. clear expired pause conditions
        2. collect eligible goals, moving stale ``paused`` ones to inactive
        3. sort by priority (desc), then created_at (asc)
        4. activate the head, deactivate the tail
        5. repair the status of goals that are still paused
        6. invalidate priorities and persist

        One clock reading is shared by every step, so a pause that expires
        mid-pass cannot be judged differently by two steps.
        """
        limit = _coerce_limit(max_active_goals)
        now = self.now()

        self.check_and_clear_pause_conditions(now)
        eligible = self._get_eligible_goals_for_activation(now)
        self._activate_top_priority_goals(eligible, limit, now)
        self._validate_paused_goals(now)

        self.priority_cache.invalidate()
        self.save_goals()

    def _get_eligible_goals_for_activation(self, now: datetime) -> List[Goal]:
        eligible = []
        for goal in self.goals:
            if goal.status in TERMINAL_STATUSES:
                continue
            if self.is_goal_paused(goal, now):
                continue
            if goal.status == GoalStatus.PAUSED:
                self.handle_status_transition(goal, GoalStatus.INACTIVE, now)
            eligible.append(goal)

        priorities = {g.id: self.calculate_priority(g, now) for g in eligible}
        return sorted(eligible, key=lambda g: self._priority_sort_key(g, priorities[g.id]))

    def _activate_top_priority_goals(self, eligible: List[Goal], limit: int, now: datetime) -> None:
        for goal in eligible[:limit]:
            self.handle_status_transition(goal, GoalStatus.ACTIVE, now)
        for goal in eligible[limit:]:
            if not self.is_goal_paused(goal, now):
                self.handle_status_transition(goal, GoalStatus.INACTIVE, now)

    def _validate_paused_goals(self, now: datetime) -> None:
        for goal in self.goals:
            if goal.status in TERMINAL_STATUSES:
                continue
            if self.is_goal_paused(goal, now) and goal.status != GoalStatus.PAUSED:
                self.handle_status_transition(goal, GoalStatus.PAUSED, now)

    def migrate_goals_to_auto_activation(self, max_active_goals: Any) -> None:
        """Re-rank goals loaded from older data (startup and import)."""
        if not self.goals:
            return
        self.auto_activate_goals_by_priority(max_active_goals)

    # === CRUD ===

    def create_goal(
        self,
        goal_data: Dict[str, Any],
        max_active_goals: Any,
        prepare: Optional[Callable[[Goal], Any]] = None,
    ) -> Goal:
        """Add a goal; its status is decided by the activation pass.

        ``prepare`` runs on the new goal before the pass saves the list.
        """
        now = self.now()
        goal = create_goal({**goal_data, "status": GoalStatus.INACTIVE.value}, now=now)
        goal.history.append(
            make_history_entry(HistoryEvent.CREATED, now, after={"title": goal.title})
        )
        if prepare is not None:
            prepare(goal)
        self.goals.append(goal)
        self.priority_cache.invalidate()
        self.auto_activate_goals_by_priority(max_active_goals)
        return goal

    def update_goal(
        self, goal_id: str, goal_data: Dict[str, Any], max_active_goals: Any
    ) -> Optional[Goal]:
        """Apply field changes to a goal.

        Only keys present in ``goal_data`` are considered. Re-activation runs
        when motivation, urgency or the deadline changed; other edits just
        persist. Returns None for unknown ids.
        """
        goal = self.get_goal(goal_id)
        if goal is None:
            return None

        updates: Dict[str, Any] = {}
        priority_changed = False

        if "title" in goal_data and goal_data["title"] != goal.title:
            updates["title"] = "" if goal_data["title"] is None else str(goal_data["title"])
        for key, attr in (("motivation", "motivation"), ("urgency", "urgency")):
            if key in goal_data:
                parsed = parse_int(goal_data[key])
                if not same_number(parsed, getattr(goal, attr)):
                    updates[attr] = parsed
                    priority_changed = True
        if "deadline" in goal_data:
            deadline = parse_local_date(goal_data["deadline"])
            if deadline != goal.deadline:
                updates["deadline"] = deadline
                priority_changed = True
        if "steps" in goal_data:
            steps = goal_data["steps"] if isinstance(goal_data["steps"], list) else []
            updates["steps"] = Goal.from_dict({"steps": steps}).steps
        if "resources" in goal_data:
            resources = goal_data["resources"] if isinstance(goal_data["resources"], list) else []
            updates["resources"] = Goal.from_dict({"resources": resources}).resources
        updates.update(self._recurring_updates(goal_data))

        if not updates:
            return goal

        now = self.now()
        before = {key: serialize_value(getattr(goal, key)) for key in updates}
        for key, value in updates.items():
            setattr(goal, key, value)
        goal.last_updated = now
        goal.history.append(
            make_history_entry(
                HistoryEvent.UPDATED,
                now,
                changes=sorted(updates),
                before=before,
                after={key: serialize_value(value) for key, value in updates.items()},
            )
        )

        self.priority_cache.invalidate()
        if priority_changed:
            self.auto_activate_goals_by_priority(max_active_goals)
        else:
            self.save_goals()
        return goal

    @staticmethod
    def _recurring_updates(goal_data: Dict[str, Any]) -> Dict[str, Any]:
        updates: Dict[str, Any] = {}
        if "isRecurring" in goal_data:
            updates["is_recurring"] = bool(goal_data["isRecurring"])
        if "recurPeriod" in goal_data:
            period = as_int(goal_data["recurPeriod"])
            valid = period is not None and period > 0
            updates["recur_period"] = period if valid else DEFAULT_RECUR_PERIOD
        if "recurPeriodUnit" in goal_data:
            unit = goal_data["recurPeriodUnit"]
            updates["recur_period_unit"] = unit if unit in RECUR_PERIOD_UNITS else "days"
        return updates

    def delete_goal(self, goal_id: str, max_active_goals: Any) -> bool:
        goal = self.get_goal(goal_id)
        if goal is None:
            return False
        was_active = goal.status == GoalStatus.ACTIVE
        self.goals = [g for g in self.goals if g.id != goal_id]
        self.priority_cache.invalidate()

        if was_active:
            self.auto_activate_goals_by_priority(max_active_goals)
        else:
            self.save_goals()
        return True

    def set_goal_status(
        self, goal_id: str, new_status: Any, max_active_goals: Any
    ) -> Optional[Goal]:
        """Explicit status change, usually completing or abandoning a goal.

        Raises:
            ValueError: if ``new_status`` is not a known status
        """
        goal = self.get_goal(goal_id)
        if goal is None:
            return None

        new_status = GoalStatus(new_status)
        previous = goal.status
        now = self.now()
        if not self.handle_status_transition(goal, new_status, now):
            return goal

        goal.history.append(
            make_history_entry(
                HistoryEvent.STATUS_CHANGED,
                now,
                changes=["status"],
                before={"status": previous.value},
                after={"status": new_status.value},
            )
        )

        limit = _coerce_limit(max_active_goals)
        effective_limit = limit if limit > 0 else len(self.goals)

        if GoalStatus.ACTIVE in (previous, new_status):
            self.auto_activate_goals_by_priority(effective_limit)
        else:
            self.save_goals()

        self.priority_cache.invalidate()
        return goal

    def pause_goal(
        self, goal_id: str, pause_data: Dict[str, Any], max_active_goals: Any
    ) -> Optional[Goal]:
        """Pause until a date (``pauseUntil``) and/or until another goal is completed
        (``pauseUntilGoalId``)."""
        goal = self.get_goal(goal_id)
        if goal is None:
            return None

        now = self.now()
        goal.pause_until = parse_local_date(pause_data.get("pauseUntil"))
        goal.pause_until_goal_id = pause_data.get("pauseUntilGoalId") or None
        goal.last_updated = now
        goal.history.append(
            make_history_entry(
                HistoryEvent.PAUSED,
                now,
                changes=["pauseUntil", "pauseUntilGoalId"],
                after=serialize_value(
                    {"pauseUntil": goal.pause_until, "pauseUntilGoalId": goal.pause_until_goal_id}
                ),
            )
        )

        if goal.status == GoalStatus.ACTIVE and self.is_goal_paused(goal, now):
            self.handle_status_transition(goal, GoalStatus.PAUSED, now)

        self.priority_cache.invalidate()
        self.auto_activate_goals_by_priority(max_active_goals)
        return goal

    def unpause_goal(self, goal_id: str, max_active_goals: Any) -> Optional[Goal]:
        goal = self.get_goal(goal_id)
        if goal is None:
            return None

        now = self.now()
        goal.pause_until = None
        goal.pause_until_goal_id = None
        goal.last_updated = now
        goal.history.append(
            make_history_entry(
                HistoryEvent.UNPAUSED, now, changes=["pauseUntil", "pauseUntilGoalId"]
            )
        )

        self.priority_cache.invalidate()
        self.auto_activate_goals_by_priority(max_active_goals)
        return goal
