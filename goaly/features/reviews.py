"""Spaced review scheduling for open goals.

Each open goal walks up the configured interval ladder while its ratings
stay the same at review time, and drops back to the shortest interval when
motivation or urgency change.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from goaly.core.dates import normalize_date, to_iso, utc_now
from goaly.features.settings import DEFAULT_REVIEW_INTERVALS
from goaly.types import (
    Goal,
    GoalStatus,
    HistoryEvent,
    as_int,
    make_history_entry,
    parse_int,
    same_number,
)

logger = logging.getLogger(__name__)

MAX_RATING_VALUE = 5

REVIEWABLE_STATUSES = frozenset({GoalStatus.ACTIVE, GoalStatus.INACTIVE, GoalStatus.PAUSED})


@dataclass
class ReviewItem:
    """A goal whose review is due."""

    goal: Goal
    due_at: datetime
    is_overdue: bool


@dataclass
class ReviewOutcome:
    goal: Goal
    ratings_match: bool


def _most_recent_review(goal: Goal) -> Optional[datetime]:
    parsed = [normalize_date(value) for value in goal.review_dates]
    parsed = [value for value in parsed if value is not None]
    return max(parsed) if parsed else None


class ReviewService:
    def __init__(
        self,
        goal_service,
        settings_service,
        now_fn: Optional[Callable[[], datetime]] = None,
    ):
        self.goal_service = goal_service
        self.settings_service = settings_service
        self._now_fn = now_fn or getattr(goal_service, "now", utc_now)

    def get_review_intervals(self) -> List[float]:
        intervals = self.settings_service.get_review_intervals() if self.settings_service else None
        return list(intervals) if intervals else list(DEFAULT_REVIEW_INTERVALS)

    def ensure_goal_schedule(self, goal: Goal) -> Optional[Goal]:
        """Fill in or repair the review schedule of an open goal.

        Returns None for closed goals. A ``next_review_at`` further out than
        the longest interval (plus a day) is recomputed, which happens after
        the intervals were shortened.
        """
        if goal is None or goal.status not in REVIEWABLE_STATUSES:
            return None

        intervals = self.get_review_intervals()
        index = goal.review_interval_index
        if index is None or index < 0 or index > len(intervals) - 1:
            goal.review_interval_index = 0

        if goal.last_review_at is None:
            goal.last_review_at = _most_recent_review(goal) or goal.created_at or self._now_fn()

        interval_days = intervals[goal.review_interval_index]
        if goal.next_review_at is None:
            goal.next_review_at = self.calculate_next_review_date(
                goal.last_review_at, interval_days
            )
        else:
            max_reasonable = self._now_fn() + timedelta(days=max(intervals) + 1)
            if goal.next_review_at > max_reasonable:
                logger.debug(f"Rescheduling review of goal {goal.id}, next date out of range")
                goal.next_review_at = self.calculate_next_review_date(
                    goal.last_review_at, interval_days
                )
        return goal

    def calculate_next_review_date(self, base: Any, interval_days: Any) -> datetime:
        base_date = normalize_date(base, fallback=self._now_fn())
        usable = isinstance(interval_days, (int, float)) and not isinstance(interval_days, bool)
        if not usable or interval_days <= 0:
            interval_days = self.get_review_intervals()[0]
        return base_date + timedelta(days=interval_days)

    def refresh_schedules(self) -> None:
        for goal in self.goal_service.goals:
            self.ensure_goal_schedule(goal)

    def should_review(self, goal: Goal) -> bool:
        ensured = self.ensure_goal_schedule(goal)
        if ensured is None:
            return False
        return ensured.next_review_at <= self._now_fn()

    def get_reviews(self) -> List[ReviewItem]:
        """Goals due for review, the longest-waiting first."""
        now = self._now_fn()
        due = []
        for goal in self.goal_service.goals:
            if self.ensure_goal_schedule(goal) is None:
                continue
            if goal.next_review_at <= now:
                due.append(goal)
        due.sort(key=lambda g: g.next_review_at)
        return [
            ReviewItem(goal=g, due_at=g.next_review_at, is_overdue=g.next_review_at < now)
            for g in due
        ]

    @staticmethod
    def parse_rating(value: Any, fallback: Any) -> Any:
        parsed = parse_int(value)
        if isinstance(parsed, float):
            return fallback
        return min(MAX_RATING_VALUE, max(1, parsed))

    def record_review(
        self, goal_id: str, ratings: Optional[Dict[str, Any]] = None
    ) -> Optional[ReviewOutcome]:
        """Record a review and reschedule the next one.

        Changed ratings are written through ``GoalService.update_goal``, which
        re-ranks the active goals.
        """
        goal = self.goal_service.get_goal(goal_id)
        if goal is None:
            return None
        ratings = ratings or {}

        self.ensure_goal_schedule(goal)
        intervals = self.get_review_intervals()
        longest = len(intervals) - 1

        motivation = self.parse_rating(ratings.get("motivation"), goal.motivation)
        urgency = self.parse_rating(ratings.get("urgency"), goal.urgency)
        ratings_match = same_number(goal.motivation, motivation) and same_number(
            goal.urgency, urgency
        )

        if not ratings_match:
            self.goal_service.update_goal(
                goal_id,
                {"motivation": motivation, "urgency": urgency},
                self.settings_service.max_active_goals,
            )

        now = self._now_fn()
        current = as_int(goal.review_interval_index) or 0
        next_index = min(current + 1, longest) if ratings_match else 0

        goal.review_interval_index = next_index
        goal.last_review_at = now
        goal.review_dates.append(to_iso(now))
        goal.next_review_at = self.calculate_next_review_date(now, intervals[next_index])
        goal.last_updated = now
        goal.history.append(
            make_history_entry(
                HistoryEvent.REVIEWED,
                now,
                meta={"ratingsMatch": ratings_match, "reviewIntervalIndex": next_index},
            )
        )

        self.goal_service.save_goals()
        return ReviewOutcome(goal=goal, ratings_match=ratings_match)
