"""Memoized goal priorities.

A dirty-flag table keyed by goal id over ``GoalService.calculate_priority``.
``invalidate()`` only marks the table dirty; the next read recomputes every
entry. The cache belongs to exactly one ``GoalService`` and its goal list;
it is not meant to be shared across goal-list snapshots or event loops.
"""

from typing import TYPE_CHECKING, Dict

if TYPE_CHECKING:
    from goaly.features.goals import GoalService


class PriorityCache:
    def __init__(self, goal_service: "GoalService"):
        self.goal_service = goal_service
        self._cache: Dict[str, float] = {}
        self.is_dirty = True

    def get_priority(self, goal_id: str) -> float:
        """Priority of ``goal_id``; 0 for ids the service does not know."""
        self.refresh_if_needed()
        return self._cache.get(goal_id, 0)

    def get_all_priorities(self) -> Dict[str, float]:
        """A copy of the id -> priority table."""
        self.refresh_if_needed()
        return dict(self._cache)

    def invalidate(self) -> None:
        self.is_dirty = True

    def refresh_if_needed(self) -> None:
        if not self.is_dirty:
            return
        now = self.goal_service.now()
        self._cache = {
            goal.id: self.goal_service.calculate_priority(goal, now=now)
            for goal in self.goal_service.goals
        }
        self.is_dirty = False

    def clear(self) -> None:
        self._cache.clear()
        self.is_dirty = True
