"""Goaly features - goal lifecycle, settings, reviews and staged migrations."""

from goaly.features.goals import DEADLINE_BONUS_DAYS, GoalService
from goaly.features.migration_manager import MigrationManager, PendingMigration
from goaly.features.priority_cache import PriorityCache
from goaly.features.reviews import ReviewItem, ReviewOutcome, ReviewService
from goaly.features.settings import SettingsService, default_settings

__all__ = [
    "DEADLINE_BONUS_DAYS",
    "GoalService",
    "MigrationManager",
    "PendingMigration",
    "PriorityCache",
    "ReviewItem",
    "ReviewOutcome",
    "ReviewService",
    "SettingsService",
    "default_settings",
]
