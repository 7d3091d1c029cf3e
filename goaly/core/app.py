"""Application root: wires storage, services and sync together."""

import json
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from goaly.core.dates import utc_now
from goaly.core.migration import prepare_export_payload
from goaly.core.versioning import (
    GOAL_FILE_VERSION,
    is_newer_version,
    is_older_version,
    is_same_version,
    is_valid_version,
)
from goaly.errors import ImportValidationError
from goaly.features.goals import GoalService
from goaly.features.migration_manager import MigrationManager, PendingMigration
from goaly.features.reviews import ReviewItem, ReviewOutcome, ReviewService
from goaly.features.settings import SettingsService
from goaly.storage import LocalStore
from goaly.sync.manager import DEFAULT_DEBOUNCE_SECONDS, SyncManager
from goaly.types import Goal

logger = logging.getLogger(__name__)


class Goaly:
    """Main interface for goal tracking.

    Construct, then call ``load()`` to read persisted state. Mutations go
    through the methods here so the active-goal limit from the settings is
    applied consistently.

    Examples:
        app = Goaly(LocalStore())
        app.load()
        app.create_goal({"title": "Ship it", "motivation": 4, "urgency": 5})

        # With remote sync
        app = Goaly(store, remote=DriveClient(StaticTokenProvider(token), store))
        app.load()
        await app.sync()

    Args:
        store: key/value store, defaults to a ``LocalStore`` in the Goaly home
        remote: remote document client; None disables sync
        now_fn: clock, injectable for tests
        debounce_seconds: quiet period before a background sync
        status_reporter: ``(message, is_error)`` sink for sync progress
        auto_sync: subscribe background sync to local saves
    """

    def __init__(
        self,
        store: Optional[LocalStore] = None,
        remote=None,
        now_fn: Callable[[], datetime] = utc_now,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        status_reporter: Optional[Callable[[str, bool], None]] = None,
        auto_sync: bool = True,
    ):
        self.store = store if store is not None else LocalStore()
        self.remote = remote
        self.settings_service = SettingsService(self.store)
        self.goal_service = GoalService(self.store, now_fn=now_fn)
        self.review_service = ReviewService(self.goal_service, self.settings_service)
        self.migration_manager = MigrationManager(self.apply_imported_payload)
        self.sync_manager = SyncManager(
            self.goal_service,
            self.settings_service,
            self.store,
            remote,
            apply_payload=self.apply_imported_payload,
            import_payload=self.import_payload,
            debounce_seconds=debounce_seconds,
            status_reporter=status_reporter,
        )
        if auto_sync and remote is not None:
            self.sync_manager.hook_background_sync()

    @property
    def current_data_version(self) -> str:
        return GOAL_FILE_VERSION

    @property
    def goals(self) -> List[Goal]:
        return self.goal_service.goals

    @property
    def max_active_goals(self) -> int:
        return self.settings_service.max_active_goals

    def load(self) -> None:
        """Read settings and goals, then bring statuses and schedules up to date."""
        self.settings_service.load_settings()
        self.goal_service.load_goals()
        self.goal_service.migrate_goals_to_auto_activation(self.max_active_goals)
        self.review_service.refresh_schedules()
        logger.debug(f"Loaded {len(self.goals)} goals")

    # === Goals ===

    def create_goal(self, goal_data: Dict[str, Any]) -> Goal:
        return self.goal_service.create_goal(
            goal_data, self.max_active_goals, prepare=self.review_service.ensure_goal_schedule
        )

    def update_goal(self, goal_id: str, goal_data: Dict[str, Any]) -> Optional[Goal]:
        return self.goal_service.update_goal(goal_id, goal_data, self.max_active_goals)

    def delete_goal(self, goal_id: str) -> bool:
        return self.goal_service.delete_goal(goal_id, self.max_active_goals)

    def set_goal_status(self, goal_id: str, status: str) -> Optional[Goal]:
        return self.goal_service.set_goal_status(goal_id, status, self.max_active_goals)

    def pause_goal(self, goal_id: str, pause_data: Dict[str, Any]) -> Optional[Goal]:
        return self.goal_service.pause_goal(goal_id, pause_data, self.max_active_goals)

    def unpause_goal(self, goal_id: str) -> Optional[Goal]:
        return self.goal_service.unpause_goal(goal_id, self.max_active_goals)

    def get_active_goals(self) -> List[Goal]:
        return self.goal_service.get_active_goals()

    # === Reviews ===

    def get_reviews(self) -> List[ReviewItem]:
        return self.review_service.get_reviews()

    def record_review(
        self, goal_id: str, ratings: Optional[Dict[str, Any]] = None
    ) -> Optional[ReviewOutcome]:
        return self.review_service.record_review(goal_id, ratings)

    # === Settings ===

    def get_settings(self) -> Dict[str, Any]:
        return self.settings_service.get_settings()

    def update_settings(self, new_settings: Dict[str, Any]) -> Dict[str, Any]:
        """Update settings; a changed active-goal limit re-ranks the goals."""
        previous_max = self.max_active_goals
        settings = self.settings_service.update_settings(new_settings)
        self.review_service.refresh_schedules()
        if self.max_active_goals != previous_max:
            self.goal_service.auto_activate_goals_by_priority(self.max_active_goals)
        elif "reviewIntervals" in new_settings:
            self.goal_service.save_goals()
        return settings

    # === Import / export ===

    def export_payload(self) -> Dict[str, Any]:
        return prepare_export_payload(self.goals, self.get_settings())

    def export_json(self, indent: int = 2) -> str:
        return json.dumps(self.export_payload(), indent=indent)

    def apply_imported_payload(self, payload: Dict[str, Any]) -> None:
        """Replace live goals and settings with a current-version payload.

        Raises:
            ImportValidationError: payload is not an object
        """
        if not isinstance(payload, dict):
            raise ImportValidationError("Imported data must be an object with goals")

        self.goal_service.replace_goals(payload.get("goals"))
        settings = payload.get("settings")
        if isinstance(settings, dict):
            self.settings_service.update_settings(settings)
        self.review_service.refresh_schedules()

        if self.goals:
            self.goal_service.migrate_goals_to_auto_activation(self.max_active_goals)
        else:
            self.goal_service.save_goals()
        logger.info(f"Applied imported payload with {len(self.goals)} goals")

    def import_payload(self, data: Any, source: Optional[str] = None) -> str:
        """Route parsed import data by its schema version.

        Returns:
            ``"applied"`` when the data was current and is now live, or
            ``"migration_pending"`` when it waits for ``complete_migration``

        Raises:
            ImportValidationError: malformed data, invalid or newer version
        """
        if not isinstance(data, (dict, list)):
            raise ImportValidationError("Imported data has an invalid structure")

        file_version = None if isinstance(data, list) else data.get("version")
        if file_version and not is_valid_version(file_version):
            raise ImportValidationError(f"Invalid version format: {file_version!r}")

        if is_same_version(file_version, self.current_data_version):
            self.apply_imported_payload(data)
            return "applied"

        if is_older_version(file_version, self.current_data_version):
            self.begin_migration(data, file_version, source)
            return "migration_pending"

        if is_newer_version(file_version, self.current_data_version):
            raise ImportValidationError(
                f"Data version {file_version} is newer than supported "
                f"version {self.current_data_version}"
            )

        raise ImportValidationError("Imported data is incompatible with this version")

    def import_json(self, raw: str, source: Optional[str] = None) -> str:
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise ImportValidationError(f"Invalid JSON: {e}") from e
        return self.import_payload(data, source=source)

    # === Migration ===

    @property
    def pending_migration(self) -> Optional[PendingMigration]:
        return self.migration_manager.pending_migration

    def begin_migration(
        self, original_payload: Any, source_version: Optional[str] = None, file_name=None
    ) -> PendingMigration:
        return self.migration_manager.begin_migration(original_payload, source_version, file_name)

    def complete_migration(self) -> Dict[str, Any]:
        return self.migration_manager.complete_migration()

    def cancel_migration(self) -> bool:
        return self.migration_manager.cancel_migration()

    # === Sync ===

    async def sync(self, background: bool = False):
        return await self.sync_manager.sync(background=background)

    async def close(self) -> None:
        """Cancel a pending background sync and release the remote client."""
        self.sync_manager.debounce.cancel()
        await self.sync_manager.debounce.drain()
        self.sync_manager.unhook_background_sync()
        if self.remote is not None and hasattr(self.remote, "aclose"):
            await self.remote.aclose()
