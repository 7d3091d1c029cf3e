"""Two-step import of data written by an older schema version.

``begin_migration`` migrates the payload and keeps both renderings so the
user can inspect the difference; nothing is applied until
``complete_migration`` is called.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from goaly.core.migration import migrate_payload_to_current, serialize_value
from goaly.core.versioning import GOAL_FILE_VERSION, is_same_version
from goaly.errors import ImportValidationError

logger = logging.getLogger(__name__)


@dataclass
class PendingMigration:
    """A migrated payload waiting for confirmation."""

    original_payload: Any
    migrated_payload: Dict[str, Any]
    source_version: Optional[str] = None
    file_name: Optional[str] = None
    original_json: str = ""
    migrated_json: str = ""


class MigrationManager:
    def __init__(
        self,
        apply_payload: Callable[[Dict[str, Any]], None],
        current_version: str = GOAL_FILE_VERSION,
    ):
        self._apply_payload = apply_payload
        self.current_version = current_version
        self._pending: Optional[PendingMigration] = None

    @property
    def pending_migration(self) -> Optional[PendingMigration]:
        return self._pending

    def begin_migration(
        self,
        original_payload: Any,
        source_version: Optional[str] = None,
        file_name: Optional[str] = None,
    ) -> PendingMigration:
        migrated = migrate_payload_to_current(original_payload)
        self._pending = PendingMigration(
            original_payload=original_payload,
            migrated_payload=migrated,
            source_version=source_version,
            file_name=file_name,
            original_json=json.dumps(serialize_value(original_payload), indent=2),
            migrated_json=json.dumps(migrated, indent=2),
        )
        logger.info(
            f"Migration pending: {source_version or 'unversioned'} -> {self.current_version}"
            + (f" ({file_name})" if file_name else "")
        )
        return self._pending

    def complete_migration(self) -> Dict[str, Any]:
        """Apply the pending migrated payload and clear it.

        Raises:
            ImportValidationError: nothing is pending, or the migration did
                not reach the current version
        """
        if self._pending is None:
            raise ImportValidationError("No migration is pending")

        payload = self._pending.migrated_payload
        if not payload or not is_same_version(payload.get("version"), self.current_version):
            raise ImportValidationError("Migrated payload is incompatible with this version")

        self._apply_payload(payload)
        self._pending = None
        logger.info("Migration applied")
        return payload

    def cancel_migration(self) -> bool:
        """Drop the pending migration. Returns False if none was pending."""
        if self._pending is None:
            return False
        self._pending = None
        logger.info("Migration cancelled")
        return True
