"""Sync orchestration between local state and the remote document.

One ``sync()`` cycle:

    guard (configured, authenticated, not already syncing)
    -> download remote (absent document means remote=None)
    -> snapshot local payload
    -> load base snapshot for this document (corrupt -> purged, ignored)
    -> three-way merge
    -> apply merged payload to live state (re-runs activation)
    -> upload only if the canonical merged payload differs from remote
    -> store the post-merge payload as the next base

Local saves schedule a trailing-debounced background sync. While a cycle
runs, saves caused by applying the merge do not schedule another one;
other saves made during the upload schedule a follow-up sync when it ends.
Every I/O failure is caught here, logged, reported and recorded on the
returned ``SyncResult``; it never escapes ``sync()``.
"""

import json
import logging
from typing import Any, Callable, Dict, List, Optional

from goaly.core.dates import normalize_date
from goaly.core.events import DebouncedTask, Subscription
from goaly.core.migration import migrate_payload_to_current, prepare_export_payload
from goaly.core.versioning import GOAL_FILE_VERSION, is_older_version, is_valid_version
from goaly.errors import DocumentNotFoundError, ImportValidationError, SyncNotConfiguredError
from goaly.storage import STORAGE_KEY_GDRIVE_FILE_ID, last_sync_key
from goaly.sync.merge import canonical_json, merge_payloads
from goaly.types import SyncDirection, SyncResult, SyncStatus

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 5.0

StatusReporter = Callable[[str, bool], None]


def _log_status(message: str, is_error: bool = False) -> None:
    if is_error:
        logger.error(message)
    else:
        logger.info(message)


def canonicalize_payload(payload: Any) -> Optional[Dict[str, Any]]:
    """Comparable form of a payload: migrated, dates as ISO, goals sorted by id,
    export date blanked."""
    if payload is None:
        return None
    migrated = migrate_payload_to_current(payload)
    goals = [g for g in migrated["goals"]]
    goals.sort(key=lambda g: str(g.get("id") or "") if isinstance(g, dict) else "")
    settings = migrated.get("settings")
    return {
        "version": migrated["version"],
        "exportDate": None,
        "goals": goals,
        "settings": settings if settings is not None else {},
    }


def determine_sync_action(
    local_version: Optional[str],
    local_export_date: Optional[str],
    local_has_data: bool,
    remote_data: Any,
) -> SyncDirection:
    """Decide whether local should overwrite remote, without merging.

    Checked in order: empty vs non-empty data, missing export dates, export
    date comparison, schema version comparison. Equivalent states default
    to uploading.
    """
    remote_data = remote_data if isinstance(remote_data, dict) else {}
    remote_version = remote_data.get("version")
    remote_export_date = remote_data.get("exportDate")
    remote_goals = remote_data.get("goals")
    remote_has_data = isinstance(remote_goals, list) and len(remote_goals) > 0

    def direction(should_upload: bool, reason: str) -> SyncDirection:
        return SyncDirection(
            should_upload=should_upload,
            reason=reason,
            local_version=local_version,
            remote_version=remote_version,
            local_export_date=local_export_date,
            remote_export_date=remote_export_date,
        )

    if not local_has_data and remote_has_data:
        return direction(False, "local_empty_remote_has_data")
    if local_has_data and not remote_has_data:
        return direction(True, "local_has_data_remote_empty")
    if not remote_export_date:
        return direction(True, "remote_no_date")
    if not local_export_date:
        return direction(False, "local_no_date")

    local_date = normalize_date(local_export_date)
    remote_date = normalize_date(remote_export_date)
    if local_date is not None and remote_date is not None:
        if remote_date < local_date:
            return direction(True, "remote_older")
        if local_date < remote_date:
            return direction(False, "local_older")

    if not is_valid_version(local_version):
        return direction(False, "local_version_older")
    if is_older_version(remote_version, local_version):
        return direction(True, "remote_version_older")
    if is_older_version(local_version, remote_version):
        return direction(False, "local_version_older")
    return direction(True, "same_state")


class SyncManager:
    """Coordinates the goal and settings services with a remote client.

    Args:
        goal_service: ``GoalService`` owning the goal list
        settings_service: ``SettingsService``
        store: local key/value store holding base snapshots
        remote: ``DriveClient`` (or compatible); None disables sync
        apply_payload: applies a current-version payload to live state
        import_payload: routes downloaded data by schema version
        debounce_seconds: quiet period before a background sync
        status_reporter: ``(message, is_error)`` sink for user-visible status
    """

    def __init__(
        self,
        goal_service,
        settings_service,
        store,
        remote=None,
        *,
        apply_payload: Callable[[Dict[str, Any]], None],
        import_payload: Optional[Callable[..., str]] = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        status_reporter: Optional[StatusReporter] = None,
    ):
        self.goal_service = goal_service
        self.settings_service = settings_service
        self.store = store
        self.remote = remote
        self._apply_payload = apply_payload
        self._import_payload = import_payload
        self._report = status_reporter or _log_status
        self._is_syncing = False
        self._suppress_auto_sync = False
        self._local_dirty_during_sync = False
        self._debounce = DebouncedTask(
            lambda: self.sync(background=True), debounce_seconds, name="background sync"
        )
        self._subscriptions: List[Subscription] = []

    # === State ===

    @property
    def is_syncing(self) -> bool:
        return self._is_syncing

    @property
    def debounce(self) -> DebouncedTask:
        return self._debounce

    def is_available(self) -> bool:
        return self.remote is not None

    def is_authenticated(self) -> bool:
        return self.remote is not None and self.remote.is_authenticated()

    def report(self, message: str, is_error: bool = False) -> None:
        try:
            self._report(message, is_error)
        except Exception as e:
            logger.error(f"Status reporter failed: {e}", exc_info=True)

    # === Background scheduling ===

    def hook_background_sync(self) -> None:
        """Schedule a background sync whenever goals or settings are saved."""
        if self._subscriptions:
            return
        self._subscriptions = [
            self.goal_service.after_save.connect(self._on_local_save),
            self.settings_service.after_save.connect(self._on_local_save),
        ]

    def unhook_background_sync(self) -> None:
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions = []

    def _on_local_save(self) -> None:
        if self._suppress_auto_sync:
            return
        if self._is_syncing:
            # Picked up by the follow-up sync scheduled when this one ends
            self._local_dirty_during_sync = True
            return
        self.schedule_background_sync_soon()

    def schedule_background_sync_soon(self) -> bool:
        """(Re)start the debounce timer. Returns True if a sync was scheduled."""
        if not self.is_authenticated():
            return False
        if self._is_syncing or self._suppress_auto_sync:
            return False
        return self._debounce.schedule()

    # === Sync cycle ===

    def get_last_sync_storage_key(self) -> str:
        document_id = (
            getattr(self.remote, "file_id", None)
            or self.store.get_item(STORAGE_KEY_GDRIVE_FILE_ID)
            or "unknown"
        )
        return last_sync_key(document_id)

    def _load_base_payload(self) -> Optional[Dict[str, Any]]:
        key = self.get_last_sync_storage_key()
        raw = self.store.get_item(key)
        if not raw:
            return None
        try:
            base = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"Discarding corrupt sync base {key}: {e}")
            self.store.remove_item(key)
            return None
        if not isinstance(base, (dict, list)):
            logger.warning(f"Discarding sync base {key} of unexpected type")
            self.store.remove_item(key)
            return None
        return base

    def _build_local_payload(self) -> Dict[str, Any]:
        return prepare_export_payload(self.goal_service.goals, self.settings_service.get_settings())

    async def sync(self, background: bool = False) -> SyncResult:
        """Run one download-merge-apply-upload cycle.

        ``background`` only silences progress messages; errors are always
        reported.
        """
        result = SyncResult()

        if self.remote is None:
            message = "Google Drive sync is not configured"
            self.report(message, True)
            result.errors.append(message)
            return result
        if not self.remote.is_authenticated():
            message = "Google Drive authentication error: not authenticated"
            self.report(message, True)
            result.errors.append(message)
            return result
        if self._is_syncing:
            logger.debug("Sync already in progress, dropping this request")
            result.skipped = True
            result.reason = "already_syncing"
            return result

        self._is_syncing = True
        self._local_dirty_during_sync = False

        def progress(message: str) -> None:
            if not background:
                self.report(message, False)

        try:
            progress("Syncing with Google Drive...")
            remote_payload = None
            progress("Checking remote data...")
            try:
                downloaded = await self.remote.download()
                remote_payload = downloaded.data
                progress("Remote data found.")
            except DocumentNotFoundError:
                progress("No remote data found. It will be created on upload.")

            # No await from here to the apply, so edits made while the
            # download was in flight are part of this snapshot
            local_payload = self._build_local_payload()
            self._local_dirty_during_sync = False
            base_payload = self._load_base_payload()

            progress("Merging data...")
            merged = merge_payloads(base=base_payload, local=local_payload, remote=remote_payload)

            progress("Applying merged data...")
            self._suppress_auto_sync = True
            try:
                self._apply_payload(merged)
            finally:
                self._suppress_auto_sync = False
            result.merged_goals = len(merged["goals"])

            # Uploaded and kept as the next base; edits made during the
            # upload are left for the follow-up sync
            synced_payload = self._build_local_payload()

            merged_canonical = canonical_json(canonicalize_payload(merged))
            remote_canonical = canonicalize_payload(remote_payload)
            should_upload = remote_canonical is None or merged_canonical != canonical_json(
                remote_canonical
            )

            if should_upload:
                progress("Uploading merged data to Google Drive...")
                await self.remote.upload(synced_payload["goals"], synced_payload["settings"])
                result.uploaded = True
                result.reason = (
                    "changes_uploaded" if remote_payload is not None else "remote_created"
                )
            else:
                result.reason = "no_changes"

            self.store.set_item(self.get_last_sync_storage_key(), json.dumps(synced_payload))
            logger.info(
                f"Sync complete: {result.merged_goals} goals, "
                f"{'uploaded' if result.uploaded else 'no upload needed'}"
            )
            progress("Upload successful." if result.uploaded else "Already up to date.")
        except Exception as e:
            message = f"Google Drive sync error: {e or type(e).__name__}"
            logger.error(message, exc_info=True)
            self.report(message, True)
            result.errors.append(str(e) or type(e).__name__)
        finally:
            self._is_syncing = False
            self._suppress_auto_sync = False
            if self._local_dirty_during_sync:
                self._local_dirty_during_sync = False
                logger.debug("Local changes during sync, scheduling another one")
                self.schedule_background_sync_soon()

        return result

    async def download(self) -> Optional[str]:
        """Replace local data with the remote document, routed by schema version.

        Returns ``"applied"``, ``"migration_pending"`` or None when nothing
        was imported (errors are reported, not raised).
        """
        if not self.is_authenticated():
            return None
        if self._import_payload is None:
            raise SyncNotConfiguredError("No import handler configured for downloads")

        try:
            downloaded = await self.remote.download()
            outcome = self._import_payload(downloaded.data, source="Google Drive")
        except ImportValidationError as e:
            self.report(str(e), True)
            return None
        except Exception as e:
            message = f"Google Drive download error: {e or type(e).__name__}"
            logger.error(message, exc_info=True)
            self.report(message, True)
            return None

        if outcome == "applied":
            self.report("Downloaded data from Google Drive.", False)
        return outcome

    async def check_sync_direction(
        self,
        local_version: Optional[str] = GOAL_FILE_VERSION,
        local_export_date: Optional[str] = None,
        local_has_data: bool = True,
    ) -> SyncDirection:
        """Lightweight direction check against the remote document.

        Raises:
            SyncNotConfiguredError: no remote client
            RemoteStoreError: download failed for a reason other than a
                missing document
        """
        if self.remote is None:
            raise SyncNotConfiguredError("Google Drive sync is not configured")
        try:
            downloaded = await self.remote.download()
        except DocumentNotFoundError:
            return SyncDirection(
                should_upload=local_has_data,
                reason="remote_not_found" if local_has_data else "remote_not_found_local_empty",
                local_version=local_version,
                local_export_date=local_export_date,
            )
        return determine_sync_action(
            local_version, local_export_date, local_has_data, downloaded.data
        )

    async def get_sync_status(self) -> SyncStatus:
        if self.remote is None:
            return SyncStatus(authenticated=False)
        return await self.remote.get_sync_status()

    def sign_out(self) -> None:
        self._debounce.cancel()
        if self.remote is not None:
            self.remote.sign_out()


__all__ = [
    "DEFAULT_DEBOUNCE_SECONDS",
    "SyncManager",
    "canonicalize_payload",
    "determine_sync_action",
]
