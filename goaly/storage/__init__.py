"""Local persistence for Goaly.

Key layout in the store:
    goaly_goals                          {version, goals[]}
    goaly_settings                       flat settings object
    goaly_gdrive_file_id                 remote document id
    goaly_gdrive_folder_id               remote container id
    goaly_gdrive_last_sync_<documentId>  base snapshot for three-way merge
"""

from goaly.storage.local import LocalStore

STORAGE_KEY_GOALS = "goaly_goals"
STORAGE_KEY_SETTINGS = "goaly_settings"
STORAGE_KEY_GDRIVE_FILE_ID = "goaly_gdrive_file_id"
STORAGE_KEY_GDRIVE_FOLDER_ID = "goaly_gdrive_folder_id"
LAST_SYNC_KEY_PREFIX = "goaly_gdrive_last_sync_"


def last_sync_key(document_id: str) -> str:
    """Storage key of the base snapshot for a remote document."""
    return f"{LAST_SYNC_KEY_PREFIX}{document_id}"


__all__ = [
    "LocalStore",
    "STORAGE_KEY_GOALS",
    "STORAGE_KEY_SETTINGS",
    "STORAGE_KEY_GDRIVE_FILE_ID",
    "STORAGE_KEY_GDRIVE_FOLDER_ID",
    "LAST_SYNC_KEY_PREFIX",
    "last_sync_key",
]
