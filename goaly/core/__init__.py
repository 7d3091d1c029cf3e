"""Goaly core - the application root and the pure data engines.

Public names are re-exported here:
    from goaly.core import Goaly
    from goaly.core import GOAL_FILE_VERSION, migrate_payload_to_current
"""

from goaly.core.app import Goaly
from goaly.core.migration import (
    migrate_payload_to_current,
    prepare_export_payload,
    prepare_goals_storage_payload,
)
from goaly.core.versioning import (
    GOAL_FILE_VERSION,
    compare_versions,
    is_newer_version,
    is_older_version,
    is_same_version,
    is_valid_version,
)

__all__ = [
    "Goaly",
    "GOAL_FILE_VERSION",
    "compare_versions",
    "is_newer_version",
    "is_older_version",
    "is_same_version",
    "is_valid_version",
    "migrate_payload_to_current",
    "prepare_export_payload",
    "prepare_goals_storage_payload",
]
