"""CLI command handlers."""

from goaly.cli.commands.goals import (
    cmd_add,
    cmd_delete,
    cmd_export,
    cmd_import,
    cmd_list,
    cmd_pause,
    cmd_review,
    cmd_reviews,
    cmd_settings,
    cmd_status,
    cmd_unpause,
    cmd_update,
)
from goaly.cli.commands.sync import cmd_sync, cmd_sync_status

__all__ = [
    "cmd_add",
    "cmd_delete",
    "cmd_export",
    "cmd_import",
    "cmd_list",
    "cmd_pause",
    "cmd_review",
    "cmd_reviews",
    "cmd_settings",
    "cmd_status",
    "cmd_sync",
    "cmd_sync_status",
    "cmd_unpause",
    "cmd_update",
]
