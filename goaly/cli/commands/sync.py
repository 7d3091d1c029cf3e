"""Sync commands for Goaly CLI - reconcile local data with the remote document."""

import asyncio
import logging
import sys
from typing import TYPE_CHECKING

from goaly.cli.commands.helpers import print_json

if TYPE_CHECKING:
    from goaly import Goaly

logger = logging.getLogger(__name__)


def _require_remote(app: "Goaly") -> None:
    if not app.sync_manager.is_available():
        print("Sync is not configured.")
        print("Set GOALY_ACCESS_TOKEN or add access_token to ~/.goaly/credentials.json")
        sys.exit(1)


def cmd_sync(args, app: "Goaly"):
    """Run one three-way sync cycle."""
    _require_remote(app)

    async def run():
        try:
            return await app.sync()
        finally:
            await app.close()

    result = asyncio.run(run())

    if args.json:
        print_json(
            {
                "success": result.success,
                "uploaded": result.uploaded,
                "skipped": result.skipped,
                "reason": result.reason,
                "mergedGoals": result.merged_goals,
                "errors": result.errors,
            }
        )
    elif result.success:
        action = "uploaded" if result.uploaded else "already up to date"
        print(f"✓ Synced {result.merged_goals} goals ({action})")

    if not result.success:
        sys.exit(1)


def cmd_sync_status(args, app: "Goaly"):
    """Show remote sync status."""
    _require_remote(app)

    async def run():
        try:
            return await app.sync_manager.get_sync_status()
        finally:
            await app.close()

    status = asyncio.run(run())
    modified = status.document.modified_time if status.document else None

    if args.json:
        print_json(
            {
                "authenticated": status.authenticated,
                "containerId": status.container_id,
                "documentId": status.document.id if status.document else None,
                "modifiedTime": modified,
                "error": status.error,
            }
        )
        return

    print("Sync Status")
    print("=" * 40)
    print(f"Authenticated: {'Yes' if status.authenticated else 'No'}")
    print(f"Folder:        {status.container_id or '-'}")
    print(f"Document:      {status.document.id if status.document else '-'}")
    if modified:
        print(f"Modified:      {modified}")
    if status.error:
        print(f"Error:         {status.error}")
