"""
Goaly CLI - command-line interface for goal tracking and sync.

Usage:
    goaly list [--active] [--json]
    goaly add "Title" --motivation 4 --urgency 3 [--deadline 2026-12-01]
    goaly update ID [--title ...] [--motivation N] [--urgency N] [--deadline DATE]
    goaly status ID completed|notCompleted|active
    goaly pause ID [--until DATE] [--until-goal ID]
    goaly reviews
    goaly review ID [--motivation N] [--urgency N]
    goaly settings [--max-active N] [--intervals "7,14,30"]
    goaly sync
"""

import argparse
import logging
import sys

from goaly import Goaly
from goaly.cli.commands import (
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
    cmd_sync,
    cmd_sync_status,
    cmd_unpause,
    cmd_update,
)
from goaly.cli.commands.helpers import rating
from goaly.config import GoalyConfig, load_config
from goaly.errors import GoalyError
from goaly.storage import LocalStore
from goaly.sync.remote import DriveClient, StaticTokenProvider
from goaly.types import VALID_STATUS_VALUES

# Set up logging
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)

COMMANDS = {
    "list": cmd_list,
    "add": cmd_add,
    "update": cmd_update,
    "delete": cmd_delete,
    "status": cmd_status,
    "pause": cmd_pause,
    "unpause": cmd_unpause,
    "reviews": cmd_reviews,
    "review": cmd_review,
    "settings": cmd_settings,
    "export": cmd_export,
    "import": cmd_import,
    "sync": cmd_sync,
    "sync-status": cmd_sync_status,
}


def _report_status(message: str, is_error: bool = False) -> None:
    if is_error:
        print(f"✗ {message}", file=sys.stderr)
    else:
        print(message)


def build_app(config: GoalyConfig, quiet: bool = False) -> Goaly:
    store = LocalStore(config.db_path)
    remote = None
    if config.sync_enabled:
        remote = DriveClient(
            StaticTokenProvider(config.access_token),
            store,
            folder_name=config.drive_folder_name,
            file_name=config.drive_file_name,
        )
    app = Goaly(
        store,
        remote=remote,
        debounce_seconds=config.sync_debounce_seconds,
        status_reporter=None if quiet else _report_status,
        # one-shot process, nothing would be left running to flush a debounce
        auto_sync=False,
    )
    app.load()
    return app


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="goaly",
        description="Goal tracking with priority-based activation and sync",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # list
    p_list = subparsers.add_parser("list", help="List goals")
    p_list.add_argument("--active", action="store_true", help="Only active goals")
    p_list.add_argument("--status", choices=sorted(VALID_STATUS_VALUES))
    p_list.add_argument("--json", "-j", action="store_true")

    # add
    p_add = subparsers.add_parser("add", help="Create a goal")
    p_add.add_argument("title")
    p_add.add_argument("--motivation", "-m", type=rating, required=True)
    p_add.add_argument("--urgency", "-u", type=rating, required=True)
    p_add.add_argument("--deadline", "-d", help="YYYY-MM-DD")
    p_add.add_argument("--step", action="append", help="Add a step (repeatable)")
    p_add.add_argument("--json", "-j", action="store_true")

    # update
    p_update = subparsers.add_parser("update", help="Change a goal")
    p_update.add_argument("goal_id")
    p_update.add_argument("--title")
    p_update.add_argument("--motivation", "-m", type=rating)
    p_update.add_argument("--urgency", "-u", type=rating)
    p_update.add_argument("--deadline", "-d", help="YYYY-MM-DD")
    p_update.add_argument("--clear-deadline", action="store_true")
    p_update.add_argument("--json", "-j", action="store_true")

    # delete
    p_delete = subparsers.add_parser("delete", help="Delete a goal")
    p_delete.add_argument("goal_id")

    # status
    p_status = subparsers.add_parser("status", help="Set a goal's status")
    p_status.add_argument("goal_id")
    p_status.add_argument("status", choices=sorted(VALID_STATUS_VALUES))
    p_status.add_argument("--json", "-j", action="store_true")

    # pause / unpause
    p_pause = subparsers.add_parser("pause", help="Pause a goal")
    p_pause.add_argument("goal_id")
    p_pause.add_argument("--until", help="Resume on this date (YYYY-MM-DD)")
    p_pause.add_argument("--until-goal", help="Resume once this goal is completed")

    p_unpause = subparsers.add_parser("unpause", help="Resume a paused goal")
    p_unpause.add_argument("goal_id")

    # reviews
    p_reviews = subparsers.add_parser("reviews", help="Show goals due for review")
    p_reviews.add_argument("--json", "-j", action="store_true")

    p_review = subparsers.add_parser("review", help="Record a review")
    p_review.add_argument("goal_id")
    p_review.add_argument("--motivation", "-m", type=rating)
    p_review.add_argument("--urgency", "-u", type=rating)
    p_review.add_argument("--json", "-j", action="store_true")

    # settings
    p_settings = subparsers.add_parser("settings", help="Show or change settings")
    p_settings.add_argument("--max-active", type=int, help="Number of goals kept active")
    p_settings.add_argument("--intervals", help='Review intervals, e.g. "7,14,30" or "12h 3d"')
    p_settings.add_argument("--language")
    p_settings.add_argument("--json", "-j", action="store_true")

    # export / import
    p_export = subparsers.add_parser("export", help="Export goals and settings as JSON")
    p_export.add_argument("--file", "-f", help="Write to this file instead of stdout")

    p_import = subparsers.add_parser("import", help="Import a JSON export")
    p_import.add_argument("file")
    p_import.add_argument("--yes", "-y", action="store_true", help="Apply migrations")
    p_import.add_argument("--show-diff", action="store_true", help="Print migrated data")

    # sync
    p_sync = subparsers.add_parser("sync", help="Sync with the remote document")
    p_sync.add_argument("--json", "-j", action="store_true")

    p_sync_status = subparsers.add_parser("sync-status", help="Show remote sync status")
    p_sync_status.add_argument("--json", "-j", action="store_true")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        app = build_app(load_config(), quiet=getattr(args, "json", False))
    except (OSError, GoalyError) as e:
        logger.error(f"Failed to initialize Goaly: {e}")
        sys.exit(1)

    try:
        COMMANDS[args.command](args, app)
    except KeyboardInterrupt:
        print("\nAborted.")
        sys.exit(130)
    except GoalyError as e:
        logger.error(f"{args.command} failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
