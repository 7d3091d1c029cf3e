"""Goal, review, settings and import/export commands."""

import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict

from goaly.cli.commands.helpers import format_goal_line, print_json, resolve_goal, validate_input
from goaly.errors import ImportValidationError
from goaly.types import GoalStatus

if TYPE_CHECKING:
    from goaly import Goaly

logger = logging.getLogger(__name__)


def cmd_list(args, app: "Goaly"):
    """List goals, active ones first."""
    if args.active:
        goals = app.get_active_goals()
    else:
        order = {GoalStatus.ACTIVE: 0, GoalStatus.PAUSED: 1, GoalStatus.INACTIVE: 2}
        goals = sorted(
            app.goals,
            key=lambda g: (
                order.get(g.status, 3),
                -app.goal_service.priority_cache.get_priority(g.id),
            ),
        )
        if args.status:
            goals = [g for g in goals if g.status.value == args.status]

    if args.json:
        print_json([g.to_dict() for g in goals])
        return

    if not goals:
        print("No goals yet.")
        print("\nAdd one with: goaly add 'Title' --motivation 4 --urgency 3")
        return

    print(f"Goals ({len(goals)}, max active {app.max_active_goals}):")
    print("-" * 50)
    for goal in goals:
        print(format_goal_line(app, goal))


def cmd_add(args, app: "Goaly"):
    """Create a goal."""
    data: Dict[str, Any] = {
        "title": validate_input(args.title, "title", 500),
        "motivation": args.motivation,
        "urgency": args.urgency,
    }
    if args.deadline:
        data["deadline"] = args.deadline
    if args.step:
        data["steps"] = [
            {"text": validate_input(text, "step", 500), "order": i}
            for i, text in enumerate(args.step)
        ]

    goal = app.create_goal(data)
    if args.json:
        print_json(goal.to_dict())
    else:
        print(f"✓ Goal created: {goal.id[:8]} ({goal.status.value})")


def cmd_update(args, app: "Goaly"):
    """Change fields of a goal."""
    goal = resolve_goal(app, args.goal_id)
    if goal is None:
        sys.exit(1)

    data: Dict[str, Any] = {}
    if args.title is not None:
        data["title"] = validate_input(args.title, "title", 500)
    if args.motivation is not None:
        data["motivation"] = args.motivation
    if args.urgency is not None:
        data["urgency"] = args.urgency
    if args.clear_deadline:
        data["deadline"] = None
    elif args.deadline:
        data["deadline"] = args.deadline

    if not data:
        print("Nothing to update.")
        return

    goal = app.update_goal(goal.id, data)
    if args.json:
        print_json(goal.to_dict())
    else:
        print(f"✓ Goal updated: {goal.id[:8]} ({goal.status.value})")


def cmd_delete(args, app: "Goaly"):
    goal = resolve_goal(app, args.goal_id)
    if goal is None:
        sys.exit(1)
    app.delete_goal(goal.id)
    print(f"✓ Goal deleted: {goal.title}")


def cmd_status(args, app: "Goaly"):
    """Complete or abandon a goal (or put it back)."""
    goal = resolve_goal(app, args.goal_id)
    if goal is None:
        sys.exit(1)
    try:
        goal = app.set_goal_status(goal.id, args.status)
    except ValueError as e:
        print(f"Invalid status: {e}")
        sys.exit(1)
    if args.json:
        print_json(goal.to_dict())
    else:
        print(f"✓ {goal.title}: {goal.status.value}")


def cmd_pause(args, app: "Goaly"):
    goal = resolve_goal(app, args.goal_id)
    if goal is None:
        sys.exit(1)

    pause_data: Dict[str, Any] = {}
    if args.until:
        pause_data["pauseUntil"] = args.until
    if args.until_goal:
        dependency = resolve_goal(app, args.until_goal)
        if dependency is None:
            sys.exit(1)
        if dependency.id == goal.id:
            print("A goal cannot wait for itself.")
            sys.exit(1)
        pause_data["pauseUntilGoalId"] = dependency.id
    if not pause_data:
        print("Pass --until DATE and/or --until-goal ID.")
        sys.exit(1)

    goal = app.pause_goal(goal.id, pause_data)
    print(f"✓ {goal.title}: {goal.status.value}")


def cmd_unpause(args, app: "Goaly"):
    goal = resolve_goal(app, args.goal_id)
    if goal is None:
        sys.exit(1)
    goal = app.unpause_goal(goal.id)
    print(f"✓ {goal.title}: {goal.status.value}")


def cmd_reviews(args, app: "Goaly"):
    """Show goals due for review."""
    reviews = app.get_reviews()
    if args.json:
        print_json(
            [
                {"goal": item.goal.to_dict(), "dueAt": item.due_at, "overdue": item.is_overdue}
                for item in reviews
            ]
        )
        return

    if not reviews:
        print("No reviews due.")
        return
    print(f"Reviews due ({len(reviews)}):")
    for item in reviews:
        marker = "!" if item.is_overdue else " "
        print(f" {marker}{format_goal_line(app, item.goal)}")


def cmd_review(args, app: "Goaly"):
    """Record a review with the current (or changed) ratings."""
    goal = resolve_goal(app, args.goal_id)
    if goal is None:
        sys.exit(1)

    ratings = {}
    if args.motivation is not None:
        ratings["motivation"] = args.motivation
    if args.urgency is not None:
        ratings["urgency"] = args.urgency

    outcome = app.record_review(goal.id, ratings)
    if args.json:
        print_json({"goal": outcome.goal.to_dict(), "ratingsMatch": outcome.ratings_match})
        return
    next_review = outcome.goal.next_review_at.date().isoformat()
    if outcome.ratings_match:
        print(f"✓ Reviewed, ratings unchanged. Next review {next_review}")
    else:
        print(f"✓ Reviewed, ratings updated. Next review {next_review}")


def cmd_settings(args, app: "Goaly"):
    """Show or change settings."""
    updates: Dict[str, Any] = {}
    if args.max_active is not None:
        updates["maxActiveGoals"] = args.max_active
    if args.intervals is not None:
        updates["reviewIntervals"] = args.intervals
    if args.language is not None:
        updates["language"] = args.language

    settings = app.update_settings(updates) if updates else app.get_settings()
    if args.json:
        print_json(settings)
        return
    print(f"Max active goals: {settings['maxActiveGoals']}")
    print(f"Review intervals: {', '.join(f'{d:g}d' for d in settings['reviewIntervals'])}")
    print(f"Language:         {settings['language']}")


def cmd_export(args, app: "Goaly"):
    content = app.export_json()
    if args.file:
        Path(args.file).write_text(content)
        print(f"✓ Exported {len(app.goals)} goals to {args.file}")
    else:
        print(content)


def cmd_import(args, app: "Goaly"):
    """Import a JSON export; older formats are migrated after confirmation."""
    try:
        raw = Path(args.file).read_text()
        outcome = app.import_json(raw, source=Path(args.file).name)
    except (OSError, ImportValidationError) as e:
        print(f"Import failed: {e}")
        sys.exit(1)

    if outcome == "applied":
        print(f"✓ Imported {len(app.goals)} goals")
        return

    pending = app.pending_migration
    print(
        f"Data version {pending.source_version or 'unversioned'} will be migrated "
        f"to {app.current_data_version}."
    )
    if args.show_diff:
        print(pending.migrated_json)
    if not args.yes:
        app.cancel_migration()
        print("Re-run with --yes to apply the migration.")
        return
    try:
        app.complete_migration()
    except ImportValidationError as e:
        print(f"Migration failed: {e}")
        sys.exit(1)
    print(f"✓ Migrated and imported {len(app.goals)} goals")
