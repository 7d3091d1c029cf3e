"""Shared helper functions for CLI commands."""

import argparse
import json
import re
from typing import TYPE_CHECKING, Any, Optional

from goaly.core.dates import to_iso

if TYPE_CHECKING:
    from goaly import Goaly
    from goaly.types import Goal


def validate_input(value: str, field_name: str, max_length: int = 1000) -> str:
    """Validate and sanitize CLI inputs."""
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string")

    if len(value) > max_length:
        raise ValueError(f"{field_name} too long (max {max_length} characters)")

    # Remove null bytes and control characters except newlines
    return re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", value)


def print_json(data: Any) -> None:
    """Print data as formatted JSON."""
    print(json.dumps(data, indent=2, default=str))


def rating(value: str) -> int:
    """argparse type for motivation/urgency ratings (1-5)."""
    try:
        ivalue = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Rating must be an integer, got '{value}'")
    if not 1 <= ivalue <= 5:
        raise argparse.ArgumentTypeError(f"Rating must be between 1 and 5, got {ivalue}")
    return ivalue


def resolve_goal(app: "Goaly", goal_ref: str) -> Optional["Goal"]:
    """Find a goal by full id or unique id prefix. Prints why when none matches."""
    goal = app.goal_service.get_goal(goal_ref)
    if goal is not None:
        return goal

    matches = [g for g in app.goals if g.id.startswith(goal_ref)]
    if len(matches) == 1:
        return matches[0]
    if not matches:
        print(f"Goal not found: {goal_ref}")
    else:
        print(f"Ambiguous goal id '{goal_ref}' matches {len(matches)} goals")
    return None


def format_goal_line(app: "Goaly", goal: "Goal") -> str:
    priority = app.goal_service.priority_cache.get_priority(goal.id)
    deadline = f"  due {to_iso(goal.deadline)[:10]}" if goal.deadline else ""
    return (
        f"  [{goal.status.value:<12}] {goal.id[:8]}  {goal.title}"
        f"  (m={goal.motivation}, u={goal.urgency}, p={priority:g}){deadline}"
    )
