"""Semantic version helpers for the goal data schema.

Only plain ``MAJOR.MINOR.PATCH`` strings are understood. Surrounding
whitespace is tolerated. The ``is_*`` predicates never raise: an invalid
candidate counts as older than anything and as neither equal to nor newer
than anything, so legacy files without a usable version go through the
migration path.
"""

import re
from typing import Any, Optional, Tuple

from goaly.errors import InvalidVersionError

# Current schema version of goal data (files, local storage, sync documents)
GOAL_FILE_VERSION = "1.2.0"

SEMVER_PATTERN = re.compile(r"^(\d+)\.(\d+)\.(\d+)$")


def is_valid_version(version: Any) -> bool:
    """True for strings of the form ``MAJOR.MINOR.PATCH``."""
    if not isinstance(version, str):
        return False
    return SEMVER_PATTERN.match(version.strip()) is not None


def _parse_version(version: Any) -> Optional[Tuple[int, int, int]]:
    if not is_valid_version(version):
        return None
    major, minor, patch = SEMVER_PATTERN.match(version.strip()).groups()
    return int(major), int(minor), int(patch)


def compare_versions(a: str, b: str) -> int:
    """Compare two versions: 1 if ``a > b``, -1 if ``a < b``, 0 if equal.

    Raises:
        InvalidVersionError: if either argument is not a valid version
    """
    parsed_a = _parse_version(a)
    if parsed_a is None:
        raise InvalidVersionError(a)
    parsed_b = _parse_version(b)
    if parsed_b is None:
        raise InvalidVersionError(b)

    if parsed_a == parsed_b:
        return 0
    return 1 if parsed_a > parsed_b else -1


def is_older_version(candidate: Any, reference: str = GOAL_FILE_VERSION) -> bool:
    if not is_valid_version(candidate):
        return True
    return compare_versions(candidate, reference) < 0


def is_same_version(candidate: Any, reference: str = GOAL_FILE_VERSION) -> bool:
    if not is_valid_version(candidate):
        return False
    return compare_versions(candidate, reference) == 0


def is_newer_version(candidate: Any, reference: str = GOAL_FILE_VERSION) -> bool:
    if not is_valid_version(candidate):
        return False
    return compare_versions(candidate, reference) > 0
