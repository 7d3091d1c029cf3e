"""Application settings: active-goal limit, language, review intervals.

Review intervals are stored as day counts. Input may be numbers or tokens
such as ``"7"``, ``"7d"``, ``"24h"``, ``"30m"`` or ``"60s"``; a string may
hold several tokens separated by commas, semicolons or whitespace.
"""

import copy
import json
import logging
import math
import re
from typing import Any, Dict, List, Optional

from goaly.core.events import Signal
from goaly.storage import STORAGE_KEY_SETTINGS
from goaly.types import as_int, parse_int

logger = logging.getLogger(__name__)

DEFAULT_MAX_ACTIVE_GOALS = 3
DEFAULT_LANGUAGE = "en"
DEFAULT_REVIEW_INTERVALS = [7, 14, 30]

# Intervals closer than this are duplicates
INTERVAL_PRECISION = 6

DEPRECATED_SETTINGS = ("checkInInterval", "reviewsEnabled", "checkInsEnabled")

_INTERVAL_TOKEN = re.compile(r"^(\d+(?:\.\d+)?)([dhms]?)$", re.IGNORECASE)
_TOKEN_SEPARATORS = re.compile(r"[,;\s]+")

# Units per day
UNIT_DIVISORS = {
    "d": 1,
    "h": 24,
    "m": 24 * 60,
    "s": 24 * 60 * 60,
}


def default_settings() -> Dict[str, Any]:
    return {
        "maxActiveGoals": DEFAULT_MAX_ACTIVE_GOALS,
        "language": DEFAULT_LANGUAGE,
        "reviewIntervals": list(DEFAULT_REVIEW_INTERVALS),
    }


def _whole(days: float):
    return int(days) if float(days).is_integer() else days


def parse_interval_token(raw: Any) -> Optional[float]:
    """Parse one interval into days, or None if it is not a positive duration."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return _whole(raw) if math.isfinite(raw) and raw > 0 else None
    if not isinstance(raw, str):
        return None

    match = _INTERVAL_TOKEN.match(raw.strip())
    if not match:
        return None
    value = float(match.group(1))
    if value <= 0:
        return None
    days = value / UNIT_DIVISORS[(match.group(2) or "d").lower()]
    return _whole(days) if math.isfinite(days) and days > 0 else None


def normalize_review_intervals(value: Any) -> List[float]:
    """Sorted, de-duplicated, positive intervals; the defaults if none survive."""
    if isinstance(value, (list, tuple)):
        tokens = list(value)
    elif isinstance(value, str) and value.strip():
        tokens = _TOKEN_SEPARATORS.split(value.strip())
    elif value is not None:
        tokens = [value]
    else:
        tokens = []

    seen = set()
    normalized = []
    for token in tokens:
        days = parse_interval_token(token)
        if days is None:
            continue
        key = f"{days:.{INTERVAL_PRECISION}f}"
        if key not in seen:
            seen.add(key)
            normalized.append(days)

    if not normalized:
        return list(DEFAULT_REVIEW_INTERVALS)
    return sorted(normalized)


def normalize_max_active_goals(value: Any, fallback: int = DEFAULT_MAX_ACTIVE_GOALS) -> int:
    parsed = parse_int(value)
    if isinstance(parsed, float) or parsed < 1:
        return fallback
    return parsed


class SettingsService:
    """Loads, normalizes and persists the settings object."""

    def __init__(self, store, settings: Optional[Dict[str, Any]] = None):
        self.store = store
        self.settings: Dict[str, Any] = dict(settings) if settings else default_settings()
        self.after_save = Signal("settings.after_save")
        self._normalize()

    def _normalize(self) -> None:
        for key in DEPRECATED_SETTINGS:
            self.settings.pop(key, None)
        if not self.settings.get("language"):
            self.settings["language"] = DEFAULT_LANGUAGE
        self.settings["maxActiveGoals"] = normalize_max_active_goals(
            self.settings.get("maxActiveGoals")
        )
        self.settings["reviewIntervals"] = normalize_review_intervals(
            self.settings.get("reviewIntervals")
        )

    def load_settings(self) -> None:
        saved = self.store.get_item(STORAGE_KEY_SETTINGS)
        if saved:
            try:
                parsed = json.loads(saved)
            except (TypeError, ValueError) as e:
                logger.error(f"Failed to load settings from storage: {e}", exc_info=True)
                parsed = None
            if isinstance(parsed, dict):
                self.settings = {**self.settings, **parsed}
        self._normalize()

    def save_settings(self) -> None:
        self.store.set_item(STORAGE_KEY_SETTINGS, json.dumps(self.settings))

    def get_settings(self) -> Dict[str, Any]:
        """A copy of the current settings."""
        return copy.deepcopy(self.settings)

    def update_settings(self, new_settings: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Merge ``new_settings`` over the current ones, persist and notify."""
        new_settings = new_settings or {}
        previous_max = self.settings.get("maxActiveGoals", DEFAULT_MAX_ACTIVE_GOALS)
        self.settings = {**self.settings, **new_settings}
        if "maxActiveGoals" in new_settings:
            self.settings["maxActiveGoals"] = normalize_max_active_goals(
                new_settings["maxActiveGoals"], fallback=previous_max
            )
        self._normalize()
        self.save_settings()
        self.after_save.emit()
        return self.get_settings()

    @property
    def max_active_goals(self) -> int:
        return as_int(self.settings.get("maxActiveGoals")) or DEFAULT_MAX_ACTIVE_GOALS

    def get_review_intervals(self) -> List[float]:
        return list(self.settings["reviewIntervals"])
