"""Tests for goaly/features/settings.py."""

import json

import pytest

from goaly.features.settings import (
    DEFAULT_REVIEW_INTERVALS,
    SettingsService,
    normalize_max_active_goals,
    normalize_review_intervals,
    parse_interval_token,
)
from goaly.storage import STORAGE_KEY_SETTINGS


class TestIntervalParsing:
    @pytest.mark.parametrize(
        "token,expected",
        [("7", 7), ("7d", 7), ("24h", 1), ("12h", 0.5), ("1440m", 1), ("86400s", 1), (3, 3)],
    )
    def test_tokens(self, token, expected):
        assert parse_interval_token(token) == expected

    @pytest.mark.parametrize("token", ["0", "-1", "abc", "7w", None, True, float("inf"), 0])
    def test_invalid_tokens(self, token):
        assert parse_interval_token(token) is None

    def test_whole_days_are_ints(self):
        assert isinstance(parse_interval_token("48h"), int)

    def test_string_with_separators(self):
        assert normalize_review_intervals("30, 7;14  7d") == [7, 14, 30]

    def test_duplicates_removed(self):
        assert normalize_review_intervals([7, "7", "168h", 14]) == [7, 14]

    def test_nothing_valid_means_defaults(self):
        assert normalize_review_intervals("nope") == DEFAULT_REVIEW_INTERVALS
        assert normalize_review_intervals(None) == DEFAULT_REVIEW_INTERVALS
        assert normalize_review_intervals([]) == DEFAULT_REVIEW_INTERVALS


class TestMaxActiveGoals:
    def test_valid(self):
        assert normalize_max_active_goals("5") == 5

    @pytest.mark.parametrize("value", [0, -1, "x", None])
    def test_invalid_uses_fallback(self, value):
        assert normalize_max_active_goals(value, fallback=4) == 4


class TestSettingsService:
    def test_defaults(self, settings_service):
        settings = settings_service.get_settings()
        assert settings == {"maxActiveGoals": 3, "language": "en", "reviewIntervals": [7, 14, 30]}

    def test_update_persists_and_emits(self, settings_service, store):
        calls = []
        settings_service.after_save.connect(lambda: calls.append(1))

        result = settings_service.update_settings({"maxActiveGoals": 5, "reviewIntervals": "3,1"})

        assert result["maxActiveGoals"] == 5
        assert result["reviewIntervals"] == [1, 3]
        assert json.loads(store.get_item(STORAGE_KEY_SETTINGS))["maxActiveGoals"] == 5
        assert calls == [1]

    def test_invalid_max_keeps_previous(self, settings_service):
        settings_service.update_settings({"maxActiveGoals": 5})
        settings_service.update_settings({"maxActiveGoals": 0})
        assert settings_service.max_active_goals == 5

    def test_get_settings_is_a_copy(self, settings_service):
        settings_service.get_settings()["reviewIntervals"].append(99)
        assert settings_service.get_review_intervals() == [7, 14, 30]

    def test_load_drops_deprecated_keys(self, store):
        store.set_item(
            STORAGE_KEY_SETTINGS,
            json.dumps({"maxActiveGoals": 2, "checkInInterval": 5, "reviewsEnabled": True}),
        )
        service = SettingsService(store)
        service.load_settings()

        assert service.max_active_goals == 2
        assert "checkInInterval" not in service.settings
        assert "reviewsEnabled" not in service.settings

    def test_load_corrupt_keeps_defaults(self, store):
        store.set_item(STORAGE_KEY_SETTINGS, "{oops")
        service = SettingsService(store)
        service.load_settings()
        assert service.max_active_goals == 3
