"""Tests for goaly/sync/merge.py - the three-way merge engine."""

import copy

from goaly.core.versioning import GOAL_FILE_VERSION
from goaly.sync.manager import determine_sync_action
from goaly.sync.merge import (
    MAX_HISTORY_ENTRIES,
    canonical_json,
    compute_two_way_merge,
    merge_goal_histories,
    merge_payloads,
)
from goaly.types import Goal


def _payload(goals, settings=None, export_date="2025-03-01T00:00:00.000Z"):
    return {
        "version": GOAL_FILE_VERSION,
        "goals": goals,
        "settings": settings if settings is not None else {"maxActiveGoals": 3},
        "exportDate": export_date,
    }


def _goal(goal_id="g1", **fields):
    goal = Goal.from_dict(
        {
            "id": goal_id,
            "title": "Title",
            "motivation": 3,
            "urgency": 3,
            "createdAt": "2025-01-01T00:00:00.000Z",
            "lastUpdated": "2025-01-01T00:00:00.000Z",
            **fields,
        }
    )
    return goal.to_dict()


def _history(entry_id, timestamp):
    return {
        "id": entry_id,
        "event": "updated",
        "timestamp": timestamp,
        "changes": [],
        "before": None,
        "after": None,
        "meta": {},
    }


def _goals_by_id(result):
    return {g.id: g for g in result["goals"]}


class TestMergeIdentity:
    def test_same_payload_everywhere(self):
        payload = _payload([_goal("g1"), _goal("g2", title="Other")])
        result = merge_payloads(
            base=copy.deepcopy(payload), local=copy.deepcopy(payload), remote=copy.deepcopy(payload)
        )

        assert result["version"] == GOAL_FILE_VERSION
        assert [g.to_dict() for g in result["goals"]] == payload["goals"]
        assert result["settings"] == payload["settings"]
        assert result["exportDate"] != payload["exportDate"]

    def test_inputs_not_mutated(self):
        local = _payload([_goal("g1")])
        snapshot = copy.deepcopy(local)
        merge_payloads(base=None, local=local, remote=_payload([]))
        assert local == snapshot


class TestGoalResolution:
    def test_local_only_goal_kept(self):
        result = merge_payloads(base=None, local=_payload([_goal("new")]), remote=_payload([]))
        assert [g.id for g in result["goals"]] == ["new"]
        assert result["goals"][0].to_dict() == _goal("new")

    def test_remote_only_goal_kept(self):
        result = merge_payloads(base=None, local=_payload([]), remote=_payload([_goal("r")]))
        assert [g.id for g in result["goals"]] == ["r"]

    def test_goal_deleted_on_both_sides_dropped(self):
        result = merge_payloads(
            base=_payload([_goal("gone")]), local=_payload([]), remote=_payload([])
        )
        assert result["goals"] == []

    def test_later_last_updated_wins(self):
        local = _goal("g1", title="Local", lastUpdated="2025-02-01T00:00:00.000Z")
        remote = _goal("g1", title="Remote", lastUpdated="2025-02-02T00:00:00.000Z")

        result = merge_payloads(base=None, local=_payload([local]), remote=_payload([remote]))
        assert result["goals"][0].title == "Remote"

        result = merge_payloads(base=None, local=_payload([remote]), remote=_payload([local]))
        assert result["goals"][0].title == "Remote"

    def test_full_tie_prefers_local(self):
        local = _goal("g1", title="Local")
        remote = _goal("g1", title="Remote")
        result = merge_payloads(base=None, local=_payload([local]), remote=_payload([remote]))
        assert result["goals"][0].title == "Local"

    def test_created_at_breaks_last_updated_tie(self):
        local = _goal("g1", title="Local", createdAt="2024-01-01T00:00:00.000Z")
        remote = _goal("g1", title="Remote", createdAt="2024-06-01T00:00:00.000Z")
        result = merge_payloads(base=None, local=_payload([local]), remote=_payload([remote]))
        assert result["goals"][0].title == "Remote"

    def test_unchanged_side_loses_to_changed_side(self):
        base = _goal("g1", title="Base", lastUpdated="2025-02-05T00:00:00.000Z")
        # remote changed but carries an older timestamp (clock skew)
        remote = _goal("g1", title="Remote edit", lastUpdated="2025-02-01T00:00:00.000Z")

        result = merge_payloads(
            base=_payload([base]), local=_payload([copy.deepcopy(base)]), remote=_payload([remote])
        )
        assert result["goals"][0].title == "Remote edit"

    def test_both_changed_falls_back_to_timestamps(self):
        base = _goal("g1", title="Base")
        local = _goal("g1", title="Local", lastUpdated="2025-02-03T00:00:00.000Z")
        remote = _goal("g1", motivation=5, lastUpdated="2025-02-02T00:00:00.000Z")

        result = merge_payloads(
            base=_payload([base]), local=_payload([local]), remote=_payload([remote])
        )
        goal = result["goals"][0]
        assert goal.title == "Local"
        assert goal.motivation == 3

    def test_legacy_remote_is_migrated(self):
        remote = [{"id": "old", "title": "Legacy", "description": "Do it"}]
        result = merge_payloads(base=None, local=_payload([]), remote=remote)

        goal = _goals_by_id(result)["old"]
        assert goal.steps[0]["text"] == "Do it"


class TestHistoryUnion:
    def test_union_dedupes_and_sorts(self):
        shared = _history("h-shared", "2025-01-02T00:00:00.000Z")
        local = _goal(
            "g1",
            lastUpdated="2025-02-01T00:00:00.000Z",
            history=[shared, _history("h-local", "2025-01-03T00:00:00.000Z")],
        )
        remote = _goal(
            "g1", history=[_history("h-remote", "2025-01-01T00:00:00.000Z"), copy.deepcopy(shared)]
        )

        result = merge_payloads(base=None, local=_payload([local]), remote=_payload([remote]))
        ids = [h["id"] for h in result["goals"][0].history]
        assert ids == ["h-remote", "h-shared", "h-local"]

    def test_history_capped_keeping_newest(self):
        local_entries = [
            _history(f"l{i}", f"2025-01-01T00:{i // 60:02d}:{i % 60:02d}.000Z") for i in range(80)
        ]
        remote_entries = [
            _history(f"r{i}", f"2025-01-02T00:{i // 60:02d}:{i % 60:02d}.000Z") for i in range(80)
        ]
        merged = merge_goal_histories([local_entries, remote_entries])

        assert len(merged) == MAX_HISTORY_ENTRIES
        assert merged[-1]["id"] == "r79"
        assert merged[0]["id"] == "l60"

    def test_entries_without_id_ignored(self):
        merged = merge_goal_histories([[{"event": "x"}, "junk", _history("h1", "2025-01-01")]])
        assert [h["id"] for h in merged] == ["h1"]


class TestSettings:
    def test_later_export_date_wins(self):
        local = _payload([], {"maxActiveGoals": 1}, export_date="2025-03-02T00:00:00.000Z")
        remote = _payload([], {"maxActiveGoals": 5}, export_date="2025-03-01T00:00:00.000Z")
        assert merge_payloads(local=local, remote=remote)["settings"] == {"maxActiveGoals": 1}

        local["exportDate"] = "2025-02-01T00:00:00.000Z"
        assert merge_payloads(local=local, remote=remote)["settings"] == {"maxActiveGoals": 5}

    def test_missing_remote_date_keeps_local(self):
        local = _payload([], {"maxActiveGoals": 1})
        remote = _payload([], {"maxActiveGoals": 5}, export_date=None)
        assert merge_payloads(local=local, remote=remote)["settings"] == {"maxActiveGoals": 1}

    def test_no_remote(self):
        local = _payload([], {"maxActiveGoals": 2})
        assert merge_payloads(local=local)["settings"] == {"maxActiveGoals": 2}


class TestEmptyRemoteScenario:
    def test_local_goal_survives_and_upload_is_wanted(self):
        local = _payload([_goal("only")])
        remote = _payload([])

        result = compute_two_way_merge(local, remote)

        assert [g.id for g in result["goals"]] == ["only"]
        direction = determine_sync_action(
            result["version"], result["exportDate"], len(result["goals"]) > 0, remote
        )
        assert direction.should_upload is True
        assert direction.reason == "local_has_data_remote_empty"


def test_canonical_json_is_key_order_independent():
    assert canonical_json({"b": 1, "a": [1, 2]}) == canonical_json({"a": [1, 2], "b": 1})
