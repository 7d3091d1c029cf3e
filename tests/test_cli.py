"""Tests for the goaly command line."""

import json

import pytest

from goaly.cli.__main__ import main


@pytest.fixture(autouse=True)
def goaly_home(tmp_path, monkeypatch):
    for name in ("GOALY_ACCESS_TOKEN", "GOALY_SYNC_DEBOUNCE", "GOALY_DB_PATH"):
        monkeypatch.delenv(name, raising=False)
    home = tmp_path / "home"
    monkeypatch.setenv("GOALY_HOME", str(home))
    return home


def run_json(capsys, *argv):
    capsys.readouterr()
    main([*argv, "--json"])
    return json.loads(capsys.readouterr().out)


class TestGoalCommands:
    def test_add_and_list(self, capsys):
        main(["add", "Learn Rust", "-m", "4", "-u", "2", "--step", "Read the book"])
        assert "Goal created" in capsys.readouterr().out

        goals = run_json(capsys, "list")
        assert len(goals) == 1
        assert goals[0]["title"] == "Learn Rust"
        assert goals[0]["status"] == "active"
        assert goals[0]["steps"][0]["text"] == "Read the book"

    def test_empty_list(self, capsys):
        main(["list"])
        assert "No goals yet." in capsys.readouterr().out

    def test_rating_out_of_range(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["add", "Too keen", "-m", "9", "-u", "1"])
        assert exc_info.value.code == 2
        assert "between 1 and 5" in capsys.readouterr().err

    def test_status_by_id_prefix(self, capsys):
        goal = run_json(capsys, "add", "Ship", "-m", "3", "-u", "3")

        updated = run_json(capsys, "status", goal["id"][:6], "completed")

        assert updated["status"] == "completed"
        assert updated["history"][-1]["after"] == {"status": "completed"}

    def test_unknown_goal(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["delete", "missing"])
        assert exc_info.value.code == 1
        assert "Goal not found" in capsys.readouterr().out

    def test_update_nothing(self, capsys):
        goal = run_json(capsys, "add", "Ship", "-m", "3", "-u", "3")
        main(["update", goal["id"]])
        assert "Nothing to update." in capsys.readouterr().out

    def test_pause_and_unpause(self, capsys):
        goal = run_json(capsys, "add", "Ship", "-m", "3", "-u", "3")

        main(["pause", goal["id"], "--until", "2999-01-01"])
        assert "paused" in capsys.readouterr().out

        main(["unpause", goal["id"]])
        assert "active" in capsys.readouterr().out

    def test_settings_limit_reranks(self, capsys):
        run_json(capsys, "add", "High", "-m", "5", "-u", "5")
        run_json(capsys, "add", "Low", "-m", "1", "-u", "1")

        settings = run_json(capsys, "settings", "--max-active", "1")
        assert settings["maxActiveGoals"] == 1

        goals = run_json(capsys, "list")
        assert {g["title"]: g["status"] for g in goals} == {"High": "active", "Low": "inactive"}


class TestImportExport:
    def test_export_then_import(self, capsys, tmp_path):
        run_json(capsys, "add", "Ship", "-m", "3", "-u", "3")
        target = tmp_path / "backup.json"

        main(["export", "--file", str(target)])
        assert json.loads(target.read_text())["goals"][0]["title"] == "Ship"

        main(["import", str(target)])
        assert "Imported 1 goals" in capsys.readouterr().out

    def test_legacy_import_needs_confirmation(self, capsys, tmp_path):
        legacy = tmp_path / "legacy.json"
        legacy.write_text(json.dumps([{"id": "old", "title": "Legacy"}]))

        main(["import", str(legacy)])
        assert "Re-run with --yes" in capsys.readouterr().out
        assert run_json(capsys, "list") == []

        main(["import", str(legacy), "--yes"])
        assert "Migrated and imported 1 goals" in capsys.readouterr().out

    def test_import_bad_file(self, capsys, tmp_path):
        broken = tmp_path / "broken.json"
        broken.write_text("{")
        with pytest.raises(SystemExit):
            main(["import", str(broken)])
        assert "Import failed" in capsys.readouterr().out


def test_sync_requires_token(capsys):
    with pytest.raises(SystemExit) as exc_info:
        main(["sync"])
    assert exc_info.value.code == 1
    assert "Sync is not configured." in capsys.readouterr().out
