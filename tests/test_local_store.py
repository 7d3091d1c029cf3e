"""Tests for goaly/storage/local.py."""

from goaly.storage import LocalStore, last_sync_key


class TestLocalStore:
    def test_get_missing(self, store):
        assert store.get_item("missing") is None

    def test_set_and_overwrite(self, store):
        store.set_item("k", "one")
        store.set_item("k", "two")
        assert store.get_item("k") == "two"

    def test_remove(self, store):
        store.set_item("k", "v")
        assert store.remove_item("k") is True
        assert store.remove_item("k") is False
        assert store.get_item("k") is None

    def test_keys_by_prefix_escapes_wildcards(self, store):
        store.set_item(last_sync_key("doc-1"), "{}")
        store.set_item(last_sync_key("doc-2"), "{}")
        store.set_item("goaly_goals", "{}")
        store.set_item("goalyXgdrive", "{}")

        assert store.keys("goaly_gdrive_last_sync_") == [
            "goaly_gdrive_last_sync_doc-1",
            "goaly_gdrive_last_sync_doc-2",
        ]
        assert "goalyXgdrive" not in store.keys("goaly_")

    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "nested" / "goaly.db"
        LocalStore(path).set_item("k", "v")
        assert LocalStore(path).get_item("k") == "v"

    def test_default_path_uses_goaly_home(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GOALY_HOME", str(tmp_path / "home"))
        store = LocalStore()
        assert store.db_path == tmp_path / "home" / "goaly.db"
