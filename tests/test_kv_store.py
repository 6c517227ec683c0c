"""
Tests for the key-value stores — persistence, atomic commits, file mode.
"""

import json
import os
import stat
from unittest.mock import patch

import pytest

from relay_console.services.kv_store import JsonFileKeyValueStore, MemoryKeyValueStore


@pytest.fixture
def store_path(tmp_path):
    return str(tmp_path / "data" / "console.json")


class TestMemoryStore:
    def test_get_missing_is_none(self):
        assert MemoryKeyValueStore().get("tokens") is None

    def test_put_get_delete(self):
        store = MemoryKeyValueStore()
        store.put("a", "1")
        assert store.get("a") == "1"
        store.delete("a")
        assert store.get("a") is None

    def test_commit_applies_puts_and_deletes(self):
        store = MemoryKeyValueStore({"a": "1", "b": "2"})
        store.commit({"c": "3"}, ["a"])
        assert store.get("a") is None
        assert store.get("b") == "2"
        assert store.get("c") == "3"

    def test_delete_missing_key_is_noop(self):
        store = MemoryKeyValueStore()
        store.delete("nothing")
        assert store.get("nothing") is None


class TestJsonFileStore:
    def test_starts_empty_without_file(self, store_path):
        store = JsonFileKeyValueStore(store_path)
        assert store.get("tokens") is None
        assert not os.path.exists(store_path)

    def test_commit_creates_file_and_dirs(self, store_path):
        store = JsonFileKeyValueStore(store_path)
        store.commit({"tokens": "[]", "active_token_id": "abc"})

        with open(store_path) as f:
            data = json.load(f)
        assert data == {"tokens": "[]", "active_token_id": "abc"}

    def test_file_is_owner_only(self, store_path):
        store = JsonFileKeyValueStore(store_path)
        store.put("k", "v")
        mode = stat.S_IMODE(os.stat(store_path).st_mode)
        assert mode == 0o600

    def test_survives_reload(self, store_path):
        JsonFileKeyValueStore(store_path).commit({"a": "1", "b": "2"}, [])
        reloaded = JsonFileKeyValueStore(store_path)
        assert reloaded.get("a") == "1"
        assert reloaded.get("b") == "2"

    def test_delete_persists(self, store_path):
        store = JsonFileKeyValueStore(store_path)
        store.commit({"a": "1", "b": "2"})
        store.delete("a")
        assert JsonFileKeyValueStore(store_path).get("a") is None

    def test_corrupt_file_starts_empty(self, store_path):
        os.makedirs(os.path.dirname(store_path), exist_ok=True)
        with open(store_path, "w") as f:
            f.write("{not json")
        store = JsonFileKeyValueStore(store_path)
        assert store.get("tokens") is None

    def test_non_object_file_starts_empty(self, store_path):
        os.makedirs(os.path.dirname(store_path), exist_ok=True)
        with open(store_path, "w") as f:
            json.dump(["a", "b"], f)
        assert JsonFileKeyValueStore(store_path).get("a") is None

    def test_non_string_values_dropped(self, store_path):
        os.makedirs(os.path.dirname(store_path), exist_ok=True)
        with open(store_path, "w") as f:
            json.dump({"a": "1", "b": 2}, f)
        store = JsonFileKeyValueStore(store_path)
        assert store.get("a") == "1"
        assert store.get("b") is None

    def test_failed_write_leaves_state_untouched(self, store_path):
        store = JsonFileKeyValueStore(store_path)
        store.commit({"a": "1"})

        with patch("relay_console.services.kv_store.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                store.commit({"a": "2", "b": "3"}, [])

        assert store.get("a") == "1"
        assert store.get("b") is None
        assert JsonFileKeyValueStore(store_path).get("a") == "1"
        leftovers = [n for n in os.listdir(os.path.dirname(store_path)) if n.endswith(".tmp")]
        assert leftovers == []
