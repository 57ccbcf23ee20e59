"""
Unit tests for key-value storage and the credential store.
"""

import sys
import tempfile
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from classroom_sync.classroom.credentials import DEFAULT_PROVIDER, CredentialStore
from classroom_sync.core.storage import MemoryKeyValueStore, SQLiteKeyValueStore


@pytest.fixture(params=["memory", "sqlite"])
def kv(request):
    if request.param == "memory":
        yield MemoryKeyValueStore()
    else:
        with tempfile.TemporaryDirectory() as tmpdir:
            yield SQLiteKeyValueStore(Path(tmpdir) / "test.db")


class TestKeyValueStore:
    """Tests shared by both adapters."""

    def test_set_get_remove(self, kv):
        assert kv.get("missing") is None

        kv.set("a", "1")
        kv.set("a", "2")
        assert kv.get("a") == "2"

        assert kv.remove("a")
        assert not kv.remove("a")
        assert kv.get("a") is None

    def test_json_helpers(self, kv):
        kv.set_json("settings", {"quiet": True, "items": [1, 2]})
        assert kv.get_json("settings") == {"quiet": True, "items": [1, 2]}
        assert kv.get_json("absent", default=[]) == []

    def test_unreadable_json_falls_back(self, kv):
        kv.set("broken", "{not json")
        assert kv.get_json("broken", default={}) == {}

    def test_keys_by_prefix(self, kv):
        kv.set("notifications:u1", "[]")
        kv.set("notifications:u2", "[]")
        kv.set("credential:google_classroom:u1", "{}")

        assert sorted(kv.keys("notifications:")) == ["notifications:u1", "notifications:u2"]
        assert len(kv.keys()) == 3


class TestSQLitePersistence:
    def test_survives_reopen(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "nested" / "store.db"
            SQLiteKeyValueStore(path).set("k", "v")
            assert SQLiteKeyValueStore(path).get("k") == "v"


class TestCredentialStore:
    """Tests for CredentialStore."""

    def test_set_and_get(self):
        store = CredentialStore(MemoryKeyValueStore())
        store.set("u1", DEFAULT_PROVIDER, "tok")

        assert store.get("u1") == "tok"
        assert store.get("u2") is None
        assert store.get("u1", "other_provider") is None

    def test_expiry(self):
        now = [1000.0]
        store = CredentialStore(MemoryKeyValueStore(), clock=lambda: now[0])
        store.set("u1", DEFAULT_PROVIDER, "tok", expires_in=60)

        assert store.get("u1") == "tok"
        now[0] += 60
        assert store.get("u1") is None

        info = store.connection_info("u1")
        assert info.has_token
        assert info.expired
        assert info.status == "disconnected"

    def test_clear_is_idempotent(self):
        store = CredentialStore(MemoryKeyValueStore())
        store.set("u1", DEFAULT_PROVIDER, "tok")

        assert store.clear("u1")
        assert not store.clear("u1")
        assert store.get("u1") is None

    def test_empty_token_rejected(self):
        store = CredentialStore(MemoryKeyValueStore())
        with pytest.raises(ValueError):
            store.set("u1", DEFAULT_PROVIDER, "")

    def test_connection_info(self):
        store = CredentialStore(MemoryKeyValueStore())
        assert not store.connection_info("u1").is_connected

        store.set("u1", DEFAULT_PROVIDER, "tok")
        info = store.connection_info("u1")
        assert info.is_connected
        assert info.status == "connected"
        assert not store.connection_info("").is_connected
