"""Unit tests for key-value backends and the user record store."""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from latchkey.exceptions import StoreError
from latchkey.passkey.records import CredentialRecord, UserRecord
from latchkey.storage import build_kv_store, build_record_store
from latchkey.storage.kv import MemoryKeyValueStore, SqlKeyValueStore
from latchkey.storage.models import KVEntry
from latchkey.storage.user_records import UserRecordStore
from tests.helpers.settings import make_test_settings


def _session_factory(session):
    @asynccontextmanager
    async def _factory():
        yield session

    return _factory


@pytest.fixture
def mock_session():
    session = AsyncMock()
    session.execute = AsyncMock()
    session.merge = AsyncMock()
    session.commit = AsyncMock()
    return session


class TestMemoryKeyValueStore:
    async def test_missing_key_is_none(self):
        store = MemoryKeyValueStore()
        assert await store.get("nobody") is None

    async def test_last_put_wins(self):
        store = MemoryKeyValueStore()
        await store.put("k", "one")
        await store.put("k", "two")
        assert await store.get("k") == "two"
        assert len(store) == 1


class TestSqlKeyValueStore:
    async def test_get_returns_stored_value(self, mock_session):
        result = MagicMock()
        result.scalar_one_or_none.return_value = '{"username": "alice"}'
        mock_session.execute.return_value = result

        store = SqlKeyValueStore(_session_factory(mock_session))

        assert await store.get("alice") == '{"username": "alice"}'
        mock_session.execute.assert_awaited_once()

    async def test_get_missing_returns_none(self, mock_session):
        result = MagicMock()
        result.scalar_one_or_none.return_value = None
        mock_session.execute.return_value = result

        store = SqlKeyValueStore(_session_factory(mock_session))

        assert await store.get("nobody") is None

    async def test_put_merges_and_commits(self, mock_session):
        store = SqlKeyValueStore(_session_factory(mock_session))

        await store.put("alice", "{}")

        merged = mock_session.merge.await_args.args[0]
        assert isinstance(merged, KVEntry)
        assert merged.key == "alice"
        assert merged.value == "{}"
        mock_session.commit.assert_awaited_once()

    async def test_backend_failure_becomes_store_error(self, mock_session):
        mock_session.execute.side_effect = OperationalError("SELECT", {}, Exception("down"))
        store = SqlKeyValueStore(_session_factory(mock_session))

        with pytest.raises(StoreError) as exc_info:
            await store.get("alice")
        assert exc_info.value.key == "alice"

    async def test_write_failure_becomes_store_error(self, mock_session):
        mock_session.commit.side_effect = OperationalError("INSERT", {}, Exception("down"))
        store = SqlKeyValueStore(_session_factory(mock_session))

        with pytest.raises(StoreError):
            await store.put("alice", "{}")


class TestUserRecordStore:
    async def test_load_unknown_user_is_none(self, kv):
        store = UserRecordStore(kv)
        assert await store.load("alice") is None

    async def test_save_then_load(self, kv):
        store = UserRecordStore(kv)
        record = UserRecord(username="alice", pending_challenge="c1")
        record.credentials.append(CredentialRecord(credential_id="id", public_key="pk", sign_count=2))

        await store.save("alice", record)
        loaded = await store.load("alice")

        assert loaded == record
        assert loaded is not record

    async def test_key_prefix_applied(self, kv):
        store = UserRecordStore(kv, key_prefix="user:")
        await store.save("alice", UserRecord(username="alice"))
        assert await kv.get("user:alice") is not None
        assert await kv.get("alice") is None

    async def test_corrupt_value_raises_store_error(self, kv):
        await kv.put("alice", "not json")
        store = UserRecordStore(kv)
        with pytest.raises(StoreError, match="Corrupt"):
            await store.load("alice")


class TestBuildStores:
    def test_memory_backend(self):
        assert isinstance(build_kv_store(make_test_settings()), MemoryKeyValueStore)

    def test_database_backend(self, monkeypatch):
        import latchkey.storage as storage_mod

        factory = MagicMock()
        monkeypatch.setattr(storage_mod, "get_session_factory", lambda settings=None: factory)

        kv = build_kv_store(make_test_settings(store_backend="database"))

        assert isinstance(kv, SqlKeyValueStore)

    def test_record_store_uses_prefix(self):
        store = build_record_store(make_test_settings(store_key_prefix="pk:"))
        assert store.key_for("bob") == "pk:bob"
