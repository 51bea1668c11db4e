"""Tests for persisted-state storage backends."""

from datetime import UTC, datetime

import pytest

from changekeeper.changelists.models import PersistedChangelist, PersistedState
from changekeeper.exceptions import StorageError
from changekeeper.storage.base import StateStore
from changekeeper.storage.memory import MemoryStateStore
from changekeeper.storage.sqlite import SqliteStateStore


def _state(**kwargs) -> PersistedState:
    defaults = {
        "changelists": [
            PersistedChangelist(
                id="default",
                name="Changes",
                is_default=True,
                is_expanded=False,
                created_at=datetime(2024, 1, 1, tzinfo=UTC),
            ),
            PersistedChangelist(
                id="abc123",
                name="Feature",
                description="work in progress",
                created_at=datetime(2024, 1, 2, tzinfo=UTC),
            ),
        ],
        "file_assignments": {"a.txt": "abc123"},
        "hunk_assignments": {"YS50eHQ6NTo1": "default"},
        "active_changelist_id": "abc123",
    }
    defaults.update(kwargs)
    return PersistedState(**defaults)


@pytest.fixture
async def sqlite_store(tmp_path):
    store = SqliteStateStore(tmp_path / "nested" / "state.db", workspace="/repo")
    await store.setup()
    yield store
    await store.teardown()


class TestProtocolConformance:
    def test_memory_store(self):
        assert isinstance(MemoryStateStore(), StateStore)

    def test_sqlite_store(self, tmp_path):
        assert isinstance(SqliteStateStore(tmp_path / "t.db"), StateStore)


class TestMemoryStateStore:
    @pytest.mark.asyncio
    async def test_empty_load(self):
        assert await MemoryStateStore().load() is None

    @pytest.mark.asyncio
    async def test_save_and_load(self):
        store = MemoryStateStore()
        await store.save(_state())
        assert await store.load() == _state()
        assert store.save_count == 1

    @pytest.mark.asyncio
    async def test_loaded_copy_is_independent(self):
        store = MemoryStateStore()
        await store.save(_state())
        loaded = await store.load()
        loaded.file_assignments["b.txt"] = "default"
        assert "b.txt" not in (await store.load()).file_assignments

    @pytest.mark.asyncio
    async def test_clear(self):
        store = MemoryStateStore()
        await store.save(_state())
        await store.clear()
        assert await store.load() is None


class TestSqliteStateStore:
    async def test_empty_load(self, sqlite_store):
        assert await sqlite_store.load() is None

    async def test_save_and_load(self, sqlite_store):
        await sqlite_store.save(_state())
        loaded = await sqlite_store.load()
        assert loaded == _state()
        assert loaded.changelists[1].description == "work in progress"

    async def test_save_replaces(self, sqlite_store):
        await sqlite_store.save(_state())
        await sqlite_store.save(_state(file_assignments={}))
        assert (await sqlite_store.load()).file_assignments == {}

    async def test_clear(self, sqlite_store):
        await sqlite_store.save(_state())
        await sqlite_store.clear()
        assert await sqlite_store.load() is None

    async def test_workspaces_are_separate(self, tmp_path):
        path = tmp_path / "state.db"
        one = SqliteStateStore(path, workspace="one")
        two = SqliteStateStore(path, workspace="two")
        await one.setup()
        await two.setup()
        try:
            await one.save(_state())
            assert await two.load() is None
        finally:
            await one.teardown()
            await two.teardown()

    async def test_survives_reopen(self, tmp_path):
        path = tmp_path / "state.db"
        store = SqliteStateStore(path)
        await store.setup()
        await store.save(_state())
        await store.teardown()

        reopened = SqliteStateStore(path)
        await reopened.setup()
        try:
            assert await reopened.load() == _state()
        finally:
            await reopened.teardown()

    async def test_stored_json_uses_camel_case(self, sqlite_store):
        await sqlite_store.save(_state())
        cursor = await sqlite_store._db.execute("SELECT state FROM changelist_state")
        (raw,) = await cursor.fetchone()
        assert '"fileAssignments"' in raw
        assert '"activeChangelistId"' in raw

    async def test_malformed_row_loads_as_none(self, sqlite_store):
        await sqlite_store._db.execute(
            "INSERT INTO changelist_state (workspace, state, updated_at) "
            "VALUES (?, ?, ?)",
            ("/repo", "{not json", "2024-01-01"),
        )
        await sqlite_store._db.commit()
        assert await sqlite_store.load() is None

    async def test_wrong_shape_loads_as_none(self, sqlite_store):
        await sqlite_store._db.execute(
            "INSERT INTO changelist_state (workspace, state, updated_at) "
            "VALUES (?, ?, ?)",
            ("/repo", '{"changelists": "nope"}', "2024-01-01"),
        )
        await sqlite_store._db.commit()
        assert await sqlite_store.load() is None

    async def test_use_before_setup(self, tmp_path):
        store = SqliteStateStore(tmp_path / "state.db")
        with pytest.raises(StorageError, match="not initialized"):
            await store.load()
        with pytest.raises(StorageError):
            await store.save(_state())

    async def test_setup_failure(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        store = SqliteStateStore(blocker / "state.db")
        with pytest.raises(StorageError):
            await store.setup()
