"""Unit tests for the ChatDatabase message store"""
import asyncio
import pytest
from datetime import datetime, timezone, timedelta

from database.chat_database import ChatDatabase
from domain.errors import PersistenceError

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.unit
@pytest.mark.asyncio
class TestChatDatabaseInsert:
    """Test appending messages"""

    async def test_insert_assigns_increasing_ids(self, in_memory_db):
        first = await in_memory_db.insert_message("alice", "one", T0)
        second = await in_memory_db.insert_message("bob", "two", T0)
        assert first == 1
        assert second > first

    async def test_insert_keeps_client_timestamp(self, in_memory_db):
        """The declared send time is stored, not the receipt time"""
        old = T0 - timedelta(days=365)
        await in_memory_db.insert_message("alice", "from the past", old)

        [message] = await in_memory_db.recent(1)
        assert message.timestamp == old

    async def test_recent_one_returns_last_insert(self, in_memory_db):
        await in_memory_db.insert_message("alice", "first", T0)
        message_id = await in_memory_db.insert_message("bob", "second", T0)

        [message] = await in_memory_db.recent(1)
        assert message.id == message_id
        assert message.username == "bob"
        assert message.text == "second"

    async def test_concurrent_inserts_get_unique_ids(self, in_memory_db):
        ids = await asyncio.gather(*(
            in_memory_db.insert_message(f"user{i}", f"msg {i}", T0) for i in range(10)
        ))
        assert len(set(ids)) == 10
        assert await in_memory_db.count() == 10


@pytest.mark.unit
@pytest.mark.asyncio
class TestChatDatabaseRead:
    """Test bounded reads and counting"""

    async def test_recent_is_newest_first_by_insertion(self, in_memory_db):
        # Timestamps deliberately out of order; insertion order wins
        await in_memory_db.insert_message("alice", "a", T0 + timedelta(minutes=5))
        await in_memory_db.insert_message("alice", "b", T0)
        await in_memory_db.insert_message("alice", "c", T0 + timedelta(minutes=1))

        messages = await in_memory_db.recent(10)
        assert [m.text for m in messages] == ["c", "b", "a"]

    async def test_recent_respects_limit(self, in_memory_db):
        for i in range(25):
            await in_memory_db.insert_message("alice", f"msg {i}", T0)

        messages = await in_memory_db.recent(20)
        assert len(messages) == 20
        assert messages[0].text == "msg 24"
        assert messages[-1].text == "msg 5"

    async def test_recent_on_empty_store(self, in_memory_db):
        assert await in_memory_db.recent(20) == []

    async def test_count_tracks_inserts(self, in_memory_db):
        assert await in_memory_db.count() == 0
        await in_memory_db.insert_message("alice", "hi", T0)
        await in_memory_db.insert_message("bob", "hey", T0)
        assert await in_memory_db.count() == 2


@pytest.mark.unit
@pytest.mark.asyncio
class TestChatDatabaseLifecycle:
    """Test initialization and failure handling"""

    async def test_ensure_schema_is_idempotent(self, in_memory_db):
        await in_memory_db.insert_message("alice", "hi", T0)
        await in_memory_db.ensure_schema()
        await in_memory_db.ensure_schema()
        assert await in_memory_db.count() == 1

    async def test_file_database_survives_reopen(self, tmp_path):
        path = str(tmp_path / "chat.db")
        db = ChatDatabase(path)
        await db.init()
        await db.insert_message("alice", "persisted", T0)
        await db.close()

        reopened = ChatDatabase(path)
        await reopened.init()
        try:
            [message] = await reopened.recent(1)
            assert message.text == "persisted"
            assert await reopened.insert_message("bob", "next", T0) == 2
        finally:
            await reopened.close()

    async def test_operations_before_init_raise(self):
        db = ChatDatabase(":memory:")
        with pytest.raises(PersistenceError):
            await db.insert_message("alice", "hi", T0)
        with pytest.raises(PersistenceError):
            await db.recent(1)

    async def test_init_failure_raises_persistence_error(self, tmp_path):
        db = ChatDatabase(str(tmp_path / "missing-dir" / "chat.db"))
        with pytest.raises(PersistenceError):
            await db.init()

    async def test_closed_database_raises(self, in_memory_db):
        await in_memory_db.close()
        with pytest.raises(PersistenceError):
            await in_memory_db.count()
