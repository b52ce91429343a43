"""
Tests for the SQL-backed message store and user directory
"""
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from campusnest.errors import DirectoryUnavailable, StoreUnavailable, ValidationRejected
from campusnest.models import Message
from campusnest.services.live_channel import InMemoryLiveChannel
from campusnest.services.message_store import SqlMessageStore
from campusnest.services.user_directory import SqlUserDirectory


def broken_factory():
    raise OperationalError("SELECT 1", {}, Exception("database is locked"))


class TestSqlMessageStore:
    """Test suite for SqlMessageStore"""

    @pytest.mark.asyncio
    async def test_insert_assigns_id_and_timestamp(self, session_factory, seeded):
        store = SqlMessageStore(session_factory)
        conversation_id = seeded["application_id"]

        message = await store.insert(conversation_id, "student-1", "Is parking included?")

        assert isinstance(message.id, uuid.UUID)
        assert message.conversation_id == conversation_id
        assert message.sender_id == "student-1"
        assert message.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_query_orders_by_created_at(self, session_factory, seeded):
        conversation_id = seeded["application_id"]
        base = datetime(2024, 3, 1, 9, 0)
        with session_factory() as db:
            for minutes, text in [(30, "third"), (10, "first"), (20, "second")]:
                db.add(Message(
                    application_id=conversation_id,
                    sender_id="owner-1",
                    content=text,
                    created_at=base + timedelta(minutes=minutes),
                ))
            db.commit()

        messages = await SqlMessageStore(session_factory).query(conversation_id)

        assert [m.content for m in messages] == ["first", "second", "third"]
        assert messages[0].created_at == datetime(2024, 3, 1, 9, 10, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_query_accepts_string_ids(self, session_factory, seeded):
        store = SqlMessageStore(session_factory)
        await store.insert(seeded["application_id"], "owner-1", "Yes, it is!")

        messages = await store.query(str(seeded["application_id"]))

        assert [m.content for m in messages] == ["Yes, it is!"]

    @pytest.mark.asyncio
    async def test_query_with_malformed_id_is_empty(self, session_factory, seeded):
        assert await SqlMessageStore(session_factory).query("not-a-uuid") == []

    @pytest.mark.asyncio
    async def test_insert_publishes_to_live_channel(self, session_factory, seeded):
        channel = InMemoryLiveChannel()
        store = SqlMessageStore(session_factory, live_channel=channel)
        received = []

        async def handler(message):
            received.append(message)

        await channel.subscribe(seeded["application_id"], handler)
        message = await store.insert(seeded["application_id"], "owner-1", "Viewing on Friday?")
        await channel.drain()

        assert received == [message]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", ["", "   \n"])
    async def test_insert_rejects_blank_content(self, session_factory, seeded, content):
        store = SqlMessageStore(session_factory)

        with pytest.raises(ValidationRejected):
            await store.insert(seeded["application_id"], "student-1", content)

    @pytest.mark.asyncio
    async def test_insert_rejects_oversized_content(self, session_factory, seeded):
        store = SqlMessageStore(session_factory, max_length=10)

        with pytest.raises(ValidationRejected):
            await store.insert(seeded["application_id"], "student-1", "x" * 11)

    @pytest.mark.asyncio
    async def test_insert_rejects_unknown_conversation(self, session_factory, seeded):
        store = SqlMessageStore(session_factory)

        with pytest.raises(ValidationRejected):
            await store.insert(uuid.uuid4(), "student-1", "hello")

    @pytest.mark.asyncio
    async def test_database_errors_become_store_unavailable(self):
        store = SqlMessageStore(broken_factory)

        with pytest.raises(StoreUnavailable):
            await store.query(uuid.uuid4())
        with pytest.raises(StoreUnavailable):
            await store.insert(uuid.uuid4(), "student-1", "hello")


class TestSqlUserDirectory:
    """Test suite for SqlUserDirectory"""

    @pytest.mark.asyncio
    async def test_batch_resolve_omits_unknown_ids(self, session_factory, seeded):
        directory = SqlUserDirectory(session_factory)

        labels = await directory.batch_resolve_display_label({"student-1", "owner-1", "ghost"})

        assert labels == {"student-1": "student@uni.edu", "owner-1": "owner@homes.com"}

    @pytest.mark.asyncio
    async def test_single_resolve(self, session_factory, seeded):
        directory = SqlUserDirectory(session_factory)

        assert await directory.resolve_display_label("owner-1") == "owner@homes.com"
        assert await directory.resolve_display_label("ghost") is None

    @pytest.mark.asyncio
    async def test_empty_batch_skips_query(self):
        assert await SqlUserDirectory(broken_factory).batch_resolve_display_label([]) == {}

    @pytest.mark.asyncio
    async def test_database_errors_become_directory_unavailable(self):
        with pytest.raises(DirectoryUnavailable):
            await SqlUserDirectory(broken_factory).resolve_display_label("owner-1")
