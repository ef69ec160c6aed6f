"""Tests for the per-user, per-room unread counter."""
import asyncio

import pytest
import pytest_asyncio

from nomadchat.chat.notifications import NotificationCounter
from nomadchat.chat.schemas import ChatNotification, ChatRoom
from nomadchat.exceptions import PersistenceError
from nomadchat.storage import ChatNotificationService, ChatRoomService


@pytest.fixture
def counter(db):
    return NotificationCounter(ChatNotificationService(db))


@pytest_asyncio.fixture
async def room(db):
    return await ChatRoomService(db).add(ChatRoom(roomName="alice-bob", users=["alice", "bob"]))


class TestNotificationCounter:

    @pytest.mark.asyncio
    async def test_get_or_create_defaults_to_one(self, counter, room):
        notification = await counter.get_or_create("bob", room.id)
        assert notification.unreadMessages == 1

    @pytest.mark.asyncio
    async def test_get_or_create_returns_existing(self, counter, room):
        created = await counter.get_or_create("bob", room.id, initial_value=3)
        again = await counter.get_or_create("bob", room.id)
        assert again.id == created.id
        assert again.unreadMessages == 3

    @pytest.mark.asyncio
    async def test_increment_starts_at_one_and_adds_one(self, counter, room):
        assert (await counter.increment("bob", room.id)).unreadMessages == 1
        assert (await counter.increment("bob", room.id)).unreadMessages == 2
        assert (await counter.current("bob", room.id)).unreadMessages == 2

    @pytest.mark.asyncio
    async def test_reset_sets_value(self, counter, room):
        await counter.increment("bob", room.id)
        await counter.increment("bob", room.id)
        assert (await counter.reset("bob", room.id)).unreadMessages == 0
        assert (await counter.current("bob", room.id)).unreadMessages == 0

    @pytest.mark.asyncio
    async def test_reset_creates_at_value(self, counter, room):
        """Opening a room for the first time seeds the counter at 0."""
        notification = await counter.reset("alice", room.id, 0)
        assert notification.unreadMessages == 0

    @pytest.mark.asyncio
    async def test_counters_are_per_user(self, counter, room):
        await counter.increment("bob", room.id)
        assert await counter.current("alice", room.id) is None
        assert await counter.unread_by_room("bob") == {room.id: 1}
        assert await counter.unread_by_room("alice") == {}

    @pytest.mark.asyncio
    async def test_deleted_room_hides_counters(self, db, counter, room):
        await counter.increment("bob", room.id)
        await ChatRoomService(db).delete(room.id)
        assert await counter.for_user("bob") == []

    @pytest.mark.asyncio
    async def test_concurrent_increment_and_reset_keep_one_row(self, db, counter, room):
        """A send racing an open must not create a second counter."""
        await asyncio.gather(
            counter.increment("bob", room.id),
            counter.reset("bob", room.id, 0),
            counter.increment("bob", room.id),
        )
        rows = await ChatNotificationService(db).get_by_username("bob")
        assert len(rows) == 1

    @pytest.mark.asyncio
    async def test_concurrent_first_increments_count_every_message(self, counter, room):
        await asyncio.gather(*[counter.increment("bob", room.id) for _ in range(5)])
        assert (await counter.current("bob", room.id)).unreadMessages == 5


class TestChatNotificationService:

    @pytest.mark.asyncio
    async def test_second_row_for_same_pair_is_rejected(self, db, room):
        service = ChatNotificationService(db)
        await service.add(ChatNotification(username="bob", chatRoomId=room.id, unreadMessages=1))
        with pytest.raises(PersistenceError):
            await service.add(ChatNotification(username="bob", chatRoomId=room.id, unreadMessages=0))

    @pytest.mark.asyncio
    async def test_add_after_soft_delete_reuses_row(self, db, room):
        service = ChatNotificationService(db)
        first = await service.add(ChatNotification(username="bob", chatRoomId=room.id, unreadMessages=4))
        assert await service.delete(first.id) is True

        again = await service.add(ChatNotification(username="bob", chatRoomId=room.id, unreadMessages=1))
        assert again.id == first.id
        assert (await service.get_by_username_and_room("bob", room.id)).unreadMessages == 1
