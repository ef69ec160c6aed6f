"""Tests for canonical room names, the room resolver and the shared-room cache."""
import asyncio

import pytest

from nomadchat.chat.rooms import (
    RoomResolver,
    SharedRoomCache,
    canonical_private_room_name,
    counterpart_username,
)
from nomadchat.constants import MAIN_CHAT_ROOM_NAME
from nomadchat.storage import ChatRoomService


@pytest.fixture
def rooms(db):
    return ChatRoomService(db)


class TestCanonicalName:

    def test_example_pair(self):
        assert canonical_private_room_name("bob", "alice") == "alice-bob"

    @pytest.mark.parametrize("a,b", [
        ("alice", "bob"),
        ("Bob", "alice"),
        ("zoë", "zoe"),
        ("user1", "user10"),
    ])
    def test_order_independent(self, a, b):
        assert canonical_private_room_name(a, b) == canonical_private_room_name(b, a)

    def test_ordinal_comparison(self):
        """Upper case sorts before lower case by code point."""
        assert canonical_private_room_name("alice", "Bob") == "Bob-alice"

    def test_counterpart(self):
        assert counterpart_username("alice-bob", "alice") == "bob"
        assert counterpart_username("alice-bob", "bob") == "alice"

    def test_counterpart_of_self_room(self):
        assert counterpart_username("alice-alice", "alice") is None


class TestRoomResolver:

    @pytest.mark.asyncio
    async def test_creates_room_with_participants(self, rooms):
        resolver = RoomResolver(rooms)
        room = await resolver.get_or_create_private_room("bob", "alice")
        assert room.roomName == "alice-bob"

        stored = await rooms.get_by_name("alice-bob")
        assert stored.id == room.id
        assert stored.users == ["alice", "bob"]

    @pytest.mark.asyncio
    async def test_returns_existing_room(self, rooms):
        resolver = RoomResolver(rooms)
        first = await resolver.get_or_create_private_room("alice", "bob")
        second = await resolver.get_or_create_private_room("bob", "alice")
        assert first.id == second.id

    @pytest.mark.asyncio
    async def test_concurrent_requests_create_one_room(self, rooms):
        resolver = RoomResolver(rooms)
        results = await asyncio.gather(*[
            resolver.get_or_create_private_room("alice", "bob") for _ in range(10)
        ])
        assert len({room.id for room in results}) == 1
        all_rooms = await rooms.get_all()
        assert [r.roomName for r in all_rooms] == ["alice-bob"]


class TestSharedRoomCache:

    @pytest.mark.asyncio
    async def test_get_creates_once_and_caches(self, rooms):
        cache = SharedRoomCache(RoomResolver(rooms), rooms)
        first = await cache.get()
        second = await cache.get()
        assert first is second
        assert first.roomName == MAIN_CHAT_ROOM_NAME

    @pytest.mark.asyncio
    async def test_persist_before_first_use_is_noop(self, rooms):
        cache = SharedRoomCache(RoomResolver(rooms), rooms)
        assert await cache.persist() is None
        assert await rooms.get_all() == []

    @pytest.mark.asyncio
    async def test_participants_are_persisted(self, rooms):
        cache = SharedRoomCache(RoomResolver(rooms), rooms)
        await cache.add_participant("alice")
        await cache.add_participant("alice")
        await cache.add_participant("bob")
        persisted = await cache.persist()
        assert persisted.users == ["alice", "bob"]

        stored = await rooms.get_by_name(MAIN_CHAT_ROOM_NAME)
        assert stored.users == ["alice", "bob"]

    @pytest.mark.asyncio
    async def test_reset_reloads_existing_room(self, rooms):
        cache = SharedRoomCache(RoomResolver(rooms), rooms)
        room_id = (await cache.get()).id
        cache.reset()
        assert (await cache.get()).id == room_id
