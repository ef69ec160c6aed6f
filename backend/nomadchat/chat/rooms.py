"""Room resolution: canonical private-room names and get-or-create.

Private rooms are identified by the two participant usernames, ordered by
code point and joined with the private-room separator, so ``("bob",
"alice")`` and ``("alice", "bob")`` both resolve to ``"alice-bob"``.

Concurrent get-or-create calls for the same name are serialized with one
asyncio lock per name, so a single process never creates two rooms with the
same canonical name. Separate processes sharing one database are not
coordinated; :meth:`ChatRoomService.get_by_name` always picks the lowest id
among same-named rooms, so duplicates created that way still converge on a
single room for every reader.
"""
import asyncio
import logging
from typing import Iterable, Optional

from nomadchat.constants import MAIN_CHAT_ROOM_NAME, PRIVATE_ROOM_SEPARATOR
from nomadchat.storage.rooms import ChatRoomService

from .locks import KeyedLocks
from .schemas import ChatRoom

logger = logging.getLogger(__name__)


def canonical_private_room_name(user_a: str, user_b: str) -> str:
    """Return the order-independent room name for a pair of usernames."""
    first, second = (user_a, user_b) if user_a < user_b else (user_b, user_a)
    return f"{first}{PRIVATE_ROOM_SEPARATOR}{second}"


def counterpart_username(room_name: str, viewer: str) -> Optional[str]:
    """Return the participant of a private room that is not ``viewer``."""
    for token in room_name.split(PRIVATE_ROOM_SEPARATOR):
        if token != viewer:
            return token
    return None


class RoomResolver:
    """Looks rooms up by name and creates them on first use."""

    def __init__(self, rooms: ChatRoomService) -> None:
        self._rooms = rooms
        self._locks = KeyedLocks()

    async def get_or_create_room(self, name: str, participants: Iterable[str] = ()) -> ChatRoom:
        """Return the active room called ``name``, creating it if absent.

        An existing room is returned as stored; ``participants`` only seed
        a newly created room.
        """
        async with self._locks.hold(name):
            room = await self._rooms.get_by_name(name)
            if room is not None:
                return room
            room = ChatRoom(roomName=name, users=list(dict.fromkeys(participants)))
            return await self._rooms.add(room)

    async def get_or_create_private_room(self, user_a: str, user_b: str) -> ChatRoom:
        name = canonical_private_room_name(user_a, user_b)
        return await self.get_or_create_room(name, (user_a, user_b))


class SharedRoomCache:
    """Process-wide cached copy of the shared room.

    Lifecycle:
        - ``get()`` resolves (and if needed creates) the room on first use
          after process start; later calls return the cached copy.
        - ``add_participant()`` records a user who announced their identity.
        - ``persist()`` writes the cached state back and refreshes the cache;
          the hub calls it on every disconnect.
    """

    def __init__(self, resolver: RoomResolver, rooms: ChatRoomService) -> None:
        self._resolver = resolver
        self._rooms = rooms
        self._room: Optional[ChatRoom] = None
        self._lock = asyncio.Lock()

    async def get(self) -> ChatRoom:
        async with self._lock:
            if self._room is None:
                self._room = await self._resolver.get_or_create_room(MAIN_CHAT_ROOM_NAME)
                logger.info("[Rooms] Shared room ready: %s", self._room.id)
            return self._room

    async def add_participant(self, username: str) -> None:
        room = await self.get()
        async with self._lock:
            if username not in room.users:
                room.users.append(username)

    async def persist(self) -> Optional[ChatRoom]:
        """Write the shared room back to storage; no-op before first use."""
        async with self._lock:
            if self._room is None:
                return None
            await self._rooms.update(self._room)
            refreshed = await self._rooms.get_by_id(self._room.id)
            if refreshed is not None:
                self._room = refreshed
            return self._room

    def reset(self) -> None:
        self._room = None
