"""ChatRoomService: DuckDB-backed chat rooms and their participants.

Rooms returned by this service carry their messages exactly as stored, i.e.
with encrypted content. Callers that need readable text decrypt on demand
(see :class:`nomadchat.chat.crypto.MessageCipher`).
"""
import logging
from typing import Dict, List, Optional

from nomadchat.chat.schemas import ChatNotification, ChatRoom
from nomadchat.constants import MAIN_CHAT_ROOM_NAME, PRIVATE_ROOM_SEPARATOR

from .base import EntityService
from .messages import MESSAGE_COLUMNS, row_to_message
from .notifications import NOTIFICATION_COLUMNS, row_to_notification

logger = logging.getLogger(__name__)


class ChatRoomService(EntityService):
    """CRUD for chat rooms plus the per-user private-chat queries."""

    # -----------------------------------------------------------------------
    # Blocking implementations
    # -----------------------------------------------------------------------

    def _users(self, room_id: str) -> List[str]:
        rows = self._db.execute(
            "SELECT username FROM chat_room_users WHERE room_id = ? ORDER BY username",
            [room_id],
        )
        return [r[0] for r in rows]

    def _messages(self, room_id: str, newest_first: bool = False):
        order = "DESC" if newest_first else "ASC"
        rows = self._db.execute(
            f"""
            SELECT {MESSAGE_COLUMNS} FROM chat_messages
            WHERE chat_room_id = ? AND NOT is_deleted
            ORDER BY created {order}
            """,
            [room_id],
        )
        return [row_to_message(r) for r in rows]

    def _notifications(self, room_id: str) -> List[ChatNotification]:
        rows = self._db.execute(
            f"""
            SELECT {NOTIFICATION_COLUMNS} FROM chat_notifications
            WHERE chat_room_id = ? AND NOT is_deleted
            """,
            [room_id],
        )
        return [row_to_notification(r) for r in rows]

    def _hydrate(self, row: tuple, newest_first: bool = False) -> ChatRoom:
        room_id = row[0]
        return ChatRoom(
            id=room_id,
            roomName=row[1],
            isDeleted=row[2],
            users=self._users(room_id),
            chatMessages=self._messages(room_id, newest_first),
            notifications=self._notifications(room_id),
        )

    def _get_all(self) -> List[ChatRoom]:
        rows = self._db.execute(
            "SELECT id, room_name, is_deleted FROM chat_rooms WHERE NOT is_deleted"
        )
        return [self._hydrate(r) for r in rows]

    def _get_by_id(self, room_id: str) -> Optional[ChatRoom]:
        row = self._db.fetchone(
            "SELECT id, room_name, is_deleted FROM chat_rooms WHERE id = ? AND NOT is_deleted",
            [room_id],
        )
        return self._hydrate(row) if row else None

    def _get_by_name(self, name: str) -> Optional[ChatRoom]:
        row = self._db.fetchone(
            """
            SELECT id, room_name, is_deleted FROM chat_rooms
            WHERE room_name = ? AND NOT is_deleted
            ORDER BY id
            LIMIT 1
            """,
            [name],
        )
        return self._hydrate(row) if row else None

    def _save_users(self, room: ChatRoom) -> None:
        for username in room.users:
            self._db.execute(
                "INSERT OR IGNORE INTO chat_room_users (room_id, username) VALUES (?, ?)",
                [room.id, username],
            )

    def _add(self, room: ChatRoom) -> ChatRoom:
        self._db.execute(
            "INSERT INTO chat_rooms (id, room_name, is_deleted) VALUES (?, ?, ?)",
            [room.id, room.roomName, room.isDeleted],
        )
        self._save_users(room)
        return room

    def _update(self, room: ChatRoom) -> ChatRoom:
        self._db.execute(
            "UPDATE chat_rooms SET room_name = ?, is_deleted = ? WHERE id = ?",
            [room.roomName, room.isDeleted, room.id],
        )
        self._save_users(room)
        return room

    def _delete(self, room_id: str) -> bool:
        deleted = self._db.execute(
            "UPDATE chat_rooms SET is_deleted = TRUE WHERE id = ? AND NOT is_deleted RETURNING id",
            [room_id],
        )
        if not deleted:
            return False
        # notifications never outlive their room
        self._db.execute(
            "UPDATE chat_notifications SET is_deleted = TRUE WHERE chat_room_id = ?",
            [room_id],
        )
        return True

    def _get_rooms_user_interacted_with(self, username: str) -> List[ChatRoom]:
        rows = self._db.execute(
            """
            SELECT r.id, r.room_name, r.is_deleted, MAX(m.created) AS last_created
            FROM chat_rooms r
            JOIN chat_room_users u ON u.room_id = r.id
            LEFT JOIN chat_messages m ON m.chat_room_id = r.id AND NOT m.is_deleted
            WHERE u.username = ? AND NOT r.is_deleted AND r.room_name <> ?
            GROUP BY r.id, r.room_name, r.is_deleted
            ORDER BY last_created DESC NULLS LAST, r.room_name ASC
            """,
            [username, MAIN_CHAT_ROOM_NAME],
        )
        return [self._hydrate(r[:3], newest_first=True) for r in rows]

    # -----------------------------------------------------------------------
    # Async API
    # -----------------------------------------------------------------------

    async def get_all(self) -> List[ChatRoom]:
        return await self._db.run(self._get_all)

    async def get_by_id(self, entity_id: str) -> Optional[ChatRoom]:
        return await self._db.run(self._get_by_id, entity_id)

    async def get_by_name(self, name: str) -> Optional[ChatRoom]:
        """Return the active room with this name, messages oldest first."""
        return await self._db.run(self._get_by_name, name)

    async def add(self, entity: ChatRoom) -> ChatRoom:
        room = await self._db.run(self._add, entity)
        logger.info("[Rooms] Created room %s (%s)", room.roomName, room.id)
        return room

    async def update(self, entity: ChatRoom) -> ChatRoom:
        """Persist the room name, delete flag and any new participants."""
        return await self._db.run(self._update, entity)

    async def delete(self, entity_id: str) -> bool:
        deleted = await self._db.run(self._delete, entity_id)
        if deleted:
            logger.info("[Rooms] Soft-deleted room %s", entity_id)
        return deleted

    async def get_rooms_user_interacted_with(self, username: str) -> List[ChatRoom]:
        """Return the user's private rooms, most recently active first.

        Each room's ``chatMessages`` are ordered newest first and keep their
        stored (encrypted) content.
        """
        return await self._db.run(self._get_rooms_user_interacted_with, username)

    async def get_usernames_user_interacted_with(self, username: str) -> List[str]:
        rooms = await self.get_rooms_user_interacted_with(username)
        names: Dict[str, None] = {}
        for room in rooms:
            for token in room.roomName.split(PRIVATE_ROOM_SEPARATOR):
                if token and token != username:
                    names.setdefault(token, None)
        return list(names)
