"""ChatNotificationService: DuckDB-backed unread-message counters."""
import logging
from typing import List, Optional

from nomadchat.chat.schemas import ChatNotification
from nomadchat.exceptions import NotFoundError

from .base import EntityService

logger = logging.getLogger(__name__)

NOTIFICATION_COLUMNS = "id, username, chat_room_id, unread_messages, is_deleted"


def row_to_notification(row: tuple) -> ChatNotification:
    return ChatNotification(
        id=row[0],
        username=row[1],
        chatRoomId=row[2],
        unreadMessages=row[3],
        isDeleted=row[4],
    )


class ChatNotificationService(EntityService):
    """CRUD for per (username, room) notification counters."""

    # -----------------------------------------------------------------------
    # Blocking implementations
    # -----------------------------------------------------------------------

    def _get_all(self) -> List[ChatNotification]:
        rows = self._db.execute(
            f"SELECT {NOTIFICATION_COLUMNS} FROM chat_notifications WHERE NOT is_deleted"
        )
        return [row_to_notification(r) for r in rows]

    def _get_by_id(self, notification_id: str) -> Optional[ChatNotification]:
        row = self._db.fetchone(
            f"SELECT {NOTIFICATION_COLUMNS} FROM chat_notifications WHERE id = ? AND NOT is_deleted",
            [notification_id],
        )
        return row_to_notification(row) if row else None

    def _get_by_username_and_room(self, username: str, room_id: str) -> Optional[ChatNotification]:
        row = self._db.fetchone(
            f"""
            SELECT {NOTIFICATION_COLUMNS} FROM chat_notifications
            WHERE username = ? AND chat_room_id = ? AND NOT is_deleted
            ORDER BY id
            LIMIT 1
            """,
            [username, room_id],
        )
        return row_to_notification(row) if row else None

    def _get_by_username(self, username: str) -> List[ChatNotification]:
        rows = self._db.execute(
            """
            SELECT n.id, n.username, n.chat_room_id, n.unread_messages, n.is_deleted
            FROM chat_notifications n
            JOIN chat_rooms r ON r.id = n.chat_room_id
            WHERE n.username = ? AND NOT n.is_deleted AND NOT r.is_deleted
            ORDER BY r.room_name
            """,
            [username],
        )
        return [row_to_notification(r) for r in rows]

    def _add(self, notification: ChatNotification) -> ChatNotification:
        revived = self._db.execute(
            """
            UPDATE chat_notifications SET unread_messages = ?, is_deleted = FALSE
            WHERE username = ? AND chat_room_id = ? AND is_deleted
            RETURNING id
            """,
            [notification.unreadMessages, notification.username, notification.chatRoomId],
        )
        if revived:
            return notification.model_copy(update={"id": revived[0][0], "isDeleted": False})
        self._db.execute(
            f"INSERT INTO chat_notifications ({NOTIFICATION_COLUMNS}) VALUES (?, ?, ?, ?, ?)",
            [
                notification.id,
                notification.username,
                notification.chatRoomId,
                notification.unreadMessages,
                notification.isDeleted,
            ],
        )
        return notification

    def _update(self, notification: ChatNotification) -> ChatNotification:
        updated = self._db.execute(
            """
            UPDATE chat_notifications SET unread_messages = ?
            WHERE id = ? AND NOT is_deleted
            RETURNING id
            """,
            [notification.unreadMessages, notification.id],
        )
        if not updated:
            raise NotFoundError(
                f"Chat notification {notification.id} not found", {"id": notification.id}
            )
        return notification

    def _delete(self, notification_id: str) -> bool:
        deleted = self._db.execute(
            "UPDATE chat_notifications SET is_deleted = TRUE WHERE id = ? AND NOT is_deleted RETURNING id",
            [notification_id],
        )
        return bool(deleted)

    # -----------------------------------------------------------------------
    # Async API
    # -----------------------------------------------------------------------

    async def get_all(self) -> List[ChatNotification]:
        return await self._db.run(self._get_all)

    async def get_by_id(self, entity_id: str) -> Optional[ChatNotification]:
        return await self._db.run(self._get_by_id, entity_id)

    async def get_by_username_and_room(
        self, username: str, room_id: str
    ) -> Optional[ChatNotification]:
        return await self._db.run(self._get_by_username_and_room, username, room_id)

    async def get_by_username(self, username: str) -> List[ChatNotification]:
        """Return every active counter of the user across rooms."""
        return await self._db.run(self._get_by_username, username)

    async def add(self, entity: ChatNotification) -> ChatNotification:
        return await self._db.run(self._add, entity)

    async def update(self, entity: ChatNotification) -> ChatNotification:
        return await self._db.run(self._update, entity)

    async def delete(self, entity_id: str) -> bool:
        return await self._db.run(self._delete, entity_id)
