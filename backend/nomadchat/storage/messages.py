"""ChatMessageService: DuckDB-backed chat messages.

Content is encrypted with :class:`MessageCipher` before it is written and
decrypted when it is read back, so callers only ever see plaintext.
Deleting a message sets ``is_deleted``; rows are never removed.
"""
import logging
from typing import Iterable, List, Optional

from cryptography.fernet import InvalidToken

from nomadchat.chat.crypto import MessageCipher
from nomadchat.chat.schemas import ChatMessage
from nomadchat.exceptions import NotFoundError

from .base import EntityService
from .database import Database

logger = logging.getLogger(__name__)

MESSAGE_COLUMNS = (
    "id, chat_room_id, sender, recipient, content, picture, created, unread, is_deleted"
)


def row_to_message(row: tuple, content: Optional[str] = None) -> ChatMessage:
    """Build a message from a ``chat_messages`` row.

    Args:
        row: Row selected with the module's column order.
        content: Replacement for the stored (encrypted) content.
    """
    return ChatMessage(
        id=row[0],
        chatRoomId=row[1],
        from_=row[2],
        to=row[3],
        content=row[4] if content is None else content,
        picture=row[5],
        created=row[6],
        unread=row[7],
        isDeleted=row[8],
    )


class ChatMessageService(EntityService):
    """CRUD for chat messages plus per-room history."""

    def __init__(self, db: Database, cipher: MessageCipher) -> None:
        super().__init__(db)
        self._cipher = cipher

    def _decrypted(self, row: tuple) -> ChatMessage:
        """Build a message with readable content.

        A row written under another key (e.g. before the key changed) comes
        back with empty content instead of failing the whole read.
        """
        if not row[4]:
            return row_to_message(row, content="")
        try:
            content = self._cipher.decrypt(row[4])
        except (InvalidToken, UnicodeError) as exc:
            logger.warning("[Messages] Could not decrypt %s: %r", row[0], exc)
            content = ""
        return row_to_message(row, content=content)

    # -----------------------------------------------------------------------
    # Blocking implementations
    # -----------------------------------------------------------------------

    def _get_all(self) -> List[ChatMessage]:
        rows = self._db.execute(
            f"SELECT {MESSAGE_COLUMNS} FROM chat_messages WHERE NOT is_deleted ORDER BY created ASC"
        )
        return [self._decrypted(r) for r in rows]

    def _get_by_id(self, message_id: str) -> Optional[ChatMessage]:
        row = self._db.fetchone(
            f"SELECT {MESSAGE_COLUMNS} FROM chat_messages WHERE id = ? AND NOT is_deleted",
            [message_id],
        )
        return self._decrypted(row) if row else None

    def _get_by_room(self, room_id: str) -> List[ChatMessage]:
        rows = self._db.execute(
            f"""
            SELECT {MESSAGE_COLUMNS} FROM chat_messages
            WHERE chat_room_id = ? AND NOT is_deleted
            ORDER BY created ASC
            """,
            [room_id],
        )
        return [self._decrypted(r) for r in rows]

    def _add(self, message: ChatMessage) -> ChatMessage:
        self._db.execute(
            f"INSERT INTO chat_messages ({MESSAGE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [
                message.id,
                message.chatRoomId,
                message.from_,
                message.to,
                self._cipher.encrypt(message.content),
                message.picture,
                message.created,
                message.unread,
                False,
            ],
        )
        return message.model_copy(update={"isDeleted": False})

    def _update(self, message: ChatMessage) -> ChatMessage:
        updated = self._db.execute(
            """
            UPDATE chat_messages
            SET content = ?, picture = ?, unread = ?
            WHERE id = ? AND NOT is_deleted
            RETURNING id
            """,
            [
                self._cipher.encrypt(message.content),
                message.picture,
                message.unread,
                message.id,
            ],
        )
        if not updated:
            raise NotFoundError(f"Chat message {message.id} not found", {"id": message.id})
        return message

    def _update_many(self, messages: List[ChatMessage]) -> int:
        for message in messages:
            self._update(message)
        return len(messages)

    def _delete(self, message_id: str) -> bool:
        deleted = self._db.execute(
            "UPDATE chat_messages SET is_deleted = TRUE WHERE id = ? AND NOT is_deleted RETURNING id",
            [message_id],
        )
        return bool(deleted)

    # -----------------------------------------------------------------------
    # Async API
    # -----------------------------------------------------------------------

    async def get_all(self) -> List[ChatMessage]:
        return await self._db.run(self._get_all)

    async def get_by_id(self, entity_id: str) -> Optional[ChatMessage]:
        return await self._db.run(self._get_by_id, entity_id)

    async def get_by_room(self, room_id: str) -> List[ChatMessage]:
        """Return the room's active messages, oldest first."""
        return await self._db.run(self._get_by_room, room_id)

    async def add(self, entity: ChatMessage) -> ChatMessage:
        message = await self._db.run(self._add, entity)
        logger.debug("[Messages] Stored %s in room %s", message.id, message.chatRoomId)
        return message

    async def update(self, entity: ChatMessage) -> ChatMessage:
        """Persist edited content, attachment and unread flag.

        Raises:
            NotFoundError: If the message does not exist or was deleted.
        """
        return await self._db.run(self._update, entity)

    async def update_many(self, messages: Iterable[ChatMessage]) -> int:
        batch = list(messages)
        if not batch:
            return 0
        return await self._db.run(self._update_many, batch)

    async def delete(self, entity_id: str) -> bool:
        deleted = await self._db.run(self._delete, entity_id)
        if deleted:
            logger.info("[Messages] Soft-deleted %s", entity_id)
        return deleted
