"""Per-user, per-room unread-message counters."""
import logging
from typing import List, Optional

from nomadchat.storage.notifications import ChatNotificationService

from .locks import KeyedLocks
from .schemas import ChatNotification

logger = logging.getLogger(__name__)


class NotificationCounter:
    """Get-or-create, increment and reset on top of the notification store.

    A counter row is created lazily the first time a user interacts with a
    room. Every operation returns the state after it was persisted.
    Operations on the same (username, room) pair run one at a time, so
    concurrent callers never create a second row for the pair.
    """

    def __init__(self, notifications: ChatNotificationService) -> None:
        self._notifications = notifications
        self._locks = KeyedLocks()

    async def _get_or_create(
        self, username: str, room_id: str, initial_value: int
    ) -> ChatNotification:
        notification = await self._notifications.get_by_username_and_room(username, room_id)
        if notification is not None:
            return notification
        notification = ChatNotification(
            username=username, chatRoomId=room_id, unreadMessages=initial_value
        )
        logger.debug("[Notifications] New counter %s/%s = %d", username, room_id, initial_value)
        return await self._notifications.add(notification)

    async def get_or_create(
        self, username: str, room_id: str, initial_value: int = 1
    ) -> ChatNotification:
        async with self._locks.hold((username, room_id)):
            return await self._get_or_create(username, room_id, initial_value)

    async def increment(self, username: str, room_id: str) -> ChatNotification:
        """Add one unread message; a new counter starts at 1."""
        async with self._locks.hold((username, room_id)):
            notification = await self._notifications.get_by_username_and_room(username, room_id)
            if notification is None:
                return await self._get_or_create(username, room_id, initial_value=1)
            notification.unreadMessages += 1
            return await self._notifications.update(notification)

    async def reset(self, username: str, room_id: str, value: int = 0) -> ChatNotification:
        """Set the counter to ``value``, creating it at that value if absent."""
        async with self._locks.hold((username, room_id)):
            notification = await self._notifications.get_by_username_and_room(username, room_id)
            if notification is None:
                return await self._get_or_create(username, room_id, initial_value=value)
            if notification.unreadMessages == value:
                return notification
            notification.unreadMessages = value
            return await self._notifications.update(notification)

    async def for_user(self, username: str) -> List[ChatNotification]:
        return await self._notifications.get_by_username(username)

    async def unread_by_room(self, username: str) -> dict:
        """Map room id to unread count for ``username``."""
        return {n.chatRoomId: n.unreadMessages for n in await self.for_user(username)}

    async def current(self, username: str, room_id: str) -> Optional[ChatNotification]:
        return await self._notifications.get_by_username_and_room(username, room_id)
