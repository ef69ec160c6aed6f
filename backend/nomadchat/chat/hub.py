"""Chat hub: connection lifecycle, room routing and event fan-out.

Every inbound hub event is handled by one coroutine on this class. The hub
coordinates the in-memory state (presence, group membership, the cached
shared room) with the storage services, and addresses clients only through
:class:`ConnectionManager` by connection id or group name.

Groups:
    - ``MainChatRoom``: every connection joins it on connect.
    - one group per private room, named after the room's canonical name.

Outbound events:
    UserConnected, InitializeMainRoom, PrivateChats, OnlineUsers, Notify,
    NewMessage, OpenPrivateChat, NewPrivateMessage, MessagesRead,
    ClosePrivateChat, DeleteMessage, UpdateMessage.

Failures in the ancillary paths (notification counters, push) are logged and
never prevent delivery of the message itself. Storage failures everywhere
else propagate to the caller.
"""
import asyncio
import base64
import binascii
import logging
from typing import List, Optional

from nomadchat.config import AppConfig
from nomadchat.constants import MAIN_CHAT_ROOM_NAME
from nomadchat.exceptions import ChatError, HubProtocolError, NotFoundError
from nomadchat.storage import (
    ChatMessageService,
    ChatNotificationService,
    ChatRoomService,
    Database,
    PushSubscriptionService,
    UserService,
)

from .connections import ConnectionManager
from .crypto import MessageCipher
from .notifications import NotificationCounter
from .presence import PresenceRegistry
from .push import PushNotifier
from .rooms import RoomResolver, SharedRoomCache, canonical_private_room_name, counterpart_username
from .schemas import (
    ChatMessage,
    ChatNotification,
    ChatPreview,
    FileUpload,
    PushPayload,
    PushSubscriptionInput,
    PushSubscriptionRecord,
    UserSummary,
)

logger = logging.getLogger(__name__)


class ChatHub:
    """Session orchestrator for all live chat connections."""

    def __init__(
        self,
        rooms: ChatRoomService,
        messages: ChatMessageService,
        notifications: ChatNotificationService,
        subscriptions: PushSubscriptionService,
        users: UserService,
        cipher: MessageCipher,
        notifier: PushNotifier,
    ) -> None:
        self.connections = ConnectionManager()
        self.presence = PresenceRegistry()
        self.rooms = rooms
        self.messages = messages
        self.subscriptions = subscriptions
        self.users = users
        self.cipher = cipher
        self.notifier = notifier
        self.counter = NotificationCounter(notifications)
        self.resolver = RoomResolver(rooms)
        self.shared_room = SharedRoomCache(self.resolver, rooms)

    @classmethod
    def from_config(
        cls,
        db: Database,
        config: AppConfig,
        notifier: Optional[PushNotifier] = None,
    ) -> "ChatHub":
        """Wire the hub to concrete storage services and the push notifier."""
        cipher = MessageCipher(config.secrets.encryption.key)
        subscriptions = PushSubscriptionService(db)
        if notifier is None:
            notifier = PushNotifier(
                subscriptions,
                vapid_private_key=config.secrets.vapid.private_key,
                subject=config.push.subject,
                ttl_seconds=config.push.ttl_seconds,
                enabled=config.push.enabled,
            )
        return cls(
            rooms=ChatRoomService(db),
            messages=ChatMessageService(db, cipher),
            notifications=ChatNotificationService(db),
            subscriptions=subscriptions,
            users=UserService(db),
            cipher=cipher,
            notifier=notifier,
        )

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def on_connected(self, connection_id: str) -> None:
        """Join the shared room and send it its history."""
        self.connections.add_to_group(connection_id, MAIN_CHAT_ROOM_NAME)
        room = await self.shared_room.get()

        await self.connections.send_to_client(connection_id, "UserConnected")

        history = await self.messages.get_by_room(room.id)
        await self.connections.send_to_group(
            MAIN_CHAT_ROOM_NAME, "InitializeMainRoom", room.id, history
        )
        logger.info("[Hub] %s connected, shared room has %d messages", connection_id, len(history))

    async def on_disconnected(self, connection_id: str) -> None:
        """Drop the connection everywhere and persist the shared room."""
        self.connections.disconnect(connection_id)
        username = self.presence.remove(connection_id)
        logger.info("[Hub] %s disconnected (user=%s)", connection_id, username)

        await self.display_online_users()
        await self.shared_room.persist()

    async def add_user_connection_id(self, connection_id: str, name: str) -> None:
        """Record the identity a client announced after connecting."""
        self.presence.add(name, connection_id)

        if await self.users.find_by_name(name) is not None:
            await self.shared_room.add_participant(name)

        await self.display_private_chats(name, connection_id)
        await self.display_online_users()
        await self.display_notifications(name)

    async def shutdown(self) -> None:
        await self.notifier.drain()
        await self.shared_room.persist()
        self.connections.clear()
        self.presence.clear()

    # =========================================================================
    # Messages
    # =========================================================================

    async def receive_message(self, connection_id: str, message: ChatMessage) -> ChatMessage:
        """Store a shared-room message and send it to the shared-room group.

        A message that names a recipient is private, whatever target it
        arrived on.
        """
        if message.is_private:
            return await self.receive_private_message(connection_id, message)

        room = await self.shared_room.get()
        message.chatRoomId = room.id
        new_message = await self.messages.add(message)

        await self.connections.send_to_group(MAIN_CHAT_ROOM_NAME, "NewMessage", new_message)
        return new_message

    async def receive_private_message(self, connection_id: str, message: ChatMessage) -> ChatMessage:
        """Store a private message and deliver it to both parties.

        The recipient gets it (with their notification snapshot) on their
        live connection; the sender gets an echo. An offline recipient is
        sent a push notification instead, if they have a subscription.
        """
        if not message.is_private:
            return await self.receive_message(connection_id, message)

        sender, recipient = message.from_, message.to
        room = await self.resolver.get_or_create_private_room(sender, recipient)

        await self._refresh_private_chats(sender, connection_id)

        try:
            await self.counter.increment(recipient, room.id)
        except ChatError as exc:
            logger.error("[Hub] Could not update unread counter of %s in %s: %s",
                         recipient, room.roomName, exc)

        await self.mark_messages_read(room.id, sender)

        message.chatRoomId = room.id
        new_message = await self.messages.add(message)

        recipient_connection = self.presence.lookup_connection(recipient)
        recipient_online = self.connections.is_connected(recipient_connection)
        self.connections.add_to_group(connection_id, room.roomName)
        self.connections.add_to_group(recipient_connection, room.roomName)

        if recipient_online:
            await self._refresh_private_chats(recipient, recipient_connection)
            notifications = await self._notifications_snapshot(recipient)
            await self.connections.send_to_client(
                recipient_connection, "NewPrivateMessage", new_message, notifications
            )

        await self.connections.send_to_client(connection_id, "NewPrivateMessage", new_message)

        if not recipient_online:
            await self._send_push(sender, recipient, message.content)
        return new_message

    async def _refresh_private_chats(self, username: str, connection_id: Optional[str]) -> None:
        try:
            await self.display_private_chats(username, connection_id)
        except ChatError as exc:
            logger.error("[Hub] Could not refresh private chats of %s: %s", username, exc)

    async def _notifications_snapshot(self, username: str) -> List[ChatNotification]:
        try:
            return await self.counter.for_user(username)
        except ChatError as exc:
            logger.error("[Hub] Could not load unread counters of %s: %s", username, exc)
            return []

    async def open_private_chat(self, connection_id: str, from_: str, to: str) -> None:
        """Open the private room of (from_, to) for the caller.

        The caller's counter for the room goes to 0 and every unread message
        addressed to the caller is marked read.
        """
        room = await self.resolver.get_or_create_private_room(from_, to)

        await self.display_private_chats(from_, connection_id)
        await self.counter.reset(from_, room.id, 0)

        self.connections.add_to_group(connection_id, room.roomName)
        other_connection = self.presence.lookup_connection(to)
        if self.connections.is_connected(other_connection):
            self.connections.add_to_group(other_connection, room.roomName)
            await self.connections.send_to_client(other_connection, "MessagesRead")

        await self.mark_messages_read(room.id, from_)

        history = await self.messages.get_by_room(room.id)
        notifications = await self.counter.for_user(from_)
        await self.connections.send_to_client(
            connection_id, "OpenPrivateChat", history, notifications, from_, to
        )

    async def remove_private_chat(self, connection_id: str, from_: str, to: str) -> None:
        group = canonical_private_room_name(from_, to)
        await self.connections.send_to_group(group, "ClosePrivateChat", from_, to)

        self.connections.remove_from_group(connection_id, group)
        self.connections.remove_from_group(self.presence.lookup_connection(to), group)

    async def delete_message(self, connection_id: str, message: ChatMessage) -> None:
        if not await self.messages.delete(message.id):
            raise NotFoundError(f"Chat message {message.id} not found", {"id": message.id})
        removed = message.model_copy(update={"isDeleted": True})
        await self.connections.send_to_group(self._group_for(message), "DeleteMessage", removed)

    async def edit_message(self, connection_id: str, message: ChatMessage) -> None:
        updated = await self.messages.update(message)
        await self.connections.send_to_group(self._group_for(message), "UpdateMessage", updated)

    async def mark_messages_read(self, room_id: str, reader: str) -> int:
        """Clear the unread flag of messages in the room addressed to ``reader``."""
        history = await self.messages.get_by_room(room_id)
        read = [
            m.model_copy(update={"unread": False})
            for m in history
            if m.unread and m.to == reader
        ]
        return await self.messages.update_many(read)

    @staticmethod
    def _group_for(message: ChatMessage) -> str:
        if not message.is_private:
            return MAIN_CHAT_ROOM_NAME
        return canonical_private_room_name(message.from_, message.to)

    # =========================================================================
    # Push subscriptions and profile pictures
    # =========================================================================

    async def subscribe_for_notifications(
        self, connection_id: str, subscription: PushSubscriptionInput, username: str
    ) -> PushSubscriptionRecord:
        existing = await self.subscriptions.get_by_username(username)
        if existing is None:
            return await self.subscriptions.add(PushSubscriptionRecord(
                username=username,
                endpoint=subscription.endpoint,
                p256dh=subscription.keys.p256dh,
                auth=subscription.keys.auth,
            ))
        existing.endpoint = subscription.endpoint
        existing.p256dh = subscription.keys.p256dh
        existing.auth = subscription.keys.auth
        logger.info("[Push] Refreshed subscription for %s", username)
        return await self.subscriptions.update(existing)

    async def unsubscribe_from_notifications(
        self, connection_id: str, subscription: Optional[PushSubscriptionInput], username: str
    ) -> None:
        existing = await self.subscriptions.get_by_username(username)
        if existing is None:
            return
        await self.subscriptions.delete(existing.id)

    async def save_file(self, connection_id: str, upload: FileUpload) -> None:
        """Store an uploaded profile picture for an existing user."""
        if not upload.file:
            logger.debug("[Hub] Empty profile picture from %s ignored", upload.username)
            return
        try:
            base64.b64decode(upload.file, validate=True)
        except binascii.Error as exc:
            raise HubProtocolError("Profile picture is not valid base64") from exc

        if await self.users.set_profile_picture(upload.username, upload.file) is None:
            logger.info("[Hub] Profile picture for unknown user %s ignored", upload.username)

    async def _send_push(self, sender: str, recipient: str, content: str) -> None:
        try:
            subscription = await self.subscriptions.get_by_username(recipient)
        except ChatError as exc:
            logger.error("[Push] Could not load subscription of %s: %s", recipient, exc)
            return
        if subscription is None:
            logger.debug("[Push] %s is offline without a subscription", recipient)
            return
        payload = PushPayload(title=f"New message from {sender}", message=content)
        self.notifier.notify(subscription, payload)

    # =========================================================================
    # Broadcast helpers
    # =========================================================================

    async def display_private_chats(self, username: str, connection_id: Optional[str]) -> None:
        """Send ``username`` the preview list of their private chats."""
        rooms = await self.rooms.get_rooms_user_interacted_with(username)
        unread = await self.counter.unread_by_room(username)
        profiles = await asyncio.gather(*[
            self.users.find_by_name(counterpart_username(room.roomName, username))
            for room in rooms
        ])

        previews: List[ChatPreview] = []
        for room, profile in zip(rooms, profiles):
            if profile is None:
                continue
            last = room.chatMessages[0] if room.chatMessages else None
            previews.append(ChatPreview(
                chatMessage=self.cipher.decrypt_preview(last.content if last else None),
                privateChatId=room.id,
                user=UserSummary.from_profile(profile),
                unread=unread.get(room.id, 0),
            ))

        await self.connections.send_to_client(connection_id, "PrivateChats", previews)

    async def display_online_users(self) -> None:
        names = sorted(self.presence.list_online())
        profiles = await asyncio.gather(*[self.users.find_by_name(n) for n in names])
        online = [UserSummary.from_profile(p) for p in profiles if p is not None]
        await self.connections.send_to_group(MAIN_CHAT_ROOM_NAME, "OnlineUsers", online)

    async def display_notifications(self, username: str) -> None:
        notifications = await self.counter.for_user(username)
        await self.connections.send_to_client(
            self.presence.lookup_connection(username), "Notify", notifications
        )


_hub: Optional[ChatHub] = None


def get_hub() -> ChatHub:
    if _hub is None:
        raise RuntimeError("Chat hub is not initialized")
    return _hub


def set_hub(hub: Optional[ChatHub]) -> None:
    global _hub
    _hub = hub
