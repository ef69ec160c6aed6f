"""DuckDB persistence for rooms, messages, notifications, subscriptions and users.

Services:
    - ChatRoomService: rooms and participants.
    - ChatMessageService: messages, encrypted at rest.
    - ChatNotificationService: unread counters.
    - PushSubscriptionService: browser push endpoints.
    - UserService: identity lookup.
"""

from .database import Database
from .messages import ChatMessageService
from .notifications import ChatNotificationService
from .rooms import ChatRoomService
from .subscriptions import PushSubscriptionService
from .users import UserService

__all__ = [
    "Database",
    "ChatMessageService",
    "ChatNotificationService",
    "ChatRoomService",
    "PushSubscriptionService",
    "UserService",
]
