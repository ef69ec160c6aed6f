"""Pydantic models exchanged over the chat hub and stored by the services.

Field names follow the camelCase JSON the browser client speaks. The sender
field is named ``from`` on the wire, which is a Python keyword, so it is
declared as ``from_`` with an alias; always serialize with ``by_alias=True``
(see :func:`to_wire`).
"""
import uuid
from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ChatMessage(BaseModel):
    """A single chat message.

    A message without a recipient (``to`` empty or absent) belongs to the
    shared room; a message with a recipient belongs to the private room of
    the (from, to) pair.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    created: datetime = Field(default_factory=_utcnow)
    content: str = ""
    picture: Optional[str] = Field(default=None, description="Base64 image attachment")
    from_: str = Field(..., alias="from", min_length=1, max_length=50)
    to: Optional[str] = Field(default=None, max_length=50)
    unread: bool = True
    chatRoomId: Optional[str] = None
    isDeleted: bool = False

    @field_validator("to", mode="before")
    @classmethod
    def _blank_recipient_is_broadcast(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("created")
    @classmethod
    def _naive_utc(cls, value: datetime) -> datetime:
        # stored in a TIMESTAMP (without time zone) column
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    @property
    def is_private(self) -> bool:
        return self.to is not None


class ChatNotification(BaseModel):
    """Unread-message counter of one user in one room."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    username: str = Field(..., min_length=1, max_length=50)
    unreadMessages: int = 0
    chatRoomId: str
    isDeleted: bool = False


class ChatRoom(BaseModel):
    """A persistent chat room (the shared room or a private pair room)."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    roomName: str
    chatMessages: List[ChatMessage] = Field(default_factory=list)
    users: List[str] = Field(default_factory=list, description="Participant usernames")
    notifications: List[ChatNotification] = Field(default_factory=list)
    isDeleted: bool = False


class UserProfile(BaseModel):
    """Identity record returned by the user lookup."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    username: str
    email: Optional[str] = None
    profilePicture: Optional[str] = None
    status: Optional[str] = Field(default=None, max_length=100)


class UserSummary(BaseModel):
    """Public part of a profile shown in online lists and chat previews."""
    name: str
    email: Optional[str] = None
    profilePicture: Optional[str] = None

    @classmethod
    def from_profile(cls, profile: UserProfile) -> "UserSummary":
        return cls(
            name=profile.username,
            email=profile.email,
            profilePicture=profile.profilePicture,
        )


class ChatPreview(BaseModel):
    """One entry of the private-chat list shown to a user."""
    chatMessage: str = ""
    privateChatId: str
    user: UserSummary
    unread: int = 0


class PushKeys(BaseModel):
    p256dh: str
    auth: str


class PushSubscriptionInput(BaseModel):
    """Browser ``PushSubscription.toJSON()`` shape."""
    endpoint: str = Field(..., min_length=1)
    expirationTime: Optional[float] = None
    keys: PushKeys


class PushSubscriptionRecord(BaseModel):
    """Stored push subscription, at most one per username."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    username: str
    endpoint: str
    p256dh: str
    auth: str

    def subscription_info(self) -> dict:
        """Return the dict ``pywebpush.webpush`` expects."""
        return {
            "endpoint": self.endpoint,
            "keys": {"p256dh": self.p256dh, "auth": self.auth},
        }


class PushPayload(BaseModel):
    title: str
    message: str
    url: str = ""


class FileUpload(BaseModel):
    """Profile picture upload sent through the ``SaveFile`` target."""
    username: str
    file: str = Field(default="", description="Base64 encoded file content")


class HubInvocation(BaseModel):
    """One frame of the hub protocol, in either direction."""
    target: str = Field(..., min_length=1)
    arguments: List[Any] = Field(default_factory=list)


def to_wire(value: Any) -> Any:
    """Convert models (or lists of models) into JSON-ready structures."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, (list, tuple)):
        return [to_wire(item) for item in value]
    return value
