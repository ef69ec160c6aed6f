"""Error taxonomy for the chat backend."""
from typing import Any, Dict, Optional


class ChatError(Exception):
    """Base exception for the application."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class NotFoundError(ChatError):
    """A room, user, message or notification does not exist."""
    pass


class PersistenceError(ChatError):
    """The persistence collaborator failed to complete an operation."""
    pass


class HubProtocolError(ChatError):
    """An inbound hub frame is malformed or names an unknown target."""
    pass
