"""In-memory presence: which user is connected through which connection.

At most one live connection id is kept per username; a reconnect simply
overwrites the previous entry. Every access goes through one lock so that
lookups never observe an entry that a concurrent ``remove`` already evicted.
"""
import logging
import threading
from typing import Dict, Optional, Set

logger = logging.getLogger(__name__)


class PresenceRegistry:
    """Bidirectional username <-> connection id map."""

    def __init__(self) -> None:
        self._by_username: Dict[str, str] = {}
        self._by_connection: Dict[str, str] = {}
        self._lock = threading.Lock()

    def add(self, username: str, connection_id: str) -> None:
        """Register ``connection_id`` as the live connection of ``username``.

        Any previous connection of the same user is forgotten, and so is any
        username previously announced on this connection.
        """
        with self._lock:
            previous = self._by_username.get(username)
            if previous is not None and previous != connection_id:
                self._by_connection.pop(previous, None)
            announced = self._by_connection.get(connection_id)
            if announced is not None and announced != username:
                self._by_username.pop(announced, None)
            self._by_username[username] = connection_id
            self._by_connection[connection_id] = username
        logger.info("[Presence] %s online via %s", username, connection_id)

    def remove(self, connection_id: str) -> Optional[str]:
        """Evict the user behind ``connection_id``.

        Returns:
            The evicted username, or None if the connection was unknown
            (a stale reference is not an error).
        """
        with self._lock:
            username = self._by_connection.pop(connection_id, None)
            if username is not None and self._by_username.get(username) == connection_id:
                del self._by_username[username]
        if username is not None:
            logger.info("[Presence] %s offline (%s)", username, connection_id)
        return username

    def lookup_connection(self, username: Optional[str]) -> Optional[str]:
        if not username:
            return None
        with self._lock:
            return self._by_username.get(username)

    def lookup_username(self, connection_id: str) -> Optional[str]:
        with self._lock:
            return self._by_connection.get(connection_id)

    def list_online(self) -> Set[str]:
        with self._lock:
            return set(self._by_username)

    def clear(self) -> None:
        with self._lock:
            self._by_username.clear()
            self._by_connection.clear()
