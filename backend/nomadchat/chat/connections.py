"""WebSocket connection manager for the chat hub.

This module owns the live WebSocket objects and the hub groups (the shared
room group plus one group per private room). The hub never touches a
WebSocket directly; it addresses connections by connection id and groups by
name, the same way clients are addressed in a hub protocol.

Key features:
    - Backend-assigned connection ids
    - Named groups with add/remove membership
    - Concurrent group delivery with asyncio.gather()
    - Automatic dead connection cleanup

Thread Safety:
    This implementation is designed for async/await usage with a single event loop.
    Group and connection maps are only mutated from coroutines on that loop.
"""
import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket

from .schemas import to_wire

logger = logging.getLogger(__name__)


def invocation(target: str, *arguments: Any) -> dict:
    """Build an outbound hub frame."""
    return {"target": target, "arguments": [to_wire(arg) for arg in arguments]}


class ConnectionManager:
    """Tracks live connections and their group memberships."""

    def __init__(self) -> None:
        # connection_id -> active WebSocket
        self.active_connections: Dict[str, WebSocket] = {}

        # group name -> connection ids
        self.groups: Dict[str, Set[str]] = {}

    async def connect(self, websocket: WebSocket) -> str:
        """Accept a WebSocket and assign it a connection id.

        SECURITY: the id is generated here and never taken from the client.
        """
        await websocket.accept()
        connection_id = uuid.uuid4().hex
        self.active_connections[connection_id] = websocket
        logger.info(f"[Connections] Accepted {connection_id} ({len(self.active_connections)} live)")
        return connection_id

    def disconnect(self, connection_id: str) -> None:
        """Forget a connection and drop it from every group."""
        self.active_connections.pop(connection_id, None)
        for name in list(self.groups):
            members = self.groups[name]
            members.discard(connection_id)
            if not members:
                del self.groups[name]

    def is_connected(self, connection_id: Optional[str]) -> bool:
        return connection_id is not None and connection_id in self.active_connections

    # =========================================================================
    # Groups
    # =========================================================================

    def add_to_group(self, connection_id: Optional[str], group: str) -> None:
        if not self.is_connected(connection_id):
            return
        self.groups.setdefault(group, set()).add(connection_id)

    def remove_from_group(self, connection_id: Optional[str], group: str) -> None:
        if connection_id is None or group not in self.groups:
            return
        self.groups[group].discard(connection_id)
        if not self.groups[group]:
            del self.groups[group]

    def group_members(self, group: str) -> Set[str]:
        return set(self.groups.get(group, set()))

    # =========================================================================
    # Delivery
    # =========================================================================

    async def send_to_client(self, connection_id: Optional[str], target: str, *arguments: Any) -> bool:
        """Send one hub frame to a single connection.

        Returns:
            True if delivered, False if the connection is gone or failed.
        """
        websocket = self.active_connections.get(connection_id) if connection_id else None
        if websocket is None:
            return False
        delivered = await self._safe_send(websocket, invocation(target, *arguments))
        if not delivered:
            self._cleanup_connections([connection_id])
        return delivered

    async def send_to_group(self, group: str, target: str, *arguments: Any) -> None:
        """Send one hub frame to every member of a group concurrently.

        Failed connections are removed from the manager.
        """
        connection_ids = [
            cid for cid in self.group_members(group) if cid in self.active_connections
        ]
        if not connection_ids:
            return

        message = invocation(target, *arguments)
        results = await asyncio.gather(
            *[self._safe_send(self.active_connections[cid], message) for cid in connection_ids],
            return_exceptions=True
        )

        failed = [
            cid for cid, success in zip(connection_ids, results)
            if success is not True
        ]
        self._cleanup_connections(failed)

    async def _safe_send(self, connection: WebSocket, message: dict) -> bool:
        """Send a message to a WebSocket connection with error handling."""
        try:
            await connection.send_json(message)
            return True
        except Exception as e:
            logger.debug(f"Failed to send to connection: {e}")
            return False

    def _cleanup_connections(self, failed_connections: List[str]) -> None:
        for connection_id in failed_connections:
            if connection_id in self.active_connections:
                self.disconnect(connection_id)
                logger.debug(f"Removed dead connection {connection_id}")

    def clear(self) -> None:
        self.active_connections.clear()
        self.groups.clear()
