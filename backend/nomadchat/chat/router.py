"""WebSocket endpoint for the chat hub.

This module provides:
    - WebSocket /hubs/chat: the hub protocol endpoint

Every frame, in both directions, is a JSON object
``{"target": <name>, "arguments": [...]}``. On connect the server sends
``UserConnected`` followed by ``InitializeMainRoom``.

Inbound targets:
    - AddUserConnectionId [name]
    - ReceiveMessage [message]
    - OpenPrivateChat [from, to]
    - ReceivePrivateMessage [message]
    - RemovePrivateChat [from, to]
    - DeleteMessage [message]
    - EditMessage [message]
    - SubscribeForNotifications [subscription, username]
    - UnsubscribeFromNotifications [subscription, username]
    - SaveFile [{username, file}]

A frame that cannot be handled is answered with
``{"target": "Error", "arguments": [<reason>]}``; the connection stays open.
"""
import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from nomadchat.config import get_config
from nomadchat.exceptions import ChatError, HubProtocolError

from .hub import ChatHub, get_hub
from .schemas import ChatMessage, FileUpload, HubInvocation, PushSubscriptionInput

logger = logging.getLogger(__name__)

router = APIRouter()

Handler = Callable[[ChatHub, str, List[Any]], Awaitable[Any]]


def _expect(target: str, arguments: List[Any], count: int) -> List[Any]:
    if len(arguments) < count:
        raise HubProtocolError(
            f"{target} expects {count} argument(s), got {len(arguments)}",
            {"target": target},
        )
    return arguments[:count]


def _username(target: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise HubProtocolError(f"{target} expects a non-empty username", {"target": target})
    return value


async def _add_user_connection_id(hub: ChatHub, connection_id: str, arguments: List[Any]) -> None:
    (name,) = _expect("AddUserConnectionId", arguments, 1)
    await hub.add_user_connection_id(connection_id, _username("AddUserConnectionId", name))


async def _receive_message(hub: ChatHub, connection_id: str, arguments: List[Any]) -> None:
    (message,) = _expect("ReceiveMessage", arguments, 1)
    await hub.receive_message(connection_id, ChatMessage.model_validate(message))


async def _receive_private_message(hub: ChatHub, connection_id: str, arguments: List[Any]) -> None:
    (message,) = _expect("ReceivePrivateMessage", arguments, 1)
    await hub.receive_private_message(connection_id, ChatMessage.model_validate(message))


async def _open_private_chat(hub: ChatHub, connection_id: str, arguments: List[Any]) -> None:
    from_, to = _expect("OpenPrivateChat", arguments, 2)
    await hub.open_private_chat(
        connection_id,
        _username("OpenPrivateChat", from_),
        _username("OpenPrivateChat", to),
    )


async def _remove_private_chat(hub: ChatHub, connection_id: str, arguments: List[Any]) -> None:
    from_, to = _expect("RemovePrivateChat", arguments, 2)
    await hub.remove_private_chat(
        connection_id,
        _username("RemovePrivateChat", from_),
        _username("RemovePrivateChat", to),
    )


async def _delete_message(hub: ChatHub, connection_id: str, arguments: List[Any]) -> None:
    (message,) = _expect("DeleteMessage", arguments, 1)
    await hub.delete_message(connection_id, ChatMessage.model_validate(message))


async def _edit_message(hub: ChatHub, connection_id: str, arguments: List[Any]) -> None:
    (message,) = _expect("EditMessage", arguments, 1)
    await hub.edit_message(connection_id, ChatMessage.model_validate(message))


async def _subscribe(hub: ChatHub, connection_id: str, arguments: List[Any]) -> None:
    subscription, username = _expect("SubscribeForNotifications", arguments, 2)
    await hub.subscribe_for_notifications(
        connection_id,
        PushSubscriptionInput.model_validate(subscription),
        _username("SubscribeForNotifications", username),
    )


async def _unsubscribe(hub: ChatHub, connection_id: str, arguments: List[Any]) -> None:
    subscription, username = _expect("UnsubscribeFromNotifications", arguments, 2)
    await hub.unsubscribe_from_notifications(
        connection_id,
        PushSubscriptionInput.model_validate(subscription) if subscription else None,
        _username("UnsubscribeFromNotifications", username),
    )


async def _save_file(hub: ChatHub, connection_id: str, arguments: List[Any]) -> None:
    (upload,) = _expect("SaveFile", arguments, 1)
    await hub.save_file(connection_id, FileUpload.model_validate(upload))


HANDLERS: Dict[str, Handler] = {
    "AddUserConnectionId": _add_user_connection_id,
    "ReceiveMessage": _receive_message,
    "OpenPrivateChat": _open_private_chat,
    "ReceivePrivateMessage": _receive_private_message,
    "RemovePrivateChat": _remove_private_chat,
    "DeleteMessage": _delete_message,
    "EditMessage": _edit_message,
    "SubscribeForNotifications": _subscribe,
    "UnsubscribeFromNotifications": _unsubscribe,
    "SaveFile": _save_file,
}


def parse_frame(raw: str, max_size: int) -> HubInvocation:
    """Decode one inbound text frame.

    Raises:
        HubProtocolError: If the frame is too large or not a JSON object.
        ValidationError: If the object is not a hub invocation.
    """
    if len(raw.encode("utf-8")) > max_size:
        raise HubProtocolError(f"Frame exceeds {max_size} bytes")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise HubProtocolError("Frame is not valid JSON") from exc
    if not isinstance(data, dict):
        raise HubProtocolError("Frame must be a JSON object")
    return HubInvocation.model_validate(data)


async def dispatch(hub: ChatHub, connection_id: str, frame: HubInvocation) -> None:
    handler = HANDLERS.get(frame.target)
    if handler is None:
        raise HubProtocolError(f"Unknown hub target: {frame.target}", {"target": frame.target})
    await handler(hub, connection_id, frame.arguments)


async def _disconnect(hub: ChatHub, connection_id: str) -> None:
    try:
        await hub.on_disconnected(connection_id)
    except ChatError as exc:
        logger.error("[WS] Disconnect cleanup for %s failed: %s", connection_id, exc.message)


@router.websocket("/hubs/chat")
async def chat_hub_endpoint(websocket: WebSocket) -> None:
    """Hub protocol endpoint.

    Frames from one connection are handled strictly in arrival order. The
    disconnect sequence runs however the loop ends.
    """
    hub = get_hub()
    max_size = get_config().hub.max_receive_message_size

    # SECURITY: the connection id is assigned by the server
    connection_id = await hub.connections.connect(websocket)
    logger.info("[WS] Hub connection %s opened", connection_id)

    try:
        await hub.on_connected(connection_id)

        while True:
            raw = await websocket.receive_text()
            target = "?"
            try:
                frame = parse_frame(raw, max_size)
                target = frame.target
                logger.debug("[WS] %s -> %s", connection_id, target)
                await dispatch(hub, connection_id, frame)
            except ChatError as exc:
                logger.warning("[WS] %s failed on %s: %s", connection_id, target, exc.message)
                await hub.connections.send_to_client(connection_id, "Error", exc.message)
            except ValidationError as exc:
                logger.warning("[WS] %s sent invalid arguments for %s: %s", connection_id, target, exc)
                await hub.connections.send_to_client(
                    connection_id,
                    "Error",
                    f"Invalid arguments for {target}: {exc.error_count()} validation error(s)",
                )

    except WebSocketDisconnect:
        logger.info("[WS] Hub connection %s closed by client", connection_id)

    finally:
        # runs to completion even if this handler is being cancelled
        await asyncio.shield(asyncio.ensure_future(_disconnect(hub, connection_id)))
