"""Chat room router: CRUD endpoints for rooms and the interacted-with query."""
import logging

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from nomadchat.chat.hub import ChatHub, get_hub
from nomadchat.chat.schemas import ChatRoom, to_wire

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ChatRoom", tags=["rooms"])


def _hub() -> ChatHub:
    return get_hub()


def _readable(hub: ChatHub, room: ChatRoom) -> dict:
    """Serialize a room with its message content decrypted."""
    messages = [
        m.model_copy(update={"content": hub.cipher.decrypt_preview(m.content)})
        for m in room.chatMessages
    ]
    return to_wire(room.model_copy(update={"chatMessages": messages}))


@router.get("")
async def list_rooms() -> JSONResponse:
    """List all active rooms with their participants and messages."""
    hub = _hub()
    rooms = await hub.rooms.get_all()
    return JSONResponse([_readable(hub, r) for r in rooms])


@router.get("/UsernamesUserInteractedWith")
async def usernames_user_interacted_with(
    username: str = Query(..., min_length=1, description="User whose private chats to inspect")
) -> JSONResponse:
    """List the usernames ``username`` has a private room with, most recent first."""
    names = await _hub().rooms.get_usernames_user_interacted_with(username)
    return JSONResponse(names)


@router.get("/{room_id}")
async def get_room(room_id: str) -> JSONResponse:
    hub = _hub()
    room = await hub.rooms.get_by_id(room_id)
    if room is None:
        return JSONResponse({"error": "Chat room not found"}, status_code=404)
    return JSONResponse(_readable(hub, room))


@router.post("", status_code=201)
async def create_room(body: ChatRoom) -> JSONResponse:
    """Create a room.

    Only the name, participants and delete flag are taken from the body;
    messages and notifications are created through the hub.
    """
    room = await _hub().rooms.add(body.model_copy(update={"chatMessages": [], "notifications": []}))
    logger.info("[rooms] Created %s (%s)", room.roomName, room.id)
    return JSONResponse(to_wire(room), status_code=201)


@router.put("")
async def update_room(body: ChatRoom) -> JSONResponse:
    hub = _hub()
    if await hub.rooms.get_by_id(body.id) is None:
        return JSONResponse({"error": "Chat room not found"}, status_code=404)
    await hub.rooms.update(body)
    room = await hub.rooms.get_by_id(body.id)
    if room is None:
        # the update soft-deleted it
        return JSONResponse(to_wire(body))
    return JSONResponse(_readable(hub, room))


@router.delete("/{room_id}", status_code=204)
async def delete_room(room_id: str) -> JSONResponse:
    """Soft-delete a room and its notifications."""
    if not await _hub().rooms.delete(room_id):
        return JSONResponse({"error": "Chat room not found"}, status_code=404)
    logger.info("[rooms] Deleted %s", room_id)
    return JSONResponse(None, status_code=204)
