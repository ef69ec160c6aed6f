"""Chat message router: CRUD endpoints for stored messages.

These endpoints only touch storage; nothing is sent to connected clients.
"""
import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from nomadchat.chat.hub import get_hub
from nomadchat.chat.schemas import ChatMessage, to_wire
from nomadchat.storage import ChatMessageService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ChatMessage", tags=["messages"])


def _service() -> ChatMessageService:
    return get_hub().messages


@router.get("")
async def list_messages() -> JSONResponse:
    return JSONResponse(to_wire(await _service().get_all()))


@router.get("/{message_id}")
async def get_message(message_id: str) -> JSONResponse:
    message = await _service().get_by_id(message_id)
    if message is None:
        return JSONResponse({"error": "Chat message not found"}, status_code=404)
    return JSONResponse(to_wire(message))


@router.post("", status_code=201)
async def create_message(body: ChatMessage) -> JSONResponse:
    message = await _service().add(body)
    logger.info("[messages] Created %s in room %s", message.id, message.chatRoomId)
    return JSONResponse(to_wire(message), status_code=201)


@router.put("")
async def update_message(body: ChatMessage) -> JSONResponse:
    """Update content, attachment and unread flag.

    Returns:
        The updated message; 404 (via the NotFoundError handler) if the
        message does not exist.
    """
    return JSONResponse(to_wire(await _service().update(body)))


@router.delete("/{message_id}", status_code=204)
async def delete_message(message_id: str) -> JSONResponse:
    if not await _service().delete(message_id):
        return JSONResponse({"error": "Chat message not found"}, status_code=404)
    return JSONResponse(None, status_code=204)
