"""User profile and push configuration endpoints."""
import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from nomadchat.chat.hub import get_hub
from nomadchat.chat.schemas import UserProfile, UserSummary, to_wire
from nomadchat.config import get_config

from .schemas import UserCreate, VapidPublicKey

logger = logging.getLogger(__name__)

router = APIRouter(tags=["users"])


@router.post("/users", status_code=201)
async def register_user(body: UserCreate) -> JSONResponse:
    """Register a chat profile.

    Returns:
        The public summary of the new profile (201 Created), or 400 if the
        username is taken.
    """
    profile = UserProfile(
        username=body.username,
        email=body.email,
        profilePicture=body.profilePicture,
        status=body.status,
    )
    user = await get_hub().users.add(profile)
    return JSONResponse(to_wire(UserSummary.from_profile(user)), status_code=201)


@router.get("/users/{name}")
async def get_user(name: str) -> JSONResponse:
    user = await get_hub().users.find_by_name(name)
    if user is None:
        return JSONResponse({"error": "User not found"}, status_code=404)
    return JSONResponse(to_wire(UserSummary.from_profile(user)))


@router.get("/push/vapid-public-key")
async def vapid_public_key() -> JSONResponse:
    """Public VAPID key browsers need to create a push subscription."""
    key = get_config().push.public_key
    if not key:
        return JSONResponse({"error": "Push notifications are not configured"}, status_code=404)
    return JSONResponse(VapidPublicKey(publicKey=key).model_dump())
