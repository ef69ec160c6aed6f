"""Request bodies accepted by the HTTP endpoints."""
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from nomadchat.constants import PRIVATE_ROOM_SEPARATOR


class UserCreate(BaseModel):
    """Profile registration payload."""
    username: str = Field(..., min_length=1, max_length=50)
    email: Optional[str] = None
    profilePicture: Optional[str] = Field(default=None, description="Base64 image")
    status: Optional[str] = Field(default=None, max_length=100)

    @field_validator("username")
    @classmethod
    def _no_separator(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("username may not be blank")
        # private room names are "<user>-<user>"
        if PRIVATE_ROOM_SEPARATOR in value:
            raise ValueError(f"username may not contain '{PRIVATE_ROOM_SEPARATOR}'")
        return value


class VapidPublicKey(BaseModel):
    publicKey: str
