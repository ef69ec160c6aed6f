"""UserService: identity lookup for the chat hub.

Authentication is handled elsewhere; this table only carries the public
profile the hub shows in online lists and chat previews.
"""
import logging
from typing import List, Optional

from nomadchat.chat.schemas import UserProfile
from nomadchat.exceptions import ChatError, NotFoundError

from .base import EntityService

logger = logging.getLogger(__name__)

_COLUMNS = "id, username, email, profile_picture, status"


def _row_to_user(row: tuple) -> UserProfile:
    return UserProfile(
        id=row[0], username=row[1], email=row[2], profilePicture=row[3], status=row[4]
    )


class UserService(EntityService):
    """CRUD for user profiles plus lookup by username."""

    def _get_all(self) -> List[UserProfile]:
        rows = self._db.execute(f"SELECT {_COLUMNS} FROM users ORDER BY username")
        return [_row_to_user(r) for r in rows]

    def _get_by_id(self, user_id: str) -> Optional[UserProfile]:
        row = self._db.fetchone(f"SELECT {_COLUMNS} FROM users WHERE id = ?", [user_id])
        return _row_to_user(row) if row else None

    def _find_by_name(self, username: str) -> Optional[UserProfile]:
        row = self._db.fetchone(
            f"SELECT {_COLUMNS} FROM users WHERE username = ? ORDER BY id LIMIT 1", [username]
        )
        return _row_to_user(row) if row else None

    def _add(self, user: UserProfile) -> UserProfile:
        if self._find_by_name(user.username) is not None:
            raise ChatError(f"User {user.username} already exists", {"username": user.username})
        self._db.execute(
            f"INSERT INTO users ({_COLUMNS}) VALUES (?, ?, ?, ?, ?)",
            [user.id, user.username, user.email, user.profilePicture, user.status],
        )
        return user

    def _update(self, user: UserProfile) -> UserProfile:
        updated = self._db.execute(
            """
            UPDATE users SET email = ?, profile_picture = ?, status = ?
            WHERE id = ?
            RETURNING id
            """,
            [user.email, user.profilePicture, user.status, user.id],
        )
        if not updated:
            raise NotFoundError(f"User {user.id} not found", {"id": user.id})
        return user

    def _delete(self, user_id: str) -> bool:
        deleted = self._db.execute("DELETE FROM users WHERE id = ? RETURNING id", [user_id])
        return bool(deleted)

    async def get_all(self) -> List[UserProfile]:
        return await self._db.run(self._get_all)

    async def get_by_id(self, entity_id: str) -> Optional[UserProfile]:
        return await self._db.run(self._get_by_id, entity_id)

    async def find_by_name(self, username: Optional[str]) -> Optional[UserProfile]:
        """Return the profile for ``username``, or None if unknown."""
        if not username:
            return None
        return await self._db.run(self._find_by_name, username)

    async def add(self, entity: UserProfile) -> UserProfile:
        user = await self._db.run(self._add, entity)
        logger.info("[Users] Registered %s", user.username)
        return user

    async def update(self, entity: UserProfile) -> UserProfile:
        return await self._db.run(self._update, entity)

    async def delete(self, entity_id: str) -> bool:
        return await self._db.run(self._delete, entity_id)

    async def set_profile_picture(self, username: str, picture: str) -> Optional[UserProfile]:
        """Store a new profile picture; returns None if the user is unknown."""
        user = await self.find_by_name(username)
        if user is None:
            return None
        user.profilePicture = picture
        return await self.update(user)
