"""Common interface implemented by every entity service.

Each concrete service owns one table family and exposes the same five
operations so HTTP routers and the chat hub can treat them uniformly.
"""
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from .database import Database


class EntityService(ABC):
    """Narrow CRUD shape shared by the storage services."""

    def __init__(self, db: Database) -> None:
        self._db = db

    @abstractmethod
    async def get_all(self) -> List[Any]:
        """Return every active (non-deleted) record."""

    @abstractmethod
    async def get_by_id(self, entity_id: str) -> Optional[Any]:
        """Return one record, or None if it does not exist."""

    @abstractmethod
    async def add(self, entity: Any) -> Any:
        """Persist a new record and return it."""

    @abstractmethod
    async def update(self, entity: Any) -> Any:
        """Persist changes to an existing record and return it."""

    @abstractmethod
    async def delete(self, entity_id: str) -> bool:
        """Remove a record (soft where the entity supports it)."""
