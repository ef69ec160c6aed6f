"""PushSubscriptionService: browser push endpoints, one per username."""
import logging
from typing import List, Optional

from nomadchat.chat.schemas import PushSubscriptionRecord
from nomadchat.exceptions import NotFoundError

from .base import EntityService

logger = logging.getLogger(__name__)

_COLUMNS = "id, username, endpoint, p256dh, auth"


def _row_to_subscription(row: tuple) -> PushSubscriptionRecord:
    return PushSubscriptionRecord(
        id=row[0], username=row[1], endpoint=row[2], p256dh=row[3], auth=row[4]
    )


class PushSubscriptionService(EntityService):
    """CRUD for push subscriptions. Unsubscribing removes the row."""

    def _get_all(self) -> List[PushSubscriptionRecord]:
        rows = self._db.execute(f"SELECT {_COLUMNS} FROM push_subscriptions")
        return [_row_to_subscription(r) for r in rows]

    def _get_by_id(self, subscription_id: str) -> Optional[PushSubscriptionRecord]:
        row = self._db.fetchone(
            f"SELECT {_COLUMNS} FROM push_subscriptions WHERE id = ?", [subscription_id]
        )
        return _row_to_subscription(row) if row else None

    def _get_by_username(self, username: str) -> Optional[PushSubscriptionRecord]:
        row = self._db.fetchone(
            f"SELECT {_COLUMNS} FROM push_subscriptions WHERE username = ? ORDER BY id LIMIT 1",
            [username],
        )
        return _row_to_subscription(row) if row else None

    def _add(self, subscription: PushSubscriptionRecord) -> PushSubscriptionRecord:
        self._db.execute(
            f"INSERT INTO push_subscriptions ({_COLUMNS}) VALUES (?, ?, ?, ?, ?)",
            [
                subscription.id,
                subscription.username,
                subscription.endpoint,
                subscription.p256dh,
                subscription.auth,
            ],
        )
        return subscription

    def _update(self, subscription: PushSubscriptionRecord) -> PushSubscriptionRecord:
        updated = self._db.execute(
            """
            UPDATE push_subscriptions SET endpoint = ?, p256dh = ?, auth = ?
            WHERE id = ?
            RETURNING id
            """,
            [subscription.endpoint, subscription.p256dh, subscription.auth, subscription.id],
        )
        if not updated:
            raise NotFoundError(
                f"Push subscription {subscription.id} not found", {"id": subscription.id}
            )
        return subscription

    def _delete(self, subscription_id: str) -> bool:
        deleted = self._db.execute(
            "DELETE FROM push_subscriptions WHERE id = ? RETURNING id", [subscription_id]
        )
        return bool(deleted)

    async def get_all(self) -> List[PushSubscriptionRecord]:
        return await self._db.run(self._get_all)

    async def get_by_id(self, entity_id: str) -> Optional[PushSubscriptionRecord]:
        return await self._db.run(self._get_by_id, entity_id)

    async def get_by_username(self, username: str) -> Optional[PushSubscriptionRecord]:
        return await self._db.run(self._get_by_username, username)

    async def add(self, entity: PushSubscriptionRecord) -> PushSubscriptionRecord:
        subscription = await self._db.run(self._add, entity)
        logger.info("[Push] Stored subscription for %s", subscription.username)
        return subscription

    async def update(self, entity: PushSubscriptionRecord) -> PushSubscriptionRecord:
        return await self._db.run(self._update, entity)

    async def delete(self, entity_id: str) -> bool:
        deleted = await self._db.run(self._delete, entity_id)
        if deleted:
            logger.info("[Push] Removed subscription %s", entity_id)
        return deleted
