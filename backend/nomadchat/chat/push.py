"""Browser push delivery for users who are not connected.

``PushNotifier.notify()`` is fire-and-forget: it schedules delivery on the
running loop and returns immediately, so a slow or failing push service
never delays the in-app delivery that already happened. Failures are
logged; subscriptions the push service reports as gone (404/410) are
removed.
"""
import asyncio
import json
import logging
from typing import Optional, Set

from pywebpush import WebPushException, webpush

from nomadchat.storage.subscriptions import PushSubscriptionService

from .schemas import PushPayload, PushSubscriptionRecord

logger = logging.getLogger(__name__)

_EXPIRED_STATUS_CODES = (404, 410)


class PushNotifier:
    """Sends VAPID-signed Web Push messages with ``pywebpush``."""

    def __init__(
        self,
        subscriptions: PushSubscriptionService,
        vapid_private_key: Optional[str],
        subject: str,
        ttl_seconds: int = 86400,
        enabled: bool = True,
    ) -> None:
        self._subscriptions = subscriptions
        self._vapid_private_key = vapid_private_key
        self._claims_subject = subject
        self._ttl = ttl_seconds
        self._enabled = enabled
        self._pending: Set[asyncio.Task] = set()

    @property
    def configured(self) -> bool:
        return self._enabled and bool(self._vapid_private_key)

    def notify(self, subscription: PushSubscriptionRecord, payload: PushPayload) -> None:
        """Schedule delivery of ``payload`` and return without waiting."""
        if not self.configured:
            logger.info("[Push] VAPID keys not configured, skipping notification for %s",
                        subscription.username)
            return
        task = asyncio.get_event_loop().create_task(self.send(subscription, payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def send(self, subscription: PushSubscriptionRecord, payload: PushPayload) -> bool:
        """Deliver one push message.

        Returns:
            True if the push service accepted the message.
        """
        data = json.dumps(payload.model_dump())
        try:
            await asyncio.get_event_loop().run_in_executor(
                None,
                lambda: webpush(
                    subscription_info=subscription.subscription_info(),
                    data=data,
                    vapid_private_key=self._vapid_private_key,
                    vapid_claims={"sub": self._claims_subject},
                    ttl=self._ttl,
                ),
            )
        except WebPushException as exc:
            status = exc.response.status_code if exc.response is not None else None
            if status in _EXPIRED_STATUS_CODES:
                logger.info("[Push] Subscription of %s expired (%s), removing",
                            subscription.username, status)
                await self._subscriptions.delete(subscription.id)
            else:
                logger.warning("[Push] Delivery to %s failed: %s", subscription.username, exc)
            return False
        except Exception as exc:
            logger.error("[Push] Unexpected delivery error for %s: %s", subscription.username, exc)
            return False
        logger.info("[Push] Delivered notification to %s", subscription.username)
        return True

    async def drain(self) -> None:
        """Wait for scheduled deliveries (used on shutdown)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
