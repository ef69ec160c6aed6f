"""Tests for the offline push notifier (pywebpush is mocked)."""
import json
from unittest.mock import MagicMock, patch

import pytest
import pytest_asyncio
from pywebpush import WebPushException

from nomadchat.chat.push import PushNotifier
from nomadchat.chat.schemas import PushPayload, PushSubscriptionRecord
from nomadchat.storage import PushSubscriptionService


@pytest.fixture
def subscriptions(db):
    return PushSubscriptionService(db)


@pytest_asyncio.fixture
async def subscription(subscriptions):
    return await subscriptions.add(PushSubscriptionRecord(
        username="bob", endpoint="https://push.example.com/1", p256dh="key", auth="secret"
    ))


def make_notifier(subscriptions, **overrides):
    options = dict(
        vapid_private_key="private-key",
        subject="mailto:admin@example.com",
        ttl_seconds=60,
        enabled=True,
    )
    options.update(overrides)
    return PushNotifier(subscriptions, **options)


PAYLOAD = PushPayload(title="New message from alice", message="hi")


class TestPushNotifier:

    @pytest.mark.asyncio
    async def test_send_signs_with_vapid_details(self, subscriptions, subscription):
        notifier = make_notifier(subscriptions)
        with patch("nomadchat.chat.push.webpush") as webpush:
            assert await notifier.send(subscription, PAYLOAD) is True

        kwargs = webpush.call_args.kwargs
        assert kwargs["subscription_info"] == {
            "endpoint": "https://push.example.com/1",
            "keys": {"p256dh": "key", "auth": "secret"},
        }
        assert json.loads(kwargs["data"]) == {"title": "New message from alice", "message": "hi", "url": ""}
        assert kwargs["vapid_private_key"] == "private-key"
        assert kwargs["vapid_claims"] == {"sub": "mailto:admin@example.com"}
        assert kwargs["ttl"] == 60

    @pytest.mark.asyncio
    async def test_expired_subscription_is_removed(self, subscriptions, subscription):
        notifier = make_notifier(subscriptions)
        error = WebPushException("gone", response=MagicMock(status_code=410))
        with patch("nomadchat.chat.push.webpush", side_effect=error):
            assert await notifier.send(subscription, PAYLOAD) is False
        assert await subscriptions.get_by_username("bob") is None

    @pytest.mark.asyncio
    async def test_other_failures_keep_subscription(self, subscriptions, subscription):
        notifier = make_notifier(subscriptions)
        error = WebPushException("server error", response=MagicMock(status_code=500))
        with patch("nomadchat.chat.push.webpush", side_effect=error):
            assert await notifier.send(subscription, PAYLOAD) is False
        assert await subscriptions.get_by_username("bob") is not None

    @pytest.mark.asyncio
    async def test_notify_schedules_delivery(self, subscriptions, subscription):
        notifier = make_notifier(subscriptions)
        with patch("nomadchat.chat.push.webpush") as webpush:
            notifier.notify(subscription, PAYLOAD)
            await notifier.drain()
        assert webpush.call_count == 1

    @pytest.mark.asyncio
    async def test_notify_without_private_key_is_skipped(self, subscriptions, subscription):
        notifier = make_notifier(subscriptions, vapid_private_key=None)
        assert not notifier.configured
        with patch("nomadchat.chat.push.webpush") as webpush:
            notifier.notify(subscription, PAYLOAD)
            await notifier.drain()
        webpush.assert_not_called()

    @pytest.mark.asyncio
    async def test_disabled_notifier_is_skipped(self, subscriptions, subscription):
        notifier = make_notifier(subscriptions, enabled=False)
        with patch("nomadchat.chat.push.webpush") as webpush:
            notifier.notify(subscription, PAYLOAD)
            await notifier.drain()
        webpush.assert_not_called()
