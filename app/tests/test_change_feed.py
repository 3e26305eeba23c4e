# app/tests/test_change_feed.py

import asyncio
import json
import pytest
from unittest.mock import AsyncMock
from redis.exceptions import ConnectionError as RedisConnectionError, ResponseError
from services.change_feed import (
    ChangeEvent,
    ChangeFeed,
    ChangeFeedSubscription,
    SubscriptionState
)


TABLE = "friend_requests"


class FlakyPubSub:
    """Pub/sub double whose subscribe or first read can fail like a dropped connection"""

    def __init__(self, fail_subscribe: bool = False, fail_first_read: bool = False, read_error: Exception = None):
        self.fail_subscribe = fail_subscribe
        self.fail_first_read = fail_first_read
        self.read_error = read_error
        self.channels = []
        self.unsubscribed = False
        self.closed = False

    async def subscribe(self, channel):
        if self.fail_subscribe:
            raise RedisConnectionError("Connection refused")
        self.channels.append(channel)

    async def get_message(self, ignore_subscribe_messages=False, timeout=None):
        if self.fail_first_read:
            self.fail_first_read = False
            raise self.read_error or RedisConnectionError("Connection reset by peer")
        await asyncio.sleep(timeout or 0)
        return None

    async def unsubscribe(self):
        self.unsubscribed = True

    async def aclose(self):
        self.closed = True


class FakeTransport:
    """Hands out a fresh pub/sub double per connection attempt"""

    def __init__(self, *pubsubs: FlakyPubSub):
        self.pending = list(pubsubs)
        self.created = []

    def pubsub(self):
        pubsub = self.pending.pop(0) if self.pending else FlakyPubSub()
        self.created.append(pubsub)
        return pubsub


def make_subscription(redis, on_change, states=None):
    return ChangeFeedSubscription(
        redis,
        TABLE,
        on_change=on_change,
        on_state_change=states.append if states is not None else None,
        poll_interval=0.01,
        reconnect_base_delay=0.01,
        reconnect_max_delay=0.05,
    )


@pytest.mark.asyncio
class TestChangeFeedPublish:

    async def test_channel_name(self):
        assert ChangeFeed.channel_for(TABLE) == "table_changes:friend_requests"

    async def test_publish_payload(self, redis_client):
        pubsub = redis_client.pubsub()
        await pubsub.subscribe(ChangeFeed.channel_for(TABLE))
        await pubsub.get_message(timeout=0.1)

        receivers = await ChangeFeed.publish(redis_client, TABLE, ChangeEvent.UPDATE, "r1")

        message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=0.5)
        payload = json.loads(message["data"])
        assert receivers == 1
        assert payload["table"] == TABLE
        assert payload["event"] == "UPDATE"
        assert payload["id"] == "r1"

        await pubsub.unsubscribe()
        await pubsub.aclose()


@pytest.mark.asyncio
class TestSubscriptionLifecycle:

    async def test_initial_state(self, redis_client):
        subscription = make_subscription(redis_client, AsyncMock())

        assert subscription.state == SubscriptionState.DISCONNECTED
        assert subscription.is_running is False
        assert subscription.pubsub is None

    async def test_baseline_refresh_on_subscribe(self, redis_client, wait_for):
        on_change = AsyncMock()
        subscription = make_subscription(redis_client, on_change)

        subscription.start()
        assert subscription.state == SubscriptionState.CONNECTING

        assert await wait_for(lambda: subscription.state == SubscriptionState.SUBSCRIBED)
        assert await wait_for(lambda: on_change.await_count == 1)

        await subscription.stop()

    async def test_every_notification_triggers_change(self, redis_client, wait_for):
        on_change = AsyncMock()
        subscription = make_subscription(redis_client, on_change)
        subscription.start()
        assert await wait_for(lambda: on_change.await_count == 1)

        await ChangeFeed.publish(redis_client, TABLE, ChangeEvent.INSERT, "r1")
        await ChangeFeed.publish(redis_client, TABLE, ChangeEvent.DELETE, "r2")

        assert await wait_for(lambda: on_change.await_count == 3)
        await subscription.stop()

    async def test_other_tables_are_not_delivered(self, redis_client, wait_for):
        on_change = AsyncMock()
        subscription = make_subscription(redis_client, on_change)
        subscription.start()
        assert await wait_for(lambda: on_change.await_count == 1)

        await ChangeFeed.publish(redis_client, "profiles", ChangeEvent.UPDATE, "p1")
        await asyncio.sleep(0.1)

        assert on_change.await_count == 1
        await subscription.stop()

    async def test_stop_releases_subscription(self, redis_client, wait_for):
        states = []
        subscription = make_subscription(redis_client, AsyncMock(), states)
        subscription.start()
        assert await wait_for(lambda: subscription.state == SubscriptionState.SUBSCRIBED)

        await subscription.stop()

        assert subscription.state == SubscriptionState.DISCONNECTED
        assert subscription.pubsub is None
        assert subscription.is_running is False
        assert states == [
            SubscriptionState.CONNECTING,
            SubscriptionState.SUBSCRIBED,
            SubscriptionState.DISCONNECTED,
        ]
        numsub = dict(await redis_client.pubsub_numsub(ChangeFeed.channel_for(TABLE)))
        assert numsub[ChangeFeed.channel_for(TABLE)] == 0

    async def test_stop_is_idempotent(self, redis_client):
        subscription = make_subscription(redis_client, AsyncMock())

        await subscription.stop()
        await subscription.stop()

        assert subscription.state == SubscriptionState.DISCONNECTED

    async def test_start_twice_keeps_single_listener(self, redis_client):
        subscription = make_subscription(redis_client, AsyncMock())
        subscription.start()
        task = subscription._task

        subscription.start()

        assert subscription._task is task
        await subscription.stop()

    async def test_failing_handler_keeps_subscription(self, redis_client, wait_for):
        on_change = AsyncMock(side_effect=RuntimeError("boom"))
        subscription = make_subscription(redis_client, on_change)
        subscription.start()
        assert await wait_for(lambda: on_change.await_count == 1)

        await ChangeFeed.publish(redis_client, TABLE, ChangeEvent.INSERT, "r1")

        assert await wait_for(lambda: on_change.await_count == 2)
        assert subscription.state == SubscriptionState.SUBSCRIBED
        await subscription.stop()

    async def test_illegal_transition_raises(self, redis_client):
        subscription = make_subscription(redis_client, AsyncMock())

        with pytest.raises(RuntimeError):
            subscription._set_state(SubscriptionState.SUBSCRIBED)


@pytest.mark.asyncio
class TestSubscriptionReconnect:

    async def test_reconnects_after_transport_failure(self, wait_for):
        first = FlakyPubSub(fail_first_read=True)
        second = FlakyPubSub()
        transport = FakeTransport(first, second)
        states = []
        on_change = AsyncMock()
        subscription = make_subscription(transport, on_change, states)

        subscription.start()

        assert await wait_for(lambda: len(transport.created) == 2 and subscription.state == SubscriptionState.SUBSCRIBED)
        # Baseline again after the gap
        assert await wait_for(lambda: on_change.await_count == 2)
        assert states[:4] == [
            SubscriptionState.CONNECTING,
            SubscriptionState.SUBSCRIBED,
            SubscriptionState.RECONNECTING,
            SubscriptionState.SUBSCRIBED,
        ]
        assert first.closed is True
        assert subscription.reconnect_attempts == 1

        await subscription.stop()
        assert second.unsubscribed is True
        assert second.closed is True

    async def test_retries_when_initial_connect_fails(self, wait_for):
        transport = FakeTransport(
            FlakyPubSub(fail_subscribe=True),
            FlakyPubSub(fail_subscribe=True),
            FlakyPubSub(),
        )
        on_change = AsyncMock()
        subscription = make_subscription(transport, on_change)

        subscription.start()

        assert await wait_for(lambda: subscription.state == SubscriptionState.SUBSCRIBED)
        assert subscription.reconnect_attempts == 2
        assert on_change.await_count >= 1
        await subscription.stop()

    async def test_stop_while_reconnecting(self, wait_for):
        transport = FakeTransport(*[FlakyPubSub(fail_subscribe=True) for _ in range(50)])
        subscription = make_subscription(transport, AsyncMock())
        subscription.reconnect_base_delay = 0.2

        subscription.start()
        assert await wait_for(lambda: subscription.state == SubscriptionState.RECONNECTING)

        await subscription.stop()

        assert subscription.state == SubscriptionState.DISCONNECTED
        assert subscription.is_running is False

    async def test_recovers_from_unexpected_server_error(self, wait_for):
        first = FlakyPubSub(fail_first_read=True, read_error=ResponseError("boom"))
        second = FlakyPubSub()
        transport = FakeTransport(first, second)
        on_change = AsyncMock()
        subscription = make_subscription(transport, on_change)

        subscription.start()

        assert await wait_for(lambda: len(transport.created) == 2 and subscription.state == SubscriptionState.SUBSCRIBED)
        assert await wait_for(lambda: on_change.await_count == 2)
        assert subscription.is_running is True
        assert first.closed is True

        await subscription.stop()
        assert subscription.state == SubscriptionState.DISCONNECTED

    async def test_stop_after_listener_died(self, redis_client):
        subscription = make_subscription(redis_client, AsyncMock())

        async def crash():
            raise RuntimeError("listener crashed")

        subscription._set_state(SubscriptionState.CONNECTING)
        subscription._task = asyncio.create_task(crash())
        await asyncio.sleep(0.01)
        assert subscription.is_running is False

        await subscription.stop()

        assert subscription.state == SubscriptionState.DISCONNECTED
        assert subscription._task is None
