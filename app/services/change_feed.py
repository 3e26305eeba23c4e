# app/services/change_feed.py

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Set
from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError, TimeoutError as RedisTimeoutError
from config.settings import settings
from schemas.friend_request_schema import ChangeNotification

logger = logging.getLogger(__name__)


TRANSPORT_ERRORS = (RedisConnectionError, RedisTimeoutError, OSError)


class ChangeEvent(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeFeed:
    """
    Redis pub/sub backed change feed.
    Every committed write to a table publishes one notification on the table channel.
    Subscribers must treat notifications as opaque "something changed" signals.
    """

    @staticmethod
    def channel_for(table: str) -> str:
        """Get the Redis channel name for a table"""
        return f"{settings.CHANGE_FEED_CHANNEL_PREFIX}:{table}"

    @staticmethod
    async def publish(
        redis: Redis,
        table: str,
        event: ChangeEvent,
        record_id: Optional[str] = None
    ) -> int:
        """
        Publish a change notification for a table

        Returns:
            Number of subscribers that received the notification
        """
        notification = ChangeNotification(table=table, event=event.value, id=record_id)
        receivers = await redis.publish(
            ChangeFeed.channel_for(table),
            notification.model_dump_json()
        )
        logger.debug(f"Published {event.value} on {table} ({record_id}) to {receivers} subscribers")
        return receivers


class SubscriptionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    RECONNECTING = "reconnecting"


ALLOWED_TRANSITIONS: Dict[SubscriptionState, Set[SubscriptionState]] = {
    SubscriptionState.DISCONNECTED: {SubscriptionState.CONNECTING},
    SubscriptionState.CONNECTING: {
        SubscriptionState.SUBSCRIBED,
        SubscriptionState.RECONNECTING,
        SubscriptionState.DISCONNECTED,
    },
    SubscriptionState.SUBSCRIBED: {
        SubscriptionState.RECONNECTING,
        SubscriptionState.DISCONNECTED,
    },
    SubscriptionState.RECONNECTING: {
        SubscriptionState.SUBSCRIBED,
        SubscriptionState.DISCONNECTED,
    },
}


class ChangeFeedSubscription:
    """
    Subscription to one table channel, modeled as a finite state machine.

    DISCONNECTED -> CONNECTING -> SUBSCRIBED -> DISCONNECTED (stop)
    SUBSCRIBED -> RECONNECTING -> SUBSCRIBED (transport failure)

    `on_change` runs once on every entry into SUBSCRIBED (baseline, since
    notifications sent while disconnected are lost) and once per notification.
    """

    def __init__(
        self,
        redis: Redis,
        table: str,
        on_change: Callable[[], Awaitable[Any]],
        on_state_change: Optional[Callable[[SubscriptionState], Any]] = None,
        poll_interval: Optional[float] = None,
        reconnect_base_delay: Optional[float] = None,
        reconnect_max_delay: Optional[float] = None,
    ):
        self.redis = redis
        self.table = table
        self.channel = ChangeFeed.channel_for(table)
        self.on_change = on_change
        self.on_state_change = on_state_change
        self.poll_interval = poll_interval if poll_interval is not None else settings.CHANGE_FEED_POLL_INTERVAL
        self.reconnect_base_delay = (
            reconnect_base_delay if reconnect_base_delay is not None
            else settings.CHANGE_FEED_RECONNECT_BASE_DELAY
        )
        self.reconnect_max_delay = (
            reconnect_max_delay if reconnect_max_delay is not None
            else settings.CHANGE_FEED_RECONNECT_MAX_DELAY
        )
        self.state = SubscriptionState.DISCONNECTED
        self.reconnect_attempts = 0
        self.pubsub = None
        self._task: Optional[asyncio.Task] = None
        self._stopping = False

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _set_state(self, new_state: SubscriptionState):
        if new_state == self.state:
            return
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal subscription transition {self.state.value} -> {new_state.value}")

        logger.debug(f"Subscription to {self.channel}: {self.state.value} -> {new_state.value}")
        self.state = new_state
        if self.on_state_change:
            try:
                self.on_state_change(new_state)
            except Exception:
                logger.exception('Error in on_state_change hook')

    def start(self):
        """Start listening on the table channel"""
        if self.is_running:
            logger.warning(f"Subscription to {self.channel} is already running")
            return

        self._stopping = False
        self._set_state(SubscriptionState.CONNECTING)
        self._task = asyncio.create_task(self._run())

    async def stop(self):
        """Unsubscribe, release the pub/sub connection and return to DISCONNECTED"""
        self._stopping = True
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        elif task is not None and not task.cancelled() and task.exception() is not None:
            logger.error(f"Listener for {self.channel} had already failed: {task.exception()!r}")

        await self._close_pubsub()
        self._set_state(SubscriptionState.DISCONNECTED)
        logger.info(f"Subscription to {self.channel} stopped")

    async def _run(self):
        delay = self.reconnect_base_delay

        while not self._stopping:
            try:
                self.pubsub = self.redis.pubsub()
                await self.pubsub.subscribe(self.channel)
                self._set_state(SubscriptionState.SUBSCRIBED)
                delay = self.reconnect_base_delay
                logger.info(f"Subscribed to {self.channel}")

                # Subscribe first, then take the baseline, so nothing falls in between
                await self._dispatch()
                await self._listen()
            except TRANSPORT_ERRORS as e:
                logger.warning(f"Change feed transport error on {self.channel}: {e}")
            except Exception:
                logger.exception(f"Unexpected error on change feed {self.channel}")

            await self._close_pubsub()
            if self._stopping:
                break

            self._set_state(SubscriptionState.RECONNECTING)
            self.reconnect_attempts += 1
            logger.info(f"Reconnecting to {self.channel} in {delay:.2f}s (attempt {self.reconnect_attempts})")
            await asyncio.sleep(delay)
            delay = min(delay * 2, self.reconnect_max_delay)

    async def _listen(self):
        while not self._stopping:
            message = await self.pubsub.get_message(
                ignore_subscribe_messages=True,
                timeout=self.poll_interval
            )
            if message is None:
                continue
            if message.get("type") == "message":
                await self._dispatch()

    async def _dispatch(self):
        try:
            await self.on_change()
        except Exception:
            logger.exception(f"Error handling change notification on {self.channel}")

    async def _close_pubsub(self):
        pubsub, self.pubsub = self.pubsub, None
        if pubsub is None:
            return
        try:
            await pubsub.unsubscribe()
            await pubsub.aclose()
        except Exception as e:
            logger.debug(f"Ignoring error while closing pub/sub on {self.channel}: {e}")
