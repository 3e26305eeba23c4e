# app/services/friend_request_session.py

import logging
from typing import Any, Awaitable, Callable, List, Optional, Set, Tuple
from redis.asyncio import Redis
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from models.friend_request import FriendRequest
from schemas.friend_request_schema import (
    ErrorKind,
    FriendRequestsSnapshot,
    MutationError,
    MutationResult,
    RelationshipRecord,
    RelationshipStatus
)
from exceptions.domain_exceptions import DomainException
from services.change_feed import ChangeFeedSubscription, TRANSPORT_ERRORS
from services.friend_request_cache import FriendRequestCache, ProfileLookup
from services.friend_request_service import FriendRequestService
from services import status_resolver

logger = logging.getLogger(__name__)


TRANSIENT_ERRORS = (OperationalError, InterfaceError) + TRANSPORT_ERRORS


class FriendRequestSession:
    """
    Relationship view and mutation API for one authenticated identity.

    Owns a FriendRequestCache and the change feed subscription that keeps it
    fresh. Mutations never raise: failures come back as a typed MutationResult.
    Create one per identity and per consumer, and close it on logout/disconnect.
    """

    def __init__(
        self,
        identity_id: Optional[str],
        session_factory: async_sessionmaker[AsyncSession],
        redis: Optional[Redis] = None,
        on_update: Optional[Callable[[FriendRequestsSnapshot], Awaitable[Any]]] = None,
        profile_lookup: Optional[ProfileLookup] = None,
        **subscription_options
    ):
        self.identity_id = identity_id
        self.session_factory = session_factory
        self.redis = redis
        self.on_update = on_update
        self.closed = False
        self._in_flight: Set[Tuple[str, str]] = set()

        self.cache: Optional[FriendRequestCache] = None
        self.subscription: Optional[ChangeFeedSubscription] = None

        if identity_id:
            self.cache = FriendRequestCache(
                identity_id,
                session_factory,
                profile_lookup=profile_lookup,
                on_refresh=self._handle_refresh,
            )
            if redis is not None:
                self.subscription = ChangeFeedSubscription(
                    redis,
                    FriendRequest.__tablename__,
                    on_change=self.refetch,
                    **subscription_options
                )

    async def __aenter__(self) -> "FriendRequestSession":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def open(self):
        """Start the change feed subscription; it takes the baseline refresh once subscribed"""
        if self.cache is None:
            return
        if self.subscription is not None:
            self.subscription.start()
        else:
            await self.refetch()

    async def close(self):
        """Tear down: discard in-flight results and release the subscription"""
        if self.closed:
            return
        self.closed = True
        if self.cache is not None:
            self.cache.deactivate()
        if self.subscription is not None:
            await self.subscription.stop()
        logger.info(f"Friend request session for {self.identity_id} closed")

    # Queries

    @property
    def records(self) -> Tuple[RelationshipRecord, ...]:
        return self.cache.records if self.cache is not None else ()

    @property
    def loaded(self) -> bool:
        return self.cache.loaded if self.cache is not None else False

    @property
    def pending_received(self) -> List[RelationshipRecord]:
        if self.identity_id is None:
            return []
        return status_resolver.pending_received(self.records, self.identity_id)

    @property
    def friends(self) -> List[str]:
        if self.identity_id is None:
            return []
        return status_resolver.friend_ids(self.records, self.identity_id)

    def get_status(self, target_id: str) -> RelationshipStatus:
        if self.identity_id is None:
            return RelationshipStatus.NONE
        return status_resolver.resolve_status(self.records, self.identity_id, target_id)

    def get_record_for(self, target_id: str) -> Optional[RelationshipRecord]:
        if self.identity_id is None:
            return None
        return status_resolver.find_record_for(self.records, self.identity_id, target_id)

    def is_busy(self, key: str) -> bool:
        """Whether a mutation on a target or record id is still in flight"""
        return any(in_flight_key == key for _, in_flight_key in self._in_flight)

    def snapshot(self) -> FriendRequestsSnapshot:
        return FriendRequestsSnapshot(
            records=list(self.records),
            friends=self.friends,
            pending_received=self.pending_received,
            loaded=self.loaded,
        )

    async def refetch(self) -> bool:
        if self.cache is None or self.closed:
            return False
        return await self.cache.refresh()

    # Mutations

    async def send_request(self, target_id: str) -> MutationResult:
        return await self._mutate(
            ("send", target_id),
            lambda session: FriendRequestService.send_request(
                session, self.identity_id, target_id, redis=self.redis
            )
        )

    async def accept_request(self, record_id: str) -> MutationResult:
        return await self._mutate(
            ("respond", record_id),
            lambda session: FriendRequestService.accept_request(
                session, record_id, self.identity_id, redis=self.redis
            )
        )

    async def reject_request(self, record_id: str) -> MutationResult:
        return await self._mutate(
            ("respond", record_id),
            lambda session: FriendRequestService.reject_request(
                session, record_id, self.identity_id, redis=self.redis
            )
        )

    async def cancel_request(self, record_id: str) -> MutationResult:
        return await self._mutate(
            ("cancel", record_id),
            lambda session: FriendRequestService.cancel_request(
                session, record_id, self.identity_id, redis=self.redis
            )
        )

    async def _mutate(
        self,
        key: Tuple[str, str],
        operation: Callable[[AsyncSession], Awaitable[Optional[RelationshipRecord]]]
    ) -> MutationResult:
        if self.identity_id is None or self.closed:
            return self._failure(ErrorKind.UNAUTHENTICATED, "Not authenticated")

        if key in self._in_flight:
            return self._failure(
                ErrorKind.CONFLICT,
                "A request for this target is already in progress",
                {"operation": key[0], "key": key[1]}
            )

        self._in_flight.add(key)
        try:
            async with self.session_factory() as session:
                record = await operation(session)
        except DomainException as e:
            return self._failure(e.kind, e.message, e.details)
        except TRANSIENT_ERRORS as e:
            logger.warning(f"Transient failure during {key[0]} for {self.identity_id}: {e}")
            return self._failure(ErrorKind.TRANSIENT, "Temporary failure, please retry")
        except StaleDataError as e:
            logger.warning(f"Concurrent change during {key[0]} for {self.identity_id}: {e}")
            return self._failure(
                ErrorKind.CONFLICT,
                "Friend request was changed by someone else, please refresh",
                {"operation": key[0], "key": key[1]}
            )
        finally:
            self._in_flight.discard(key)

        # Torn down while the write was in flight; leave the cache alone
        if not self.closed:
            await self.refetch()
        return MutationResult(record=record)

    @staticmethod
    def _failure(kind: ErrorKind, message: str, details: Optional[dict] = None) -> MutationResult:
        return MutationResult(error=MutationError(kind=kind, message=message, details=details or {}))

    async def _handle_refresh(self, cache: FriendRequestCache):
        if self.on_update is not None and not self.closed:
            await self.on_update(self.snapshot())
