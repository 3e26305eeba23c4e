# app/services/friend_request_service.py

import logging
from typing import List, Optional
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from sqlalchemy import select, update, delete, or_
from models.friend_request import FriendRequest, canonical_pair_key
from schemas.friend_request_schema import RelationshipRecord, RequestStatus, ACTIVE_STATUSES
from services.change_feed import ChangeFeed, ChangeEvent
from exceptions.domain_exceptions import (
    InvalidArgumentException,
    ForbiddenException,
    NotFoundException,
    InvalidStateException,
    ConflictException
)

logger = logging.getLogger(__name__)


class FriendRequestService:
    """Service for managing the friend request lifecycle"""

    TABLE = FriendRequest.__tablename__

    @staticmethod
    async def send_request(
        session: AsyncSession,
        requester_id: str,
        target_id: str,
        redis: Optional[Redis] = None
    ) -> RelationshipRecord:
        """
        Send a friend request from requester to target

        Args:
            session: Database session
            requester_id: Identity sending the request
            target_id: Identity receiving the request
            redis: Redis client used to publish the change notification

        Returns:
            The created pending record

        Raises:
            InvalidArgumentException: If an id is blank or both ids are the same
            ConflictException: If a pending or accepted record already exists for the pair
        """
        FriendRequestService._require_id(requester_id, "requester_id")
        FriendRequestService._require_id(target_id, "target_id")

        if requester_id == target_id:
            raise InvalidArgumentException(
                message="Cannot send friend request to yourself"
            )

        pair_key = canonical_pair_key(requester_id, target_id)

        # Fast path; the unique index below is what actually settles races
        existing_query = select(FriendRequest).where(
            FriendRequest.pair_key == pair_key,
            FriendRequest.status.in_([status.value for status in ACTIVE_STATUSES])
        )
        result = await session.execute(existing_query)
        existing = result.scalars().first()

        if existing:
            if existing.status == RequestStatus.PENDING.value:
                raise ConflictException(
                    message="Friend request already pending",
                    details={"request_id": existing.id}
                )
            raise ConflictException(
                message="Users are already friends",
                details={"request_id": existing.id}
            )

        friend_request = FriendRequest(
            sender_id=requester_id,
            receiver_id=target_id,
            pair_key=pair_key,
            status=RequestStatus.PENDING.value
        )
        session.add(friend_request)

        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            logger.info(f"Concurrent friend request detected for pair {pair_key}")
            raise ConflictException(
                message="Friend request already pending",
                details={"sender_id": requester_id, "receiver_id": target_id}
            )

        await session.refresh(friend_request)
        logger.info(f"Friend request {friend_request.id} sent from {requester_id} to {target_id}")

        await FriendRequestService._notify(redis, ChangeEvent.INSERT, friend_request.id)
        return RelationshipRecord.from_row(friend_request)

    @staticmethod
    async def accept_request(
        session: AsyncSession,
        record_id: str,
        actor_id: str,
        redis: Optional[Redis] = None
    ) -> RelationshipRecord:
        """
        Accept a pending friend request. Only the receiver may accept.

        Raises:
            NotFoundException: If the request doesn't exist
            ForbiddenException: If actor is not the receiver
            InvalidStateException: If the request is not pending
        """
        return await FriendRequestService._respond(
            session, record_id, actor_id, RequestStatus.ACCEPTED, redis
        )

    @staticmethod
    async def reject_request(
        session: AsyncSession,
        record_id: str,
        actor_id: str,
        redis: Optional[Redis] = None
    ) -> RelationshipRecord:
        """
        Reject a pending friend request. Only the receiver may reject.

        Raises:
            NotFoundException: If the request doesn't exist
            ForbiddenException: If actor is not the receiver
            InvalidStateException: If the request is not pending
        """
        return await FriendRequestService._respond(
            session, record_id, actor_id, RequestStatus.REJECTED, redis
        )

    @staticmethod
    async def cancel_request(
        session: AsyncSession,
        record_id: str,
        actor_id: str,
        redis: Optional[Redis] = None
    ) -> None:
        """
        Withdraw a pending friend request. Only the sender may cancel.

        Raises:
            NotFoundException: If the request doesn't exist
            ForbiddenException: If actor is not the sender
            InvalidStateException: If the request is not pending
        """
        friend_request = await FriendRequestService._get_request(session, record_id)

        if friend_request.sender_id != actor_id:
            raise ForbiddenException(
                message="Only the sender can cancel a friend request",
                details={"request_id": record_id}
            )

        if friend_request.status != RequestStatus.PENDING.value:
            raise InvalidStateException(
                message="Friend request is not pending",
                details={"current_status": friend_request.status, "request_id": record_id}
            )

        # Only a row that is still pending may go; a concurrent accept/reject wins
        result = await session.execute(
            delete(FriendRequest)
            .where(
                FriendRequest.id == record_id,
                FriendRequest.status == RequestStatus.PENDING.value
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await FriendRequestService._raise_changed(session, record_id)

        session.expunge(friend_request)
        await session.commit()
        logger.info(f"Friend request {record_id} cancelled by {actor_id}")

        await FriendRequestService._notify(redis, ChangeEvent.DELETE, record_id)

    @staticmethod
    async def list_for_identity(
        session: AsyncSession,
        identity_id: str
    ) -> List[FriendRequest]:
        """Get all friend request rows where the identity is either participant"""
        query = select(FriendRequest).where(
            or_(
                FriendRequest.sender_id == identity_id,
                FriendRequest.receiver_id == identity_id
            )
        ).order_by(FriendRequest.created_at)

        result = await session.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def _respond(
        session: AsyncSession,
        record_id: str,
        actor_id: str,
        new_status: RequestStatus,
        redis: Optional[Redis]
    ) -> RelationshipRecord:
        friend_request = await FriendRequestService._get_request(session, record_id)

        if friend_request.receiver_id != actor_id:
            raise ForbiddenException(
                message="Only the receiver can respond to a friend request",
                details={"request_id": record_id}
            )

        if friend_request.status != RequestStatus.PENDING.value:
            raise InvalidStateException(
                message="Friend request is not pending",
                details={"current_status": friend_request.status, "request_id": record_id}
            )

        result = await session.execute(
            update(FriendRequest)
            .where(
                FriendRequest.id == record_id,
                FriendRequest.status == RequestStatus.PENDING.value
            )
            .values(status=new_status.value)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await FriendRequestService._raise_changed(session, record_id)

        await session.commit()
        await session.refresh(friend_request)
        logger.info(f"Friend request {record_id} {new_status.value} by {actor_id}")

        await FriendRequestService._notify(redis, ChangeEvent.UPDATE, record_id)
        return RelationshipRecord.from_row(friend_request)

    @staticmethod
    async def _get_request(session: AsyncSession, record_id: str) -> FriendRequest:
        FriendRequestService._require_id(record_id, "request_id")

        result = await session.execute(
            select(FriendRequest).where(FriendRequest.id == record_id)
            .execution_options(populate_existing=True)
        )
        friend_request = result.scalar_one_or_none()

        if not friend_request:
            raise NotFoundException(
                message="Friend request not found",
                details={"request_id": record_id}
            )
        return friend_request

    @staticmethod
    async def _raise_changed(session: AsyncSession, record_id: str):
        """The row left `pending` between our read and our write; report what it is now"""
        await session.rollback()
        friend_request = await FriendRequestService._get_request(session, record_id)
        logger.info(f"Friend request {record_id} changed concurrently to {friend_request.status}")
        raise InvalidStateException(
            message="Friend request is not pending",
            details={"current_status": friend_request.status, "request_id": record_id}
        )

    @staticmethod
    def _require_id(value: Optional[str], field: str):
        if not isinstance(value, str) or not value.strip():
            raise InvalidArgumentException(
                message=f"Invalid {field}",
                details={field: value}
            )

    @staticmethod
    async def _notify(redis: Optional[Redis], event: ChangeEvent, record_id: str):
        """Publish a change notification; the write is already committed so failures are only logged"""
        if redis is None:
            return
        try:
            await ChangeFeed.publish(redis, FriendRequestService.TABLE, event, record_id)
        except Exception as e:
            logger.error(f"Error publishing {event.value} for friend request {record_id}: {e}")
