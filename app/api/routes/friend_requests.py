# app/api/routes/friend_requests.py

from fastapi import APIRouter, Depends, status
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from schemas.friend_request_schema import (
    FriendRequestCreate,
    FriendRequestsSnapshot,
    RelationshipRecord,
    RelationshipStatusResponse
)
from services.friend_request_service import FriendRequestService
from services.friend_request_session import FriendRequestSession
from exceptions.domain_exceptions import TransientException
from infrastructure.postgres_connection import get_db_session, get_session_factory
from infrastructure.redis_connection import get_redis
from api.routes.auth import current_identity


# Create router
friend_requests_router = APIRouter(prefix="/friend-requests", tags=["Friend Requests"])


async def _load_view(identity_id: str, session_factory: async_sessionmaker[AsyncSession]) -> FriendRequestSession:
    view = FriendRequestSession(identity_id, session_factory)
    if not await view.refetch():
        raise TransientException(message="Friend requests are temporarily unavailable")
    return view


@friend_requests_router.get("", response_model=FriendRequestsSnapshot)
async def list_friend_requests(
    identity_id: str = Depends(current_identity),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    """
    Get every friend request involving the current user.

    Returns all records (with participant profiles), the derived friend list
    and the pending requests awaiting the current user's decision, newest first.
    """
    view = await _load_view(identity_id, session_factory)
    return view.snapshot()


@friend_requests_router.get("/status/{target_id}", response_model=RelationshipStatusResponse)
async def get_relationship_status(
    target_id: str,
    identity_id: str = Depends(current_identity),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    """
    Get the current user's relationship status toward another user.

    - **target_id**: The other user

    Status is one of `none`, `pending_sent`, `pending_received`, `accepted`, `rejected`.
    """
    view = await _load_view(identity_id, session_factory)
    return RelationshipStatusResponse(
        target_id=target_id,
        status=view.get_status(target_id),
        record=view.get_record_for(target_id)
    )


@friend_requests_router.post("", response_model=RelationshipRecord, status_code=status.HTTP_201_CREATED)
async def send_friend_request(
    request_data: FriendRequestCreate,
    identity_id: str = Depends(current_identity),
    session: AsyncSession = Depends(get_db_session),
    redis: Redis = Depends(get_redis),
):
    """
    Send a friend request to another user.

    - **target_id**: User the request is sent to

    Returns the created record with status 'pending'.
    """
    return await FriendRequestService.send_request(
        session=session,
        requester_id=identity_id,
        target_id=request_data.target_id,
        redis=redis
    )


@friend_requests_router.post("/{request_id}/accept", response_model=RelationshipRecord)
async def accept_friend_request(
    request_id: str,
    identity_id: str = Depends(current_identity),
    session: AsyncSession = Depends(get_db_session),
    redis: Redis = Depends(get_redis),
):
    """
    Accept a pending friend request.

    Only the receiver of the friend request can accept it.
    """
    return await FriendRequestService.accept_request(
        session=session,
        record_id=request_id,
        actor_id=identity_id,
        redis=redis
    )


@friend_requests_router.post("/{request_id}/reject", response_model=RelationshipRecord)
async def reject_friend_request(
    request_id: str,
    identity_id: str = Depends(current_identity),
    session: AsyncSession = Depends(get_db_session),
    redis: Redis = Depends(get_redis),
):
    """
    Reject a pending friend request.

    Only the receiver of the friend request can reject it.
    """
    return await FriendRequestService.reject_request(
        session=session,
        record_id=request_id,
        actor_id=identity_id,
        redis=redis
    )


@friend_requests_router.delete("/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_friend_request(
    request_id: str,
    identity_id: str = Depends(current_identity),
    session: AsyncSession = Depends(get_db_session),
    redis: Redis = Depends(get_redis),
):
    """
    Cancel a pending friend request.

    Only the sender of the friend request can cancel it.
    """
    await FriendRequestService.cancel_request(
        session=session,
        record_id=request_id,
        actor_id=identity_id,
        redis=redis
    )
