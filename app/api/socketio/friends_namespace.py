# app/api/socketio/friends_namespace.py

from typing import Dict
from infrastructure.socketio_manager import sio, AuthNamespace
from infrastructure.postgres_connection import get_session_factory
from infrastructure.redis_connection import get_redis
from schemas.friend_request_schema import FriendRequestsSnapshot, MutationResult
from services.friend_request_session import FriendRequestSession
import logging

logger = logging.getLogger(__name__)


class FriendsNamespace(AuthNamespace):
    """Socket.IO namespace pushing live friend request state to each connected client"""

    def __init__(self, namespace=None):
        super().__init__(namespace)
        # One relationship session per connected sid
        self.sessions: Dict[str, FriendRequestSession] = {}

    async def handle_connect(self, sid, environ, identity_id: str):
        async def push_snapshot(snapshot: FriendRequestsSnapshot):
            await self.emit('friend_requests_updated', snapshot.model_dump(mode='json'), room=sid)

        session = FriendRequestSession(
            identity_id,
            get_session_factory(),
            redis=get_redis(),
            on_update=push_snapshot,
        )
        self.sessions[sid] = session
        await session.open()
        logger.info(f"Friend request session opened for {identity_id} ({sid})")

    async def handle_disconnect(self, sid):
        session = self.sessions.pop(sid, None)
        if session is not None:
            await session.close()

    def _session_for(self, sid) -> FriendRequestSession | None:
        return self.sessions.get(sid)

    @staticmethod
    def _ack(result: MutationResult) -> dict:
        return result.model_dump(mode='json')

    @staticmethod
    def _missing_argument(field: str) -> dict:
        return {'error': {'kind': 'invalid_argument', 'message': f'Missing {field}', 'details': {}}, 'record': None}

    @staticmethod
    def _not_connected() -> dict:
        return {'error': {'kind': 'unauthenticated', 'message': 'Not authenticated', 'details': {}}, 'record': None}

    async def on_send_request(self, sid, data):
        session = self._session_for(sid)
        if session is None:
            return self._not_connected()
        target_id = (data or {}).get('target_id')
        if not target_id:
            return self._missing_argument('target_id')
        return self._ack(await session.send_request(target_id))

    async def on_accept_request(self, sid, data):
        session = self._session_for(sid)
        if session is None:
            return self._not_connected()
        request_id = (data or {}).get('request_id')
        if not request_id:
            return self._missing_argument('request_id')
        return self._ack(await session.accept_request(request_id))

    async def on_reject_request(self, sid, data):
        session = self._session_for(sid)
        if session is None:
            return self._not_connected()
        request_id = (data or {}).get('request_id')
        if not request_id:
            return self._missing_argument('request_id')
        return self._ack(await session.reject_request(request_id))

    async def on_cancel_request(self, sid, data):
        session = self._session_for(sid)
        if session is None:
            return self._not_connected()
        request_id = (data or {}).get('request_id')
        if not request_id:
            return self._missing_argument('request_id')
        return self._ack(await session.cancel_request(request_id))

    async def on_refetch(self, sid, data=None):
        session = self._session_for(sid)
        if session is None:
            return self._not_connected()
        refreshed = await session.refetch()
        return {'refreshed': refreshed, 'snapshot': session.snapshot().model_dump(mode='json')}


sio.register_namespace(FriendsNamespace('/friends'))
