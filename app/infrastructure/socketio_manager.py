# app/infrastructure/socketio_manager.py

import socketio
from typing import Dict, List, Optional
from urllib.parse import parse_qs
from jose import jwt, JWTError
from config.settings import settings
import logging

# Setup logging
logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)


class ConnectionManager:
    """Tracks which Socket.IO sessions belong to which identity"""

    def __init__(self):
        # Maps identity id to list of their session_ids (sids)
        self.active_connections: Dict[str, List[str]] = {}
        # Maps session_id to identity id
        self.sid_to_identity: Dict[str, str] = {}
        # Maps session_id to namespace
        self.sid_to_namespace: Dict[str, str] = {}

    def connect(self, sid: str, identity_id: str, namespace: str = None):
        """Register a connection"""
        if identity_id not in self.active_connections:
            self.active_connections[identity_id] = []

        if sid not in self.active_connections[identity_id]:
            self.active_connections[identity_id].append(sid)

        self.sid_to_identity[sid] = identity_id
        if namespace:
            self.sid_to_namespace[sid] = namespace

        logger.info(f"Connection {identity_id} with session {sid} to namespace {namespace}")

    def disconnect(self, sid: str):
        """Unregister a connection"""
        identity_id = self.sid_to_identity.pop(sid, None)
        namespace = self.sid_to_namespace.pop(sid, "unknown")
        if identity_id is None:
            return

        sessions = self.active_connections.get(identity_id, [])
        if sid in sessions:
            sessions.remove(sid)
        if not sessions:
            self.active_connections.pop(identity_id, None)

        logger.info(f"Connection {identity_id} disconnected from {namespace} (session {sid})")

    def get_identity(self, sid: str) -> Optional[str]:
        """Get identity id from session_id"""
        return self.sid_to_identity.get(sid)


def decode_identity(token: str) -> Optional[str]:
    """
    Validate a JWT and return its subject

    Args:
        token: JWT token string

    Returns:
        Identity id from the 'sub' claim if the token is valid, None otherwise
    """
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE
        )
    except JWTError as e:
        logger.warning(f"JWT validation error: {str(e)}")
        return None

    identity_id = payload.get("sub")
    if not identity_id:
        logger.warning("Token missing 'sub' claim")
        return None
    return str(identity_id)


def extract_token_from_environ(environ: dict) -> Optional[str]:
    """
    Extract JWT token from query parameters OR cookies

    Args:
        environ: ASGI environ dict

    Returns:
        Token string if found, None otherwise
    """
    token = None

    query_string = environ.get('QUERY_STRING', '')
    if query_string:
        params = parse_qs(query_string)
        token = params.get('token', [None])[0]

    if not token:
        cookie_header = environ.get('HTTP_COOKIE', '')
        for cookie in cookie_header.split(';'):
            cookie = cookie.strip()
            if '=' in cookie:
                name, value = cookie.split('=', 1)
                if name == settings.AUTH_COOKIE_NAME:
                    token = value
                    break

    return token


# Create global Socket.IO server with proper configuration
sio = socketio.AsyncServer(
    async_mode='asgi',
    cors_allowed_origins=settings.CORS_ORIGINS,
    logger=settings.DEBUG,
    engineio_logger=False,
    ping_timeout=60,
    ping_interval=25
)

# Global connection manager instance
manager = ConnectionManager()


class AuthNamespace(socketio.AsyncNamespace):
    """Authenticated namespace that centralizes authentication and connection lifecycle.

    Implement `handle_connect(self, sid, environ, identity_id)` and/or
    `handle_disconnect(self, sid)` in subclasses to run namespace-specific
    logic after a successful authenticate/connect or on disconnect.
    """

    async def on_connect(self, sid, environ):
        token = extract_token_from_environ(environ)
        if not token:
            logger.warning(f"Connection attempt without token from {sid} to {self.namespace}")
            await self.emit('error', {
                'message': 'Authentication required. Please provide token in query parameter or login cookie.'
            }, room=sid)
            return False

        identity_id = decode_identity(token)
        if not identity_id:
            logger.warning(f"Authentication failed for session {sid} on {self.namespace}")
            await self.emit('error', {'message': 'Invalid or expired token'}, room=sid)
            return False

        manager.connect(sid, identity_id, namespace=self.namespace)

        if hasattr(self, 'handle_connect'):
            try:
                await self.handle_connect(sid, environ, identity_id)
            except Exception:
                logger.exception('Error in handle_connect hook')

    async def on_disconnect(self, sid, reason=None):
        logger.info(f"Client disconnected from {self.namespace}: {sid}")
        # Subclass hook runs before unregistering so it can still resolve the identity
        if hasattr(self, 'handle_disconnect'):
            try:
                await self.handle_disconnect(sid)
            except Exception:
                logger.exception('Error in handle_disconnect hook')

        manager.disconnect(sid)
