# app/api/socketio/__init__.py

"""
Socket.IO namespaces for real-time features

Active namespaces:
- /friends: Live friend request state and mutations

To add a new namespace:
1. Create a new file: <feature>_namespace.py
2. Inherit from AuthNamespace (handles authentication automatically)
3. Implement optional callbacks:
   - handle_connect(self, sid, environ, identity_id) - called after successful auth
   - handle_disconnect(self, sid) - called before disconnection
4. Register it: sio.register_namespace(YourNamespace('/your-path'))
5. Import it here
"""

from infrastructure.socketio_manager import sio, manager

# Import namespaces to register them
from .friends_namespace import FriendsNamespace


__all__ = ['sio', 'manager', 'FriendsNamespace']
