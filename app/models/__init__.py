# app/models/__init__.py

from models.friend_request import FriendRequest
from models.profile import Profile

__all__ = ["FriendRequest", "Profile"]
