# app/models/friend_request.py

import uuid
from sqlalchemy import Column, String, DateTime, Index, CheckConstraint, text
from datetime import datetime, UTC
from infrastructure.postgres_connection import Base


ACTIVE_PAIR_CONDITION = "status IN ('pending', 'accepted')"


def canonical_pair_key(a: str, b: str) -> str:
    """Order-independent key of a participant pair, length-prefixed so ids may contain the separator"""
    low, high = (a, b) if a < b else (b, a)
    return f"{len(low)}:{low}:{high}"


class FriendRequest(Base):
    """Friend request linking a sender and a receiver identity"""
    __tablename__ = "friend_requests"
    __table_args__ = (
        CheckConstraint("sender_id <> receiver_id", name="ck_friend_requests_not_self"),
        # At most one pending/accepted record per unordered pair
        Index(
            "uq_friend_requests_active_pair",
            "pair_key",
            unique=True,
            postgresql_where=text(ACTIVE_PAIR_CONDITION),
            sqlite_where=text(ACTIVE_PAIR_CONDITION),
        ),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    sender_id = Column(String(255), nullable=False, index=True)
    receiver_id = Column(String(255), nullable=False, index=True)
    pair_key = Column(String(520), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="pending")
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)

    def __repr__(self):
        return f"<FriendRequest(id={self.id}, sender={self.sender_id}, receiver={self.receiver_id}, status='{self.status}')>"
