# app/schemas/friend_request_schema.py

from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime, UTC
from typing import Any, Dict, List, Optional


class RequestStatus(str, Enum):
    """Stored status of a friend request record"""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


ACTIVE_STATUSES = (RequestStatus.PENDING, RequestStatus.ACCEPTED)


class RelationshipStatus(str, Enum):
    """Status of a relationship as seen by one of its participants"""
    NONE = "none"
    PENDING_SENT = "pending_sent"
    PENDING_RECEIVED = "pending_received"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ErrorKind(str, Enum):
    INVALID_ARGUMENT = "invalid_argument"
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    CONFLICT = "conflict"
    TRANSIENT = "transient"
    INTERNAL = "internal"


class ProfileSummary(BaseModel):
    """Lightweight profile of a participant"""
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None

    model_config = ConfigDict(from_attributes=True, frozen=True)


class RelationshipRecord(BaseModel):
    """Validated friend request record, optionally annotated with participant profiles"""
    id: str
    sender_id: str
    receiver_id: str
    status: RequestStatus
    created_at: datetime
    sender_profile: Optional[ProfileSummary] = None
    receiver_profile: Optional[ProfileSummary] = None

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @field_validator('id', 'sender_id', 'receiver_id')
    @classmethod
    def validate_identifier(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError('Identifier must not be empty')
        return v

    @field_validator('created_at')
    @classmethod
    def validate_created_at(cls, v: datetime) -> datetime:
        # SQLite hands back naive datetimes; everything is stored as UTC
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v.astimezone(UTC)

    @classmethod
    def from_row(cls, row: Any) -> "RelationshipRecord":
        """Parse a raw store row (ORM object or mapping) into a record"""
        if isinstance(row, dict):
            return cls.model_validate(row)
        return cls.model_validate(row, from_attributes=True)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def involves(self, identity_id: str) -> bool:
        return identity_id in (self.sender_id, self.receiver_id)

    def counterpart_of(self, identity_id: str) -> str:
        """Return the other participant of the record"""
        return self.receiver_id if self.sender_id == identity_id else self.sender_id

    def with_profiles(self, profiles: Dict[str, ProfileSummary]) -> "RelationshipRecord":
        return self.model_copy(update={
            "sender_profile": profiles.get(self.sender_id),
            "receiver_profile": profiles.get(self.receiver_id),
        })


class FriendRequestCreate(BaseModel):
    """Schema for sending a friend request"""
    target_id: str = Field(..., min_length=1, description="Identity the request is sent to")


class RelationshipStatusResponse(BaseModel):
    """Schema for the viewer-relative status toward one identity"""
    target_id: str
    status: RelationshipStatus
    record: Optional[RelationshipRecord] = None


class FriendRequestsSnapshot(BaseModel):
    """Everything a consumer needs to render the relationship view"""
    records: List[RelationshipRecord]
    friends: List[str]
    pending_received: List[RelationshipRecord]
    loaded: bool = True


class MutationError(BaseModel):
    """Typed failure returned by session mutations"""
    kind: ErrorKind
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class MutationResult(BaseModel):
    """Outcome of a session mutation; `error` is None on success"""
    error: Optional[MutationError] = None
    record: Optional[RelationshipRecord] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ChangeNotification(BaseModel):
    """Payload published on the change feed after a committed write"""
    table: str
    event: str
    id: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
