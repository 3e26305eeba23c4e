# app/services/status_resolver.py

import logging
from typing import Iterable, List, Optional
from schemas.friend_request_schema import (
    RelationshipRecord,
    RelationshipStatus,
    RequestStatus
)

logger = logging.getLogger(__name__)


def _between(record: RelationshipRecord, self_id: str, target_id: str) -> bool:
    return {record.sender_id, record.receiver_id} == {self_id, target_id}


def find_record_for(
    records: Iterable[RelationshipRecord],
    self_id: str,
    target_id: str
) -> Optional[RelationshipRecord]:
    """
    Find the record that currently describes the relationship between two identities.

    Older rejected records may coexist with a newer one, so the most recently
    created candidate wins. More than one active candidate breaks the pair
    uniqueness invariant; it is logged and resolved the same way.
    """
    candidates = [record for record in records if _between(record, self_id, target_id)]
    if not candidates:
        return None

    active = [record for record in candidates if record.is_active]
    if len(active) > 1:
        logger.warning(
            f"Data integrity violation: {len(active)} active friend requests between "
            f"{self_id} and {target_id} ({', '.join(record.id for record in active)})"
        )

    return max(candidates, key=lambda record: (record.created_at, record.is_active, record.id))


def resolve_status(
    records: Iterable[RelationshipRecord],
    self_id: str,
    target_id: str
) -> RelationshipStatus:
    """Resolve the relationship status of self toward target"""
    record = find_record_for(records, self_id, target_id)

    if record is None:
        return RelationshipStatus.NONE
    if record.status == RequestStatus.ACCEPTED:
        return RelationshipStatus.ACCEPTED
    if record.status == RequestStatus.REJECTED:
        return RelationshipStatus.REJECTED
    if record.sender_id == self_id:
        return RelationshipStatus.PENDING_SENT
    return RelationshipStatus.PENDING_RECEIVED


def pending_received(
    records: Iterable[RelationshipRecord],
    self_id: str
) -> List[RelationshipRecord]:
    """Pending requests awaiting a decision from self, newest first"""
    awaiting = [
        record for record in records
        if record.receiver_id == self_id and record.status == RequestStatus.PENDING
    ]
    return sorted(awaiting, key=lambda record: record.created_at, reverse=True)


def friend_ids(records: Iterable[RelationshipRecord], self_id: str) -> List[str]:
    """Identities self is friends with, i.e. counterparts of accepted records"""
    friends = []
    for record in records:
        if record.status == RequestStatus.ACCEPTED and record.involves(self_id):
            counterpart = record.counterpart_of(self_id)
            if counterpart not in friends:
                friends.append(counterpart)
    return friends
