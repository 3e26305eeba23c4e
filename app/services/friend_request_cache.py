# app/services/friend_request_cache.py

import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from schemas.friend_request_schema import ProfileSummary, RelationshipRecord
from services.friend_request_service import FriendRequestService
from services.profile_service import ProfileService

logger = logging.getLogger(__name__)


ProfileLookup = Callable[[AsyncSession, Iterable[str]], Awaitable[Dict[str, ProfileSummary]]]


class FriendRequestCache:
    """
    In-memory view of every friend request touching one identity.

    The view is never patched: each refresh re-queries the store and replaces
    the records wholesale. Overlapping refreshes are allowed and the last one
    to complete wins.
    """

    def __init__(
        self,
        identity_id: str,
        session_factory: async_sessionmaker[AsyncSession],
        profile_lookup: Optional[ProfileLookup] = None,
        on_refresh: Optional[Callable[["FriendRequestCache"], Awaitable[Any]]] = None,
    ):
        self.identity_id = identity_id
        self.session_factory = session_factory
        self.profile_lookup = profile_lookup or ProfileService.batch_lookup_profiles
        self.on_refresh = on_refresh
        self.records: Tuple[RelationshipRecord, ...] = ()
        self.loaded = False
        self.active = True
        self.refresh_count = 0

    def deactivate(self):
        """Stop applying refresh results; in-flight refreshes are discarded"""
        self.active = False

    async def refresh(self) -> bool:
        """
        Re-query the store and replace the cached records

        Returns:
            True if new contents were applied, False if the refresh failed or was discarded
        """
        if not self.active:
            return False

        try:
            async with self.session_factory() as session:
                rows = await FriendRequestService.list_for_identity(session, self.identity_id)
                records = self._parse_rows(rows)

                participant_ids = set()
                for record in records:
                    participant_ids.add(record.sender_id)
                    participant_ids.add(record.receiver_id)

                profiles = await self.profile_lookup(session, participant_ids)
        except Exception as e:
            logger.error(f"Error fetching friend requests for {self.identity_id}: {e}", exc_info=True)
            if self.active:
                self.loaded = True
            return False

        if not self.active:
            logger.debug(f"Discarding refresh result for inactive cache of {self.identity_id}")
            return False

        self.records = tuple(record.with_profiles(profiles) for record in records)
        self.loaded = True
        self.refresh_count += 1

        if self.on_refresh:
            try:
                await self.on_refresh(self)
            except Exception:
                logger.exception('Error in on_refresh hook')
        return True

    def _parse_rows(self, rows: Iterable[Any]) -> List[RelationshipRecord]:
        records = []
        for row in rows:
            try:
                records.append(RelationshipRecord.from_row(row))
            except ValidationError as e:
                logger.warning(f"Skipping malformed friend request row for {self.identity_id}: {e}")
        return records
