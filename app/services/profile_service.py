# app/services/profile_service.py

from typing import Dict, Iterable
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from models.profile import Profile
from schemas.friend_request_schema import ProfileSummary


class ProfileService:
    """Read access to the profile directory"""

    @staticmethod
    async def batch_lookup_profiles(
        session: AsyncSession,
        user_ids: Iterable[str]
    ) -> Dict[str, ProfileSummary]:
        """
        Fetch profile summaries for a set of identities in a single query

        Args:
            session: Database session
            user_ids: Identities to look up (duplicates are ignored)

        Returns:
            Mapping of user_id to ProfileSummary; identities without a profile are absent
        """
        ids = set(user_ids)
        if not ids:
            return {}

        query = select(Profile).where(Profile.user_id.in_(ids))
        result = await session.execute(query)
        profiles = result.scalars().all()

        return {
            profile.user_id: ProfileSummary.model_validate(profile, from_attributes=True)
            for profile in profiles
        }
