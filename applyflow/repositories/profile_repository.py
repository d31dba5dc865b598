"""Profile and auto-apply settings repository"""

from typing import List, Optional
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, and_
from sqlalchemy.orm import selectinload

from applyflow.models.profile import Profile, AutoApplySettings
from applyflow.core.logging import get_logger

logger = get_logger(__name__)


class ProfileRepository:
    """Repository for job seeker profiles and their auto-apply settings"""

    def __init__(self, db: AsyncSession):
        """
        Initialize profile repository

        Args:
            db: Database session
        """
        self.db = db

    async def get_by_user_id(self, user_id: str) -> Optional[Profile]:
        """
        Get a profile with its settings loaded

        Args:
            user_id: Owner of the profile

        Returns:
            Profile if found, None otherwise
        """
        stmt = (
            select(Profile)
            .where(Profile.user_id == user_id)
            .options(selectinload(Profile.auto_apply_settings))
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_auto_scan_profiles(self) -> List[Profile]:
        """Profiles whose settings enable both auto-apply and automatic scanning"""
        stmt = (
            select(Profile)
            .join(AutoApplySettings, AutoApplySettings.profile_id == Profile.id)
            .where(
                and_(
                    AutoApplySettings.is_enabled.is_(True),
                    AutoApplySettings.auto_scan_enabled.is_(True)
                )
            )
            .options(selectinload(Profile.auto_apply_settings))
            .order_by(Profile.created_at.asc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_settings(self, user_id: str) -> Optional[AutoApplySettings]:
        profile = await self.get_by_user_id(user_id)
        return profile.auto_apply_settings if profile else None

    async def update_settings(self, user_id: str, **values) -> Optional[AutoApplySettings]:
        """
        Update a user's auto-apply settings

        Args:
            user_id: Owner of the settings
            **values: Columns to change

        Returns:
            Updated settings, or None if the user has no profile or settings
        """
        settings = await self.get_settings(user_id)
        if settings is None:
            return None

        for field, value in values.items():
            setattr(settings, field, value)

        await self.db.commit()
        await self.db.refresh(settings)
        return settings

    async def touch_last_scan(self, user_id: str, scanned_at: datetime) -> bool:
        """Record when a user's listings were last scanned"""
        profile_ids = select(Profile.id).where(Profile.user_id == user_id).scalar_subquery()
        stmt = (
            update(AutoApplySettings)
            .where(AutoApplySettings.profile_id == profile_ids)
            .values(last_scan_at=scanned_at)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount > 0
