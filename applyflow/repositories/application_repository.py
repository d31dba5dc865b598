"""Application repository for database operations"""

from typing import Optional, Dict, Any, Tuple
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, func

from applyflow.models.job_listing import Application
from applyflow.core.logging import get_logger

logger = get_logger(__name__)


class ApplicationRepository:
    """Repository for submitted applications"""

    def __init__(self, db: AsyncSession):
        """
        Initialize application repository

        Args:
            db: Database session
        """
        self.db = db

    async def get_for_listing(self, user_id: str, listing_id: str) -> Optional[Application]:
        stmt = select(Application).where(
            and_(Application.user_id == user_id, Application.job_listing_id == listing_id)
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def has_applied(self, user_id: str, company: str, job_title: str) -> bool:
        """Whether the user already applied to this title at this company"""
        stmt = select(func.count(Application.id)).where(
            and_(
                Application.user_id == user_id,
                Application.company == company,
                Application.job_title == job_title
            )
        )
        result = await self.db.execute(stmt)
        return (result.scalar() or 0) > 0

    async def count_since(self, user_id: str, since: datetime) -> int:
        """
        Count applications created by a user since a point in time

        Args:
            user_id: Applicant
            since: Inclusive lower bound on created_at

        Returns:
            Number of applications
        """
        stmt = select(func.count(Application.id)).where(
            and_(Application.user_id == user_id, Application.created_at >= since)
        )
        result = await self.db.execute(stmt)
        return result.scalar() or 0

    async def get_or_create(self, user_id: str, listing_id: str, values: Dict[str, Any]) -> Tuple[Application, bool]:
        """
        Record an application once per user and listing

        Returns:
            (application, created)
        """
        existing = await self.get_for_listing(user_id, listing_id)
        if existing is not None:
            return existing, False

        application = Application(user_id=user_id, job_listing_id=listing_id, **values)
        self.db.add(application)
        await self.db.commit()
        await self.db.refresh(application)

        logger.info(f"Created application {application.id} for listing {listing_id}")
        return application, True
