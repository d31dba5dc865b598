"""Job listing repository for database operations"""

from typing import List, Optional, Dict, Any
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, and_, or_

from applyflow.models.job_listing import JobListing
from applyflow.core.logging import get_logger

logger = get_logger(__name__)


class JobListingRepository:
    """Repository for discovered job listings"""

    def __init__(self, db: AsyncSession):
        """
        Initialize job listing repository

        Args:
            db: Database session
        """
        self.db = db

    async def create(self, listing_data: Dict[str, Any]) -> JobListing:
        """
        Create a new listing

        Args:
            listing_data: Listing column values

        Returns:
            Created listing
        """
        listing = JobListing(**listing_data)
        self.db.add(listing)
        await self.db.commit()
        await self.db.refresh(listing)

        logger.debug(f"Created job listing: {listing.id}")
        return listing

    async def get_by_id(self, listing_id: str) -> Optional[JobListing]:
        """
        Get listing by ID

        Args:
            listing_id: Listing ID

        Returns:
            Listing if found, None otherwise
        """
        return await self.db.get(JobListing, listing_id)

    async def find_for_user(
        self,
        user_id: str,
        title: str,
        company: str,
        source_job_id: Optional[str] = None
    ) -> Optional[JobListing]:
        """
        Find the user's stored copy of a posting

        A posting matches on the source's own id or on title plus company.
        """
        same_posting = and_(JobListing.title == title, JobListing.company == company)
        if source_job_id:
            same_posting = or_(JobListing.source_job_id == source_job_id, same_posting)

        stmt = select(JobListing).where(
            and_(JobListing.user_id == user_id, same_posting)
        ).order_by(JobListing.created_at)
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def record_match_score(self, listing_id: str, match_score: float) -> bool:
        """
        Store the AI match score and flag the listing processed

        Returns:
            True if the listing exists
        """
        stmt = (
            update(JobListing)
            .where(JobListing.id == listing_id)
            .values(match_score=match_score, is_processed=True)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount > 0

    async def mark_applied(self, listing_id: str) -> bool:
        stmt = update(JobListing).where(JobListing.id == listing_id).values(applied_to=True)
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount > 0

    async def get_for_user(self, user_id: str, limit: int = 100) -> List[JobListing]:
        stmt = (
            select(JobListing)
            .where(JobListing.user_id == user_id)
            .order_by(JobListing.created_at.desc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def delete_stale(self, unprocessed_before: datetime, processed_before: datetime) -> Dict[str, int]:
        """
        Delete listings nobody applied to once they age out

        Args:
            unprocessed_before: Cutoff for listings never scored
            processed_before: Cutoff for scored listings

        Returns:
            Counts of deleted unprocessed and processed listings
        """
        unprocessed = await self.db.execute(
            delete(JobListing).where(
                and_(
                    JobListing.is_processed.is_(False),
                    JobListing.applied_to.is_(False),
                    JobListing.created_at < unprocessed_before
                )
            )
        )
        processed = await self.db.execute(
            delete(JobListing).where(
                and_(
                    JobListing.is_processed.is_(True),
                    JobListing.applied_to.is_(False),
                    JobListing.created_at < processed_before
                )
            )
        )
        await self.db.commit()

        return {
            "unprocessed": unprocessed.rowcount or 0,
            "processed": processed.rowcount or 0,
        }
