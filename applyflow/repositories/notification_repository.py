"""Notification and application review repository"""

from typing import Dict, Any
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, and_

from applyflow.models.notification import (
    JobNotification,
    ApplicationReview,
    NotificationStatus,
    ReviewStatus,
)
from applyflow.core.logging import get_logger

logger = get_logger(__name__)


class NotificationRepository:
    """Repository for user-facing notifications and the reviews hanging off them"""

    def __init__(self, db: AsyncSession):
        """
        Initialize notification repository

        Args:
            db: Database session
        """
        self.db = db

    async def create_notification(self, notification_data: Dict[str, Any]) -> JobNotification:
        notification = JobNotification(**notification_data)
        self.db.add(notification)
        await self.db.commit()
        await self.db.refresh(notification)

        logger.info(f"Created notification {notification.id} for user {notification.user_id}")
        return notification

    async def create_review(self, review_data: Dict[str, Any]) -> ApplicationReview:
        review = ApplicationReview(**review_data)
        self.db.add(review)
        await self.db.commit()
        await self.db.refresh(review)
        return review

    async def expire_reviews(self, now: datetime) -> Dict[str, int]:
        """
        Expire PENDING reviews past their deadline, with their notifications

        Only PENDING rows are touched, so a second run finds nothing to do.

        Args:
            now: Reference time

        Returns:
            Counts of expired reviews and notifications
        """
        expired = await self.db.execute(
            select(ApplicationReview.id, ApplicationReview.notification_id).where(
                and_(
                    ApplicationReview.status == ReviewStatus.PENDING,
                    ApplicationReview.expires_at < now
                )
            )
        )
        rows = expired.all()
        if not rows:
            await self.db.commit()
            return {"reviews": 0, "notifications": 0}

        review_ids = [review_id for review_id, _ in rows]
        notification_ids = [notification_id for _, notification_id in rows]

        reviews = await self.db.execute(
            update(ApplicationReview)
            .where(
                and_(
                    ApplicationReview.id.in_(review_ids),
                    ApplicationReview.status == ReviewStatus.PENDING
                )
            )
            .values(status=ReviewStatus.EXPIRED)
        )
        notifications = await self.db.execute(
            update(JobNotification)
            .where(
                and_(
                    JobNotification.id.in_(notification_ids),
                    JobNotification.status.in_([NotificationStatus.PENDING, NotificationStatus.VIEWED])
                )
            )
            .values(status=NotificationStatus.EXPIRED)
        )
        await self.db.commit()

        return {"reviews": reviews.rowcount or 0, "notifications": notifications.rowcount or 0}

    async def expire_notifications(self, expired_before: datetime) -> int:
        """
        Expire unanswered notifications whose deadline passed before the cutoff

        Returns:
            Number of notifications expired
        """
        result = await self.db.execute(
            update(JobNotification)
            .where(
                and_(
                    JobNotification.status.in_([NotificationStatus.PENDING, NotificationStatus.VIEWED]),
                    JobNotification.expires_at < expired_before
                )
            )
            .values(status=NotificationStatus.EXPIRED)
        )
        await self.db.commit()
        return result.rowcount or 0

    async def delete_expired(self, updated_before: datetime) -> int:
        """
        Delete EXPIRED notifications untouched since the cutoff

        Returns:
            Number of notifications deleted
        """
        result = await self.db.execute(
            delete(JobNotification).where(
                and_(
                    JobNotification.status == NotificationStatus.EXPIRED,
                    JobNotification.updated_at < updated_before
                )
            )
        )
        await self.db.commit()
        return result.rowcount or 0
