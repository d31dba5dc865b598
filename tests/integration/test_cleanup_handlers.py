"""Integration tests for the sweep handlers"""

from datetime import timedelta

import pytest
from sqlalchemy import select, update

from applyflow.models import (
    ApplicationReview,
    JobListing,
    JobNotification,
    NotificationStatus,
    QueueJob,
    QueueJobStatus,
    ReviewStatus,
)
from applyflow.models.base import utcnow
from applyflow.services.cleanup_handlers import CleanupHandlers


@pytest.fixture
def cleanup(session_factory, queue_repository):
    return CleanupHandlers(session_factory, queue_repository)


@pytest.fixture
def make_notification(session_factory):

    async def _make_notification(listing_id, expires_in=timedelta(hours=24), status=NotificationStatus.PENDING):
        async with session_factory() as db:
            notification = JobNotification(
                user_id="user-1",
                job_listing_id=listing_id,
                match_score=0.85,
                message="Found a 85% match",
                status=status,
                expires_at=utcnow() + expires_in,
            )
            db.add(notification)
            await db.commit()
            return notification

    return _make_notification


async def status_of(session_factory, model, row_id):
    async with session_factory() as db:
        return (await db.get(model, row_id)).status


class TestCleanupExpiredReviews:
    """Test cases for cleanup_expired_reviews"""

    @pytest.mark.asyncio
    async def test_expires_overdue_reviews_once(self, cleanup, make_listing, make_notification, session_factory):
        listing = await make_listing()
        overdue_notification = await make_notification(listing.id, expires_in=timedelta(hours=-1))
        live_notification = await make_notification(listing.id)

        async with session_factory() as db:
            overdue = ApplicationReview(
                user_id="user-1",
                notification_id=overdue_notification.id,
                job_listing_id=listing.id,
                expires_at=utcnow() - timedelta(hours=1),
            )
            live = ApplicationReview(
                user_id="user-1",
                notification_id=live_notification.id,
                job_listing_id=listing.id,
                expires_at=utcnow() + timedelta(hours=23),
            )
            db.add_all([overdue, live])
            await db.commit()

        first = await cleanup.cleanup_expired_reviews({})
        second = await cleanup.cleanup_expired_reviews({})

        assert first.data == {"expired_reviews": 1, "expired_notifications": 1}
        assert second.data == {"expired_reviews": 0, "expired_notifications": 0}

        assert await status_of(session_factory, ApplicationReview, overdue.id) == ReviewStatus.EXPIRED
        assert await status_of(session_factory, ApplicationReview, live.id) == ReviewStatus.PENDING
        assert await status_of(session_factory, JobNotification, overdue_notification.id) == NotificationStatus.EXPIRED
        assert await status_of(session_factory, JobNotification, live_notification.id) == NotificationStatus.PENDING

    @pytest.mark.asyncio
    async def test_answered_notification_is_kept(self, cleanup, make_listing, make_notification, session_factory):
        listing = await make_listing()
        notification = await make_notification(
            listing.id, expires_in=timedelta(hours=-1), status=NotificationStatus.APPROVED
        )
        async with session_factory() as db:
            db.add(ApplicationReview(
                user_id="user-1",
                notification_id=notification.id,
                job_listing_id=listing.id,
                expires_at=utcnow() - timedelta(hours=1),
            ))
            await db.commit()

        result = await cleanup.cleanup_expired_reviews({})

        assert result.data == {"expired_reviews": 1, "expired_notifications": 0}
        assert await status_of(session_factory, JobNotification, notification.id) == NotificationStatus.APPROVED


class TestCleanupExpiredNotifications:
    """Test cases for cleanup_expired_notifications"""

    @pytest.mark.asyncio
    async def test_expire_after_grace_then_delete_after_retention(
        self, cleanup, make_listing, make_notification, session_factory, backdate
    ):
        listing = await make_listing()
        past_grace = await make_notification(listing.id, expires_in=timedelta(days=-31))
        within_grace = await make_notification(listing.id, expires_in=timedelta(days=-10))
        long_expired = await make_notification(
            listing.id, expires_in=timedelta(days=-120), status=NotificationStatus.EXPIRED
        )
        recently_expired = await make_notification(
            listing.id, expires_in=timedelta(days=-60), status=NotificationStatus.EXPIRED
        )
        await backdate(JobNotification, long_expired.id, days=91, columns=("updated_at",))
        await backdate(JobNotification, recently_expired.id, days=20, columns=("updated_at",))

        result = await cleanup.cleanup_expired_notifications({})

        assert result.data == {"expired_notifications": 1, "deleted_notifications": 1}
        assert await status_of(session_factory, JobNotification, past_grace.id) == NotificationStatus.EXPIRED
        assert await status_of(session_factory, JobNotification, within_grace.id) == NotificationStatus.PENDING
        assert await status_of(session_factory, JobNotification, recently_expired.id) == NotificationStatus.EXPIRED
        async with session_factory() as db:
            assert await db.get(JobNotification, long_expired.id) is None

        again = await cleanup.cleanup_expired_notifications({})
        assert again.data == {"expired_notifications": 0, "deleted_notifications": 0}

    @pytest.mark.asyncio
    async def test_payload_overrides_thresholds(self, cleanup, make_listing, make_notification, session_factory):
        listing = await make_listing()
        notification = await make_notification(listing.id, expires_in=timedelta(days=-2))

        result = await cleanup.cleanup_expired_notifications({"grace_days": 1})

        assert result.data["expired_notifications"] == 1
        assert await status_of(session_factory, JobNotification, notification.id) == NotificationStatus.EXPIRED


class TestCleanupOldJobs:
    """Test cases for cleanup_old_jobs"""

    @pytest.mark.asyncio
    async def test_deletes_aged_listings_nobody_applied_to(self, cleanup, make_listing, session_factory, backdate):
        stale = await make_listing(title="Stale")
        fresh = await make_listing(title="Fresh")
        scored = await make_listing(title="Scored", is_processed=True, match_score=0.4)
        old_scored = await make_listing(title="Old scored", is_processed=True, match_score=0.4)
        applied = await make_listing(title="Applied", applied_to=True)
        await backdate(JobListing, stale.id, days=31)
        await backdate(JobListing, scored.id, days=31)
        await backdate(JobListing, old_scored.id, days=181)
        await backdate(JobListing, applied.id, days=365)

        result = await cleanup.cleanup_old_jobs({})

        assert result.data["deleted_unprocessed_listings"] == 1
        assert result.data["deleted_processed_listings"] == 1
        async with session_factory() as db:
            remaining = (await db.execute(select(JobListing.title))).scalars().all()
        assert sorted(remaining) == ["Applied", "Fresh", "Scored"]

    @pytest.mark.asyncio
    async def test_prunes_finished_queue_history(self, cleanup, queue_repository, session_factory, backdate):
        finished, _ = await queue_repository.create_job("cleanup_old_jobs", {}, 1, 3)
        pending, _ = await queue_repository.create_job("cleanup_old_jobs", {}, 1, 3)
        async with session_factory() as db:
            await db.execute(
                update(QueueJob).where(QueueJob.id == finished.id).values(status=QueueJobStatus.COMPLETED)
            )
            await db.commit()
        await backdate(QueueJob, finished.id, days=8)
        await backdate(QueueJob, pending.id, days=8)

        result = await cleanup.cleanup_old_jobs({})

        assert result.data["deleted_queue_jobs"] == 1
        assert await queue_repository.get_by_id(finished.id) is None
        assert await queue_repository.get_by_id(pending.id) is not None
