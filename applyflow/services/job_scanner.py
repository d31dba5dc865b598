"""Job scanning: fetch postings for a user, filter them, store and queue scoring"""

from datetime import datetime, timezone
from typing import Dict, Any, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from applyflow.core.logging import get_logger
from applyflow.models.base import utcnow
from applyflow.models.profile import Profile, AutoApplySettings
from applyflow.repositories.application_repository import ApplicationRepository
from applyflow.repositories.job_listing_repository import JobListingRepository
from applyflow.repositories.profile_repository import ProfileRepository
from applyflow.schemas.matching import NormalizedJob, JobSearchFilters
from applyflow.services.job_search import JobSearchService

logger = get_logger(__name__)


def start_of_day(now: Optional[datetime] = None) -> datetime:
    """Midnight UTC of the given (or current) day"""
    now = now or utcnow()
    return datetime(now.year, now.month, now.day, tzinfo=timezone.utc)


def dedupe_jobs(jobs: List[NormalizedJob]) -> List[NormalizedJob]:
    """
    Collapse postings that share company and title

    The copy with the longer description wins; first-seen order is kept.
    """
    unique: Dict[str, NormalizedJob] = {}
    for job in jobs:
        key = f"{job.company.lower()}-{job.title.lower()}"
        current = unique.get(key)
        if current is None or len(job.description or "") > len(current.description or ""):
            unique[key] = job
    return list(unique.values())


def excluded_reason(job: NormalizedJob, settings: AutoApplySettings) -> Optional[str]:
    """Why the user's filters reject a posting, or None if they accept it"""
    company = job.company.lower()
    for excluded in settings.excluded_companies or []:
        if excluded and excluded.lower() in company:
            return "excluded_company"

    text = f"{job.title} {job.description or ''}".lower()
    for keyword in settings.excluded_keywords or []:
        if keyword and keyword.lower() in text:
            return "excluded_keyword"

    if settings.require_salary_range and not job.salary_range:
        return "missing_salary"

    return None


class JobScanner:
    """Finds new postings for a user and queues each for AI scoring"""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        search_service: JobSearchService,
        queue_manager
    ):
        """
        Initialize the scanner

        Args:
            session_factory: Session factory for domain tables
            search_service: Job search collaborator
            queue_manager: Anything with `enqueue_ai_analysis(listing_id, user_id)`
        """
        self.session_factory = session_factory
        self.search_service = search_service
        self.queue_manager = queue_manager

    async def scan_user(self, user_id: str) -> Dict[str, Any]:
        """
        Scan job sources for one user

        Args:
            user_id: User to scan for

        Returns:
            Counts of fetched, saved, skipped and enqueued postings, plus a
            `reason` when the scan stopped early
        """
        summary = {"user_id": user_id, "fetched": 0, "saved": 0, "skipped": 0, "enqueued": 0}

        async with self.session_factory() as db:
            profile = await ProfileRepository(db).get_by_user_id(user_id)
            if profile is None or profile.auto_apply_settings is None:
                logger.info(f"No profile or auto-apply settings for user {user_id}", extra={"user_id": user_id})
                return {**summary, "reason": "no_settings"}

            settings = profile.auto_apply_settings
            applied_today = await ApplicationRepository(db).count_since(user_id, start_of_day())
            if applied_today >= settings.max_applications_per_day:
                logger.info(
                    f"User {user_id} reached the daily limit of {settings.max_applications_per_day} applications",
                    extra={"user_id": user_id}
                )
                return {**summary, "reason": "daily_limit"}

        query, location = self._search_terms(profile)
        if not query:
            return {**summary, "reason": "no_job_titles"}

        jobs = await self.search_service.search_jobs(
            query,
            location,
            JobSearchFilters(employment_types=list(profile.employment_types or []))
        )
        summary["fetched"] = len(jobs)

        unique_jobs = dedupe_jobs(jobs)
        # Collapsed duplicates count as skipped
        summary["skipped"] = len(jobs) - len(unique_jobs)

        new_listing_ids = []
        # Stored by an earlier scan that failed before queueing their analysis
        unanalyzed_ids = []
        async with self.session_factory() as db:
            listings = JobListingRepository(db)
            applications = ApplicationRepository(db)

            for job in unique_jobs:
                stored = await listings.find_for_user(user_id, job.title, job.company, job.source_job_id)
                if stored is not None:
                    summary["skipped"] += 1
                    logger.debug(f"Skipping {job.title} at {job.company}: already_stored")
                    if not stored.is_processed:
                        unanalyzed_ids.append(stored.id)
                    continue

                reason = await self._skip_reason(job, settings, user_id, applications)
                if reason:
                    summary["skipped"] += 1
                    logger.debug(f"Skipping {job.title} at {job.company}: {reason}")
                    continue

                listing = await listings.create({
                    "user_id": user_id,
                    "title": job.title,
                    "company": job.company,
                    "description": job.description,
                    "url": job.url,
                    "location": job.location,
                    "salary_range": job.salary_range,
                    "employment_type": job.employment_type,
                    "source": job.source,
                    "source_job_id": job.source_job_id,
                })
                new_listing_ids.append(listing.id)

            await ProfileRepository(db).touch_last_scan(user_id, utcnow())

        summary["saved"] = len(new_listing_ids)

        for listing_id in new_listing_ids + unanalyzed_ids:
            await self.queue_manager.enqueue_ai_analysis(listing_id, user_id)
            summary["enqueued"] += 1

        logger.info(
            f"Scan for user {user_id}: fetched {summary['fetched']}, saved {summary['saved']}, "
            f"skipped {summary['skipped']}, queued {summary['enqueued']} for analysis",
            extra={"user_id": user_id}
        )
        return summary

    def _search_terms(self, profile: Profile):
        titles = [title for title in (profile.job_title_prefs or []) if title]
        locations = [location for location in (profile.preferred_locations or []) if location]
        return (titles[0] if titles else None), (locations[0] if locations else None)

    async def _skip_reason(
        self,
        job: NormalizedJob,
        settings: AutoApplySettings,
        user_id: str,
        applications: ApplicationRepository
    ) -> Optional[str]:
        if await applications.has_applied(user_id, job.company, job.title):
            return "already_applied"
        return excluded_reason(job, settings)
