"""Queue handlers for scanning, AI match analysis, applications and summaries"""

import asyncio
from datetime import timedelta
from typing import Dict, Any, Optional, List

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from applyflow.core.config import settings
from applyflow.core.exceptions import NotFoundException, ValidationException
from applyflow.core.logging import get_logger
from applyflow.core.task_queue import JobResult, JobType, JobHandler
from applyflow.models.base import utcnow
from applyflow.models.job_listing import JobListing
from applyflow.models.profile import Profile
from applyflow.models.queue_job import QueueJob
from applyflow.repositories.application_repository import ApplicationRepository
from applyflow.repositories.job_listing_repository import JobListingRepository
from applyflow.repositories.notification_repository import NotificationRepository
from applyflow.repositories.profile_repository import ProfileRepository
from applyflow.schemas.matching import ProfileSummary, JobDescription, SkillSummary, MatchAnalysis
from applyflow.services.job_matcher import OpenAIJobMatcher
from applyflow.services.job_scanner import JobScanner, start_of_day

logger = get_logger(__name__)

# Error fragments that mark an AI analysis failure as not worth retrying
NON_RETRYABLE_MARKERS = ("not found", "Invalid", "timeout")
AI_RETRY_DELAY_SECONDS = 5.0


def _require(payload: Dict[str, Any], job: Optional[QueueJob], *keys: str) -> List[str]:
    values = []
    for key in keys:
        value = payload.get(key)
        if value is None and key == "user_id" and job is not None:
            value = job.user_id
        if not value:
            raise ValidationException(f"Invalid payload: {key} is required")
        values.append(value)
    return values


def build_profile_summary(profile: Profile) -> ProfileSummary:
    skills = []
    for skill in profile.skills or []:
        if isinstance(skill, str):
            skills.append(SkillSummary(name=skill))
        else:
            skills.append(SkillSummary(
                name=skill.get("name", ""),
                proficiency=skill.get("proficiency"),
                years_used=skill.get("years_used") or 0,
            ))
    return ProfileSummary(
        full_name=profile.full_name,
        job_title_prefs=list(profile.job_title_prefs or []),
        years_experience=profile.years_experience or 0,
        skills=skills,
        preferred_locations=list(profile.preferred_locations or []),
        employment_types=list(profile.employment_types or []),
    )


def build_job_description(listing: JobListing) -> JobDescription:
    return JobDescription(
        title=listing.title,
        company=listing.company,
        description=listing.description or "",
        location=listing.location or "",
        salary_range=listing.salary_range or "",
        employment_type=listing.employment_type or "FULL_TIME",
    )


class JobHandlers:
    """Business handlers invoked by the worker pool"""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        scanner: JobScanner,
        matcher: OpenAIJobMatcher,
        queue_manager,
        ai_timeout: float = None,
        inter_user_delay: float = None
    ):
        """
        Initialize handlers

        Args:
            session_factory: Session factory for domain tables
            scanner: Per-user job scanner
            matcher: AI match collaborator
            queue_manager: Queue manager used for follow-up jobs
            ai_timeout: Hard deadline on one AI call in seconds
            inter_user_delay: Pause between users in automated scans
        """
        self.session_factory = session_factory
        self.scanner = scanner
        self.matcher = matcher
        self.queue_manager = queue_manager
        self.ai_timeout = settings.AI_MATCH_TIMEOUT_SECONDS if ai_timeout is None else ai_timeout
        self.inter_user_delay = settings.SCAN_INTER_USER_DELAY_SECONDS if inter_user_delay is None else inter_user_delay

    def routes(self) -> Dict[JobType, JobHandler]:
        return {
            JobType.USER_JOB_SCAN: self.user_job_scan,
            JobType.AUTOMATED_JOB_SCAN: self.automated_job_scan,
            JobType.ANALYZE_JOB_MATCH: self.analyze_job_match,
            JobType.PROCESS_APPLICATION: self.process_application,
            JobType.SEND_DAILY_SUMMARY: self.send_daily_summary,
        }

    async def user_job_scan(self, payload: Dict[str, Any], job: Optional[QueueJob] = None) -> JobResult:
        """Scan job sources for one user and queue analysis of new listings"""
        try:
            (user_id,) = _require(payload, job, "user_id")
        except ValidationException as e:
            return JobResult.failed(e.message, retry=False)

        summary = await self.scanner.scan_user(user_id)
        return JobResult(success=True, data=summary)

    async def automated_job_scan(self, payload: Dict[str, Any], job: Optional[QueueJob] = None) -> JobResult:
        """
        Scan every auto-scan user that is due

        A user is due when their last scan is older than their scan frequency.
        One user's failure is recorded and the batch moves on.
        """
        async with self.session_factory() as db:
            profiles = await ProfileRepository(db).get_auto_scan_profiles()

        now = utcnow()
        due = []
        for profile in profiles:
            user_settings = profile.auto_apply_settings
            frequency = timedelta(hours=user_settings.scan_frequency_hours or settings.DEFAULT_SCAN_FREQUENCY_HOURS)
            if user_settings.last_scan_at and now - user_settings.last_scan_at < frequency:
                continue
            due.append(profile.user_id)

        user_results = []
        total_saved = total_enqueued = 0
        for index, user_id in enumerate(due):
            try:
                summary = await self.scanner.scan_user(user_id)
                total_saved += summary["saved"]
                total_enqueued += summary["enqueued"]
                user_results.append(summary)
            except Exception as e:
                logger.error(f"Error scanning jobs for user {user_id}: {e}", exc_info=True, extra={"user_id": user_id})
                user_results.append({"user_id": user_id, "error": str(e)})

            if self.inter_user_delay and index < len(due) - 1:
                await asyncio.sleep(self.inter_user_delay)

        logger.info(f"Automated scan covered {len(due)} of {len(profiles)} users, saved {total_saved} listings")
        return JobResult.ok(
            users_considered=len(profiles),
            users_scanned=len(due),
            total_saved=total_saved,
            total_enqueued=total_enqueued,
            user_results=user_results,
        )

    async def analyze_job_match(self, payload: Dict[str, Any], job: Optional[QueueJob] = None) -> JobResult:
        """
        Score a listing against the user's profile and act on the score

        Missing rows, malformed payloads and AI timeouts fail without retry;
        other errors retry after a short fixed delay.
        """
        try:
            listing_id, user_id = _require(payload, job, "job_listing_id", "user_id")

            async with self.session_factory() as db:
                listing = await JobListingRepository(db).get_by_id(listing_id)
                if listing is None:
                    raise NotFoundException(f"Job listing {listing_id} not found")
                if listing.is_processed and listing.match_score is not None:
                    logger.info(f"Listing {listing_id} already scored, skipping")
                    return JobResult.ok(job_listing_id=listing_id, match_score=listing.match_score, skipped=True)

                profile = await ProfileRepository(db).get_by_user_id(user_id)
                if profile is None or profile.auto_apply_settings is None:
                    raise NotFoundException(f"Profile or auto-apply settings for user {user_id} not found")

            try:
                analysis = await asyncio.wait_for(
                    self.matcher.analyze_job_match(build_profile_summary(profile), build_job_description(listing)),
                    timeout=self.ai_timeout
                )
            except asyncio.TimeoutError:
                return JobResult.failed(f"AI analysis timeout after {self.ai_timeout:g}s", retry=False)

            async with self.session_factory() as db:
                await JobListingRepository(db).record_match_score(listing_id, analysis.match_score)

            actions = await self._act_on_match(listing, profile, analysis)

            logger.info(
                f"AI analysis complete: {listing.title} at {listing.company} scored "
                f"{round(analysis.match_score * 100)}% ({', '.join(actions) or 'no action'})",
                extra={"user_id": user_id}
            )
            return JobResult.ok(
                job_listing_id=listing_id,
                match_score=analysis.match_score,
                recommendation=analysis.recommendation,
                actions=actions,
            )
        except (NotFoundException, ValidationException) as e:
            return JobResult.failed(e.message, retry=False)
        except Exception as e:
            message = str(e) or type(e).__name__
            retry = not any(marker in message for marker in NON_RETRYABLE_MARKERS)
            logger.error(f"AI job analysis error: {message}", exc_info=True)
            return JobResult.failed(message, retry=retry, retry_delay=AI_RETRY_DELAY_SECONDS if retry else None)

    async def _act_on_match(self, listing: JobListing, profile: Profile, analysis: MatchAnalysis) -> List[str]:
        user_settings = profile.auto_apply_settings
        score = analysis.match_score

        if score < user_settings.notify_min_score:
            return []

        meets_auto_apply = score >= user_settings.min_match_score
        if meets_auto_apply and user_settings.auto_apply_enabled and not user_settings.require_approval:
            await self.queue_manager.enqueue_application(listing.id, profile.user_id)
            return ["auto_apply_queued"]

        if not (meets_auto_apply and user_settings.require_approval) and not user_settings.notify_on_match:
            return []

        timeout_hours = user_settings.review_timeout_hours or settings.REVIEW_TIMEOUT_HOURS
        expires_at = utcnow() + timedelta(hours=timeout_hours)

        async with self.session_factory() as db:
            notifications = NotificationRepository(db)
            notification = await notifications.create_notification({
                "user_id": profile.user_id,
                "job_listing_id": listing.id,
                "match_score": score,
                "message": f"Found a {round(score * 100)}% match: {listing.title} at {listing.company}",
                "expires_at": expires_at,
            })
            if not (meets_auto_apply and user_settings.require_approval):
                return ["notification_created"]

            await notifications.create_review({
                "user_id": profile.user_id,
                "notification_id": notification.id,
                "job_listing_id": listing.id,
                "expires_at": expires_at,
            })
            return ["notification_created", "review_created"]

    async def process_application(self, payload: Dict[str, Any], job: Optional[QueueJob] = None) -> JobResult:
        """Record an application to a listing and flag the listing applied"""
        try:
            listing_id, user_id = _require(payload, job, "job_listing_id", "user_id")

            async with self.session_factory() as db:
                listings = JobListingRepository(db)
                listing = await listings.get_by_id(listing_id)
                if listing is None:
                    raise NotFoundException(f"Job listing {listing_id} not found")

                application, created = await ApplicationRepository(db).get_or_create(
                    user_id,
                    listing_id,
                    {"company": listing.company, "job_title": listing.title, "match_score": listing.match_score}
                )
                await listings.mark_applied(listing_id)
        except (NotFoundException, ValidationException) as e:
            return JobResult.failed(e.message, retry=False)

        return JobResult.ok(application_id=application.id, job_listing_id=listing_id, created=created)

    async def send_daily_summary(self, payload: Dict[str, Any], job: Optional[QueueJob] = None) -> JobResult:
        """Count today's applications per auto-scan user"""
        since = start_of_day()
        counts = {}

        async with self.session_factory() as db:
            profiles = await ProfileRepository(db).get_auto_scan_profiles()
            applications = ApplicationRepository(db)
            for profile in profiles:
                counts[profile.user_id] = await applications.count_since(profile.user_id, since)

        for user_id, count in counts.items():
            logger.info(f"Daily summary for {user_id}: {count} applications", extra={"user_id": user_id})

        return JobResult.ok(users=len(counts), total_applications=sum(counts.values()), applications=counts)
