"""Pytest configuration and shared fixtures"""

from datetime import timedelta
from typing import Any, Dict, Optional

import pytest
from sqlalchemy import update

from applyflow.core.database import Base, create_engine, create_session_factory
from applyflow.models import Profile, AutoApplySettings, JobListing
from applyflow.models.base import utcnow
from applyflow.repositories.queue_job_repository import QueueJobRepository
from applyflow.services.retry_policy import RetryPolicy
from applyflow.services.worker_pool import DatabaseQueue


@pytest.fixture
async def test_engine(tmp_path):
    """One SQLite database file per test, schema created from the models"""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'applyflow_test.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return create_session_factory(test_engine)


@pytest.fixture
def queue_repository(session_factory):
    return QueueJobRepository(session_factory)


@pytest.fixture
async def queue(queue_repository):
    """Worker pool with fast ticks and a small backoff ceiling"""
    pool = DatabaseQueue(
        repository=queue_repository,
        retry_policy=RetryPolicy(base_delay=1.0, max_delay=30.0),
        max_concurrency=5,
        poll_interval=0.05,
        visibility_timeout=900,
        worker_id="test-worker",
    )
    yield pool
    await pool.stop()


@pytest.fixture
def make_profile(session_factory):
    """Factory creating a profile with auto-apply settings"""

    async def _make_profile(user_id: str = "user-1", **settings_overrides: Any) -> Profile:
        settings_values: Dict[str, Any] = {
            "is_enabled": True,
            "auto_scan_enabled": True,
            "scan_frequency_hours": 4,
            "min_match_score": 0.8,
            "notify_min_score": 0.6,
            "auto_apply_enabled": False,
            "require_approval": True,
            "notify_on_match": True,
            "max_applications_per_day": 10,
            "excluded_companies": [],
            "excluded_keywords": [],
            "require_salary_range": False,
        }
        settings_values.update(settings_overrides)

        async with session_factory() as db:
            profile = Profile(
                user_id=user_id,
                email=f"{user_id}@example.com",
                full_name="Jordan Lee",
                job_title_prefs=["Backend Engineer"],
                years_experience=5,
                skills=[{"name": "Python", "proficiency": "expert", "years_used": 5}, "SQL"],
                preferred_locations=["Remote"],
                employment_types=["FULL_TIME"],
            )
            profile.auto_apply_settings = AutoApplySettings(**settings_values)
            db.add(profile)
            await db.commit()
            await db.refresh(profile)
            return profile

    return _make_profile


@pytest.fixture
def make_listing(session_factory):
    """Factory creating a job listing"""

    async def _make_listing(user_id: str = "user-1", **overrides: Any) -> JobListing:
        values: Dict[str, Any] = {
            "user_id": user_id,
            "title": "Backend Engineer",
            "company": "Acme Corp",
            "description": "Build queue workers in Python",
            "location": "Remote",
            "salary_range": "$100,000 - $140,000",
            "employment_type": "FULL_TIME",
            "source": "test",
        }
        values.update(overrides)
        async with session_factory() as db:
            listing = JobListing(**values)
            db.add(listing)
            await db.commit()
            await db.refresh(listing)
            return listing

    return _make_listing


@pytest.fixture
def backdate(session_factory):
    """Shift timestamp columns of rows into the past"""

    async def _backdate(model, row_id: str, days: float = 0, hours: float = 0, seconds: float = 0,
                        columns=("created_at", "updated_at"), key: Optional[str] = None):
        when = utcnow() - timedelta(days=days, hours=hours, seconds=seconds)
        primary_key = getattr(model, key or "id")
        async with session_factory() as db:
            await db.execute(
                update(model)
                .where(primary_key == row_id)
                .values(**{column: when for column in columns})
            )
            await db.commit()
        return when

    return _backdate

