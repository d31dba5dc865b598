"""Unit tests for the job search collaborator"""

from unittest.mock import AsyncMock

import httpx
import pytest

from applyflow.core.exceptions import ExternalServiceException
from applyflow.schemas.matching import JobSearchFilters, NormalizedJob
from applyflow.services.job_search import (
    JSearchClient,
    BackupJobSource,
    JobSearchService,
    to_jsearch_employment_types,
)


JSEARCH_ITEM = {
    "job_id": "abc123",
    "job_title": "Backend Engineer",
    "employer_name": "Acme Corp",
    "job_description": "Build queue workers",
    "job_apply_link": "https://jobs.example.com/abc123",
    "job_city": "Austin",
    "job_state": "TX",
    "job_min_salary": 100000,
    "job_max_salary": 140000,
    "job_employment_type": "FULLTIME",
    "job_publisher": "LinkedIn",
    "job_posted_at_datetime_utc": "2026-10-01T12:00:00.000Z",
}


def make_client(handler) -> JSearchClient:
    transport = httpx.MockTransport(handler)
    return JSearchClient(
        "test-key",
        base_url="https://jsearch.p.rapidapi.com",
        client=httpx.AsyncClient(transport=transport),
    )


class TestEmploymentTypes:

    def test_mapping(self):
        assert to_jsearch_employment_types(["FULL_TIME", "PART_TIME"]) == "FULLTIME,PARTTIME"
        assert to_jsearch_employment_types(["CONTRACT", "FREELANCE"]) == "CONTRACTOR"
        assert to_jsearch_employment_types(["internship"]) == "INTERN"

    def test_unknown_types_default_to_full_time(self):
        assert to_jsearch_employment_types(["TEMPORARY"]) == "FULLTIME"


class TestJSearchClient:
    """Test cases for JSearchClient"""

    @pytest.mark.asyncio
    async def test_search_builds_request_and_normalizes(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["request"] = request
            return httpx.Response(200, json={"data": [JSEARCH_ITEM]})

        client = make_client(handler)
        jobs = await client.search_jobs(
            "Backend Engineer",
            "Austin, TX",
            JobSearchFilters(employment_types=["FULL_TIME", "CONTRACT"], remote_only=True)
        )

        request = captured["request"]
        assert request.url.path == "/search"
        assert request.url.params["query"] == "Backend Engineer in Austin, TX"
        assert request.url.params["employment_types"] == "FULLTIME,CONTRACTOR"
        assert request.url.params["remote_jobs_only"] == "true"
        assert request.url.params["date_posted"] == "all"
        assert request.headers["X-RapidAPI-Key"] == "test-key"
        assert request.headers["X-RapidAPI-Host"] == "jsearch.p.rapidapi.com"

        assert len(jobs) == 1
        job = jobs[0]
        assert job.title == "Backend Engineer"
        assert job.company == "Acme Corp"
        assert job.location == "Austin, TX"
        assert job.salary_range == "$100,000 - $140,000"
        assert job.source == "linkedin"
        assert job.source_job_id == "abc123"
        assert job.posted_at.year == 2026

    @pytest.mark.asyncio
    async def test_postings_without_title_or_company_are_dropped(self):
        def handler(request):
            return httpx.Response(200, json={"data": [JSEARCH_ITEM, {"job_id": "x", "job_title": "Orphan"}]})

        jobs = await make_client(handler).search_jobs("Backend Engineer")

        assert [job.source_job_id for job in jobs] == ["abc123"]

    @pytest.mark.asyncio
    async def test_http_error_raises_external_service_exception(self):
        def handler(request):
            return httpx.Response(429, text="Too many requests")

        with pytest.raises(ExternalServiceException) as exc_info:
            await make_client(handler).search_jobs("Backend Engineer")

        assert exc_info.value.status_code == 502
        assert "429" in exc_info.value.message
        assert exc_info.value.service == "jsearch"

    @pytest.mark.asyncio
    async def test_timeout_raises_external_service_exception(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(ExternalServiceException, match="timed out"):
            await make_client(handler).search_jobs("Backend Engineer")

    def test_salary_and_location_fallbacks(self):
        client = JSearchClient("k")
        job = client.normalize({
            "job_title": "Engineer",
            "employer_name": "Acme",
            "job_country": "US",
            "job_min_salary": 90000,
        })

        assert job.location == "US"
        assert job.salary_range == "From $90,000"
        assert job.source == "jsearch"
        assert job.posted_at is None


class TestJobSearchService:
    """Test cases for fallback behavior"""

    @pytest.mark.asyncio
    async def test_backup_used_without_primary(self, monkeypatch):
        from applyflow.core.config import settings
        monkeypatch.setattr(settings, "JSEARCH_API_KEY", None)

        jobs = await JobSearchService().search_jobs("Data Engineer", "Remote")

        assert [job.company for job in jobs] == ["TechCorp Inc", "Innovation Labs"]
        assert jobs[1].title == "Senior Data Engineer"
        assert all(job.source == "backup" for job in jobs)

    @pytest.mark.asyncio
    async def test_falls_back_when_primary_fails(self):
        primary = AsyncMock()
        primary.search_jobs = AsyncMock(side_effect=ExternalServiceException("jsearch", "503"))
        backup = AsyncMock()
        backup.search_jobs = AsyncMock(return_value=[NormalizedJob(title="Engineer", company="Acme")])

        jobs = await JobSearchService(primary=primary, backup=backup).search_jobs("Engineer")

        assert jobs[0].company == "Acme"
        backup.search_jobs.assert_called_once_with("Engineer", None, None)

    @pytest.mark.asyncio
    async def test_primary_results_returned(self):
        primary = AsyncMock()
        primary.search_jobs = AsyncMock(return_value=[NormalizedJob(title="Engineer", company="Primary")])

        jobs = await JobSearchService(primary=primary, backup=BackupJobSource()).search_jobs("Engineer")

        assert [job.company for job in jobs] == ["Primary"]
