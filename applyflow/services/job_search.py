"""Job search collaborator: JSearch over RapidAPI with a static fallback"""

from datetime import datetime
from typing import List, Optional, Dict, Any
import httpx

from applyflow.core.config import settings
from applyflow.core.exceptions import ExternalServiceException
from applyflow.core.logging import get_logger
from applyflow.models.base import utcnow
from applyflow.schemas.matching import NormalizedJob, JobSearchFilters

logger = get_logger(__name__)

EMPLOYMENT_TYPE_MAP = {
    "FULL_TIME": "FULLTIME",
    "PART_TIME": "PARTTIME",
    "CONTRACT": "CONTRACTOR",
    "FREELANCE": "CONTRACTOR",
    "INTERNSHIP": "INTERN",
}


def to_jsearch_employment_types(employment_types: List[str]) -> str:
    """Map our employment types onto JSearch's comma-separated filter"""
    mapped = []
    for employment_type in employment_types:
        value = EMPLOYMENT_TYPE_MAP.get(employment_type.upper(), "FULLTIME")
        if value not in mapped:
            mapped.append(value)
    return ",".join(mapped)


def _format_salary(minimum: Optional[float], maximum: Optional[float]) -> Optional[str]:
    if minimum and maximum:
        return f"${minimum:,.0f} - ${maximum:,.0f}"
    if minimum:
        return f"From ${minimum:,.0f}"
    if maximum:
        return f"Up to ${maximum:,.0f}"
    return None


def _format_location(item: Dict[str, Any]) -> Optional[str]:
    city, state = item.get("job_city"), item.get("job_state")
    if city and state:
        return f"{city}, {state}"
    return city or state or item.get("job_country")


def _parse_posted_at(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class JSearchClient:
    """Client for the JSearch job search API"""

    def __init__(
        self,
        api_key: str,
        base_url: str = None,
        timeout: float = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize the client

        Args:
            api_key: RapidAPI key
            base_url: API root (defaults to settings.JSEARCH_BASE_URL)
            timeout: Request timeout in seconds
            client: Preconfigured httpx client; one is created per request otherwise
        """
        self.api_key = api_key
        self.base_url = (base_url or settings.JSEARCH_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.JSEARCH_TIMEOUT_SECONDS
        self._client = client

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "X-RapidAPI-Key": self.api_key,
            "X-RapidAPI-Host": httpx.URL(self.base_url).host,
        }

    async def _get(self, endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{endpoint}"
        params = {key: value for key, value in params.items() if value is not None}

        try:
            if self._client is not None:
                response = await self._client.get(url, params=params, headers=self.headers, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, params=params, headers=self.headers)
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as e:
            raise ExternalServiceException("jsearch", f"request to {endpoint} timed out") from e
        except httpx.HTTPStatusError as e:
            raise ExternalServiceException(
                "jsearch",
                f"{e.response.status_code} {e.response.reason_phrase} - {e.response.text[:200]}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise ExternalServiceException("jsearch", str(e)) from e

    def normalize(self, item: Dict[str, Any]) -> NormalizedJob:
        return NormalizedJob(
            title=item.get("job_title") or "",
            company=item.get("employer_name") or "",
            description=item.get("job_description") or "",
            url=item.get("job_apply_link"),
            location=_format_location(item),
            salary_range=_format_salary(item.get("job_min_salary"), item.get("job_max_salary")),
            employment_type=item.get("job_employment_type"),
            source=(item.get("job_publisher") or "jsearch").lower(),
            source_job_id=item.get("job_id"),
            posted_at=_parse_posted_at(item.get("job_posted_at_datetime_utc")),
        )

    async def search_jobs(
        self,
        query: str,
        location: Optional[str] = None,
        filters: Optional[JobSearchFilters] = None
    ) -> List[NormalizedJob]:
        """
        Search JSearch and normalize the results

        Args:
            query: Free-text query, typically a job title
            location: Appended to the query as "in <location>"
            filters: Employment types, posting age, remote only, page count

        Returns:
            Normalized postings
        """
        filters = filters or JobSearchFilters()
        params = {
            "query": f"{query} in {location}" if location else query,
            "page": 1,
            "num_pages": filters.num_pages,
            "date_posted": filters.date_posted or "all",
            "remote_jobs_only": "true" if filters.remote_only else None,
        }
        if filters.employment_types:
            params["employment_types"] = to_jsearch_employment_types(filters.employment_types)

        body = await self._get("/search", params)
        jobs = [self.normalize(item) for item in body.get("data") or []]
        logger.info(f"JSearch returned {len(jobs)} jobs for {params['query']!r}")
        return [job for job in jobs if job.title and job.company]


class BackupJobSource:
    """Static postings used when the primary source is unavailable"""

    async def search_jobs(
        self,
        query: str,
        location: Optional[str] = None,
        filters: Optional[JobSearchFilters] = None
    ) -> List[NormalizedJob]:
        stamp = int(utcnow().timestamp())
        return [
            NormalizedJob(
                title=query,
                company="TechCorp Inc",
                description=(
                    f"We are looking for a talented {query} to join our team. "
                    "This is a great opportunity for someone with strong technical skills."
                ),
                url="https://example.com/job/1",
                location=location or "Remote",
                salary_range="$70,000 - $120,000",
                employment_type="FULL_TIME",
                source="backup",
                source_job_id=f"backup_{stamp}_1",
                posted_at=utcnow(),
            ),
            NormalizedJob(
                title=f"Senior {query}",
                company="Innovation Labs",
                description=(
                    f"Join our innovative team as a Senior {query}. "
                    "We offer competitive compensation and great benefits."
                ),
                url="https://example.com/job/2",
                location=location or "San Francisco, CA",
                salary_range="$90,000 - $150,000",
                employment_type="FULL_TIME",
                source="backup",
                source_job_id=f"backup_{stamp}_2",
            ),
        ]


class JobSearchService:
    """Job search with graceful degradation to the backup source"""

    def __init__(self, primary: Optional[JSearchClient] = None, backup: Optional[BackupJobSource] = None):
        if primary is None and settings.JSEARCH_API_KEY:
            primary = JSearchClient(settings.JSEARCH_API_KEY)
        self.primary = primary
        self.backup = backup or BackupJobSource()

    async def search_jobs(
        self,
        query: str,
        location: Optional[str] = None,
        filters: Optional[JobSearchFilters] = None
    ) -> List[NormalizedJob]:
        """
        Search the primary source, falling back to the backup on any error

        Returns:
            Normalized postings
        """
        if self.primary is not None:
            try:
                return await self.primary.search_jobs(query, location, filters)
            except ExternalServiceException as e:
                logger.warning(f"Primary job search failed, using backup source: {e.message}")

        return await self.backup.search_jobs(query, location, filters)
