"""Unit tests for the queue contract types"""

import pytest

from applyflow.core.exceptions import ValidationException
from applyflow.core.task_queue import JobType, JobResult, QueueMetrics


class TestJobType:
    """Test cases for JobType"""

    def test_parse_accepts_value_and_member(self):
        assert JobType.parse("analyze_job_match") is JobType.ANALYZE_JOB_MATCH
        assert JobType.parse(JobType.CLEANUP_OLD_JOBS) is JobType.CLEANUP_OLD_JOBS

    def test_parse_rejects_unknown_type(self):
        """Test unknown job types are a validation error listing allowed values"""
        with pytest.raises(ValidationException) as exc_info:
            JobType.parse("resume_parsing")

        assert exc_info.value.status_code == 400
        assert "resume_parsing" in exc_info.value.message
        assert "user_job_scan" in exc_info.value.details["allowed"]

    def test_all_job_types(self):
        assert {member.value for member in JobType} == {
            "user_job_scan",
            "automated_job_scan",
            "analyze_job_match",
            "process_application",
            "cleanup_expired_reviews",
            "cleanup_expired_notifications",
            "cleanup_old_jobs",
            "send_daily_summary",
        }


class TestJobResult:
    """Test cases for JobResult"""

    def test_ok_carries_data(self):
        result = JobResult.ok(saved=3)
        assert result.success is True
        assert result.data == {"saved": 3}

    def test_ok_without_data(self):
        assert JobResult.ok().data is None

    def test_failed_carries_hints(self):
        result = JobResult.failed("boom", retry=False, retry_delay=5.0)
        assert result.success is False
        assert result.error == "boom"
        assert result.retry is False
        assert result.retry_delay == 5.0

    def test_coerce_dict_and_none(self):
        """Test plain dicts and None count as success"""
        assert JobResult.coerce({"a": 1}) == JobResult(success=True, data={"a": 1})
        assert JobResult.coerce(None) == JobResult(success=True)

    def test_coerce_passes_results_through(self):
        result = JobResult.failed("nope")
        assert JobResult.coerce(result) is result

    def test_coerce_rejects_other_types(self):
        with pytest.raises(TypeError):
            JobResult.coerce("done")


class TestQueueMetrics:
    """Test cases for QueueMetrics health"""

    def test_healthy_below_thresholds(self):
        metrics = QueueMetrics(pending=500, processing=49, completed=10_000, failed=99, workers=5)
        assert metrics.is_healthy(max_failed=100, max_processing=50) is True

    @pytest.mark.parametrize("failed,processing", [(100, 0), (0, 50), (150, 60)])
    def test_unhealthy_at_thresholds(self, failed, processing):
        metrics = QueueMetrics(failed=failed, processing=processing)
        assert metrics.is_healthy(max_failed=100, max_processing=50) is False

    def test_to_dict(self):
        assert QueueMetrics(pending=1, workers=2).to_dict() == {
            "pending": 1,
            "processing": 0,
            "completed": 0,
            "failed": 0,
            "workers": 2,
        }
