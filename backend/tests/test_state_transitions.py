"""State transition tests for QueueJob model.

Tests focus on validating the job lifecycle state machine:
- pending -> processing -> failed
- failed -> pending only through retry (error cleared, retry_count + 1)
- Invalid transitions are rejected and leave the job unchanged
"""

import pytest

from sakuga.models.job import JobStatus, QueueJob
from sakuga.services.exceptions import InvalidJobStateError


@pytest.mark.asyncio
async def test_valid_state_transitions(session):
    """Test the failure/retry cycle: pending -> processing -> failed -> pending."""
    job = QueueJob(prompt="a cat", provider="mock")
    session.add(job)
    await session.flush()
    assert job.status == JobStatus.PENDING
    assert job.retry_count == 0

    job.mark_processing()
    assert job.status == JobStatus.PROCESSING

    job.mark_failed("rate limited")
    assert job.status == JobStatus.FAILED
    assert job.error == "rate limited"

    job.reset_for_retry()
    assert job.status == JobStatus.PENDING
    assert job.error is None
    assert job.retry_count == 1


def test_retry_increments_by_exactly_one_each_time():
    job = QueueJob(prompt="a cat", provider="mock")

    for expected in (1, 2, 3):
        job.mark_processing()
        job.mark_failed("boom")
        job.reset_for_retry()
        assert job.retry_count == expected


@pytest.mark.parametrize("status", [JobStatus.PENDING, JobStatus.PROCESSING])
def test_retry_of_non_failed_job_is_rejected(status):
    """Retrying a job that is not failed raises and leaves it unchanged."""
    job = QueueJob(prompt="a cat", provider="mock", status=status, retry_count=2)

    with pytest.raises(InvalidJobStateError) as exc_info:
        job.reset_for_retry()

    assert "Only failed jobs can be retried" in str(exc_info.value)
    assert job.status == status
    assert job.retry_count == 2


def test_mark_processing_requires_pending():
    job = QueueJob(prompt="a cat", provider="mock", status=JobStatus.FAILED, error="x")

    with pytest.raises(InvalidJobStateError):
        job.mark_processing()

    assert job.status == JobStatus.FAILED
    assert job.error == "x"


def test_mark_failed_requires_processing():
    job = QueueJob(prompt="a cat", provider="mock")

    with pytest.raises(InvalidJobStateError):
        job.mark_failed("boom")

    assert job.status == JobStatus.PENDING
    assert job.error is None
