"""QueueJob repository for Sakuga backend.

Provides the durable job queue: enqueue, ordered scans, claim, status updates,
retry and removal.
"""

from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sakuga.models.job import JobStatus, QueueJob
from sakuga.models.types import utc_now
from sakuga.services.exceptions import InvalidJobStateError, NotFoundError


class JobRepository:
    """Repository for QueueJob entities.

    Ordering is always oldest first (created_at ASC). Claiming uses a conditional
    UPDATE (status must still be 'pending') so two processors sharing one
    database can never claim the same job.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def enqueue(self, job: QueueJob) -> QueueJob:
        """Persist a new job as pending with a zero retry count.

        Args:
            job: QueueJob entity to persist (status and retry_count are overwritten)

        Returns:
            Persisted job
        """
        job.status = JobStatus.PENDING
        job.retry_count = 0
        job.error = None
        self.session.add(job)
        await self.session.flush()
        return job

    async def get_by_id(self, job_id: UUID) -> QueueJob | None:
        """Retrieve job by UUID.

        Args:
            job_id: Job's unique identifier

        Returns:
            QueueJob if found, None otherwise
        """
        result = await self.session.execute(
            select(QueueJob).where(QueueJob.id == job_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def get_or_raise(self, job_id: UUID) -> QueueJob:
        """Retrieve job by UUID or raise NotFoundError."""
        job = await self.get_by_id(job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")
        return job

    async def list_all(self, status: JobStatus | None = None) -> list[QueueJob]:
        """Retrieve jobs ordered oldest first, optionally filtered by status.

        Args:
            status: Only return jobs in this status (default: all)

        Returns:
            List of jobs ordered by creation time (oldest first)
        """
        query = select(QueueJob)
        if status is not None:
            query = query.where(QueueJob.status == status)  # type: ignore[arg-type]
        result = await self.session.execute(
            query.order_by(QueueJob.created_at.asc(), QueueJob.id.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def list_pending(self) -> list[QueueJob]:
        """Retrieve pending jobs ordered oldest first."""
        return await self.list_all(status=JobStatus.PENDING)

    async def claim_next(self) -> QueueJob | None:
        """Claim the oldest pending job by moving it to processing.

        Query explanation:
        - SELECT id of the oldest pending job
        - UPDATE ... SET status='processing' WHERE id=:id AND status='pending'
        - rowcount 0 means another claimer won the race: look again

        Returns:
            Claimed job (status=processing), or None if nothing is pending
        """
        while True:
            result = await self.session.execute(
                select(QueueJob.id)  # type: ignore[call-overload]
                .where(QueueJob.status == JobStatus.PENDING)  # type: ignore[arg-type]
                .order_by(QueueJob.created_at.asc(), QueueJob.id.asc())  # type: ignore[attr-defined]
                .limit(1)
            )
            job_id = result.scalar_one_or_none()
            if job_id is None:
                return None

            claimed = await self.session.execute(
                update(QueueJob)
                .where(QueueJob.id == job_id)  # type: ignore[arg-type]
                .where(QueueJob.status == JobStatus.PENDING)  # type: ignore[arg-type]
                .values(status=JobStatus.PROCESSING, updated_at=utc_now())
            )
            if claimed.rowcount == 1:  # type: ignore[attr-defined]
                await self.session.flush()
                job = await self.get_by_id(job_id)
                if job is not None:
                    await self.session.refresh(job)
                return job

    async def update_status(
        self, job_id: UUID, status: JobStatus, error: str | None = None
    ) -> QueueJob:
        """Set a job's status and error message directly.

        Args:
            job_id: Job's unique identifier
            status: New status
            error: Error message to store (None clears it)

        Returns:
            Updated job

        Raises:
            NotFoundError: If job does not exist
        """
        job = await self.get_or_raise(job_id)
        job.status = status
        job.error = error
        job.updated_at = utc_now()
        self.session.add(job)
        await self.session.flush()
        return job

    async def mark_failed(self, job_id: UUID, message: str) -> QueueJob | None:
        """Mark a processing job as failed with the error message.

        Returns:
            Updated job, or None if the job no longer exists
        """
        job = await self.get_by_id(job_id)
        if job is None:
            return None
        job.mark_failed(message)
        self.session.add(job)
        await self.session.flush()
        return job

    async def remove(self, job_id: UUID) -> bool:
        """Delete a job (used on successful completion).

        Returns:
            True if a job was deleted, False if it did not exist
        """
        result = await self.session.execute(
            delete(QueueJob).where(QueueJob.id == job_id)  # type: ignore[arg-type]
        )
        await self.session.flush()
        return result.rowcount > 0  # type: ignore[attr-defined]

    async def delete_if_not_processing(self, job_id: UUID) -> None:
        """Delete a pending or failed job on user request.

        A processing job cannot be cancelled mid-flight, so deleting one is rejected.

        Raises:
            NotFoundError: If job does not exist
            InvalidJobStateError: If job is currently processing
        """
        job = await self.get_or_raise(job_id)
        if job.status == JobStatus.PROCESSING:
            raise InvalidJobStateError(
                f"Job {job_id} is processing and cannot be deleted until it finishes"
            )
        await self.session.delete(job)
        await self.session.flush()

    async def retry(self, job_id: UUID) -> QueueJob:
        """Reset a failed job to pending, clear its error and bump retry_count.

        Raises:
            NotFoundError: If job does not exist
            InvalidJobStateError: If job is not failed (job is left unchanged)
        """
        job = await self.get_or_raise(job_id)
        job.reset_for_retry()
        self.session.add(job)
        await self.session.flush()
        return job

    async def reset_processing(self) -> int:
        """Reset every processing job back to pending.

        Query:
            UPDATE queue SET status = 'pending' WHERE status = 'processing'

        Returns:
            Number of jobs reset
        """
        result = await self.session.execute(
            update(QueueJob)
            .where(QueueJob.status == JobStatus.PROCESSING)  # type: ignore[arg-type]
            .values(status=JobStatus.PENDING, updated_at=utc_now())
        )
        await self.session.flush()
        return result.rowcount  # type: ignore[attr-defined]

    async def count_by_status(self) -> dict[str, int]:
        """Count jobs per status (statuses with no jobs are reported as 0)."""
        result = await self.session.execute(
            select(QueueJob.status, func.count()).group_by(QueueJob.status)  # type: ignore[call-overload]
        )
        counts = {status.value: 0 for status in JobStatus}
        for status, count in result.all():
            counts[JobStatus(status).value] = count
        return counts
