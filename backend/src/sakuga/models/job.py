"""QueueJob entity - queued generation request with status tracking."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from sakuga.models.types import UTCDateTime, utc_now
from sakuga.services.exceptions import InvalidJobStateError


class JobStatus(str, Enum):
    """Queue job lifecycle status.

    Completed jobs are deleted, so there is no terminal success status.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    FAILED = "failed"


class QueueJob(SQLModel, table=True):
    """QueueJob is a generation request waiting for the queue processor."""

    __tablename__ = "queue"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    prompt: str
    provider: str = Field(max_length=50)
    model: Optional[str] = Field(default=None, max_length=100)
    aspect_ratio: Optional[str] = Field(default=None, max_length=10)
    count: int = Field(default=1, ge=1)
    status: JobStatus = Field(default=JobStatus.PENDING, index=True)
    error: Optional[str] = Field(default=None)
    retry_count: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime, index=True)
    updated_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime)

    def mark_processing(self) -> None:
        """Transition from pending to processing.

        Raises:
            InvalidJobStateError: If current status is not pending
        """
        if self.status != JobStatus.PENDING:
            raise InvalidJobStateError(
                f"Cannot mark processing from {self.status.value}. Job must be pending."
            )
        self.status = JobStatus.PROCESSING
        self.updated_at = utc_now()

    def mark_failed(self, message: str) -> None:
        """Transition from processing to failed and record the error message.

        Raises:
            InvalidJobStateError: If current status is not processing
        """
        if self.status != JobStatus.PROCESSING:
            raise InvalidJobStateError(
                f"Cannot mark failed from {self.status.value}. Job must be processing."
            )
        self.status = JobStatus.FAILED
        self.error = message
        self.updated_at = utc_now()

    def reset_for_retry(self) -> None:
        """Transition from failed back to pending for another attempt.

        Clears the error and increments retry_count.

        Raises:
            InvalidJobStateError: If current status is not failed
        """
        if self.status != JobStatus.FAILED:
            raise InvalidJobStateError(
                f"Cannot retry job in {self.status.value} state. Only failed jobs can be retried."
            )
        self.status = JobStatus.PENDING
        self.error = None
        self.retry_count += 1
        self.updated_at = utc_now()
