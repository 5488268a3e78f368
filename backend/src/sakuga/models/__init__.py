"""SQLModel database entities.

All models are imported here to ensure they're registered with SQLModel metadata
before the schema is created.
"""

from sakuga.models.api_key import ApiKey
from sakuga.models.history import GenerationType, HistoryEntry
from sakuga.models.job import JobStatus, QueueJob

__all__ = [
    "ApiKey",
    "GenerationType",
    "HistoryEntry",
    "JobStatus",
    "QueueJob",
]
