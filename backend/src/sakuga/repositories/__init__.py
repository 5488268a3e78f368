"""Repository layer for Sakuga backend.

Provides data access abstractions for all domain entities.
Each repository is self-contained; there is no shared base class.
"""

from sakuga.repositories.api_key import ApiKeyRepository
from sakuga.repositories.history import HistoryRepository
from sakuga.repositories.job import JobRepository

__all__ = [
    "ApiKeyRepository",
    "HistoryRepository",
    "JobRepository",
]
