"""HistoryEntry entity - one generated image."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from sakuga.models.types import UTCDateTime, utc_now


class GenerationType(str, Enum):
    """Operation that produced a history entry."""

    GENERATE = "generate"
    EDIT = "edit"
    INPAINT = "inpaint"
    UPSCALE = "upscale"


class HistoryEntry(SQLModel, table=True):
    """HistoryEntry records a single generated image and what it cost.

    Entries produced by one multi-image request share a variant_group.
    """

    __tablename__ = "history"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    prompt: str
    type: GenerationType = Field(default=GenerationType.GENERATE, index=True)
    provider: str = Field(max_length=50, index=True)
    model: Optional[str] = Field(default=None, max_length=100)
    aspect_ratio: Optional[str] = Field(default=None, max_length=10)
    image_url: str
    cost: float = Field(default=0.0, ge=0)
    variant_group: Optional[UUID] = Field(default=None, index=True)
    collection_id: Optional[UUID] = Field(default=None, index=True)
    from_queue: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime, index=True)
