"""Request/response models shared by the API routes.

JSON field names are camelCase (``aspectRatio``, ``retryCount``, ...); Python
attribute names stay snake_case.
"""

from datetime import datetime
from typing import Annotated
from uuid import UUID

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from sakuga.core.config import Settings
from sakuga.models.history import GenerationType
from sakuga.services.exceptions import InvalidRequestError

ASPECT_RATIOS = ("1:1", "16:9", "9:16", "4:3", "3:4", "3:2", "2:3")


class CamelModel(BaseModel):
    """Base model with camelCase aliases that also accepts snake_case input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        protected_namespaces=(),
    )


def validate_aspect_ratio(value: str | None) -> str | None:
    if value is not None and value not in ASPECT_RATIOS:
        raise ValueError(f"Invalid aspect ratio. Valid options: {', '.join(ASPECT_RATIOS)}")
    return value


def validate_prompt(value: str) -> str:
    if not value.strip():
        raise ValueError("Prompt cannot be empty")
    return value


Prompt = Annotated[str, AfterValidator(validate_prompt)]
AspectRatio = Annotated[str | None, AfterValidator(validate_aspect_ratio)]


def check_limits(settings: Settings, prompt: str | None = None, count: int | None = None) -> None:
    """Apply the configured prompt length and batch size limits.

    Raises:
        InvalidRequestError: A limit is exceeded
    """
    if prompt is not None and len(prompt) > settings.max_prompt_length:
        raise InvalidRequestError(
            f"Prompt too long (max {settings.max_prompt_length} characters)"
        )
    if count is not None and count > settings.max_images_per_request:
        raise InvalidRequestError(
            f"Count must be between 1 and {settings.max_images_per_request}"
        )


class GenerationRequest(CamelModel):
    """Text-to-image parameters shared by the queue and the generate endpoint."""

    prompt: Prompt = Field(..., min_length=1, description="Text prompt")
    provider: str = Field(default="openai", description="Provider id (e.g., openai, fal)")
    model: str | None = Field(default=None, description="Model id; provider default if omitted")
    aspect_ratio: AspectRatio = Field(default=None, description="One of 1:1, 16:9, 9:16, ...")
    count: int = Field(default=1, ge=1, description="Number of images to generate")


class HistoryEntryResponse(CamelModel):
    """One generated image as stored in history."""

    id: UUID
    prompt: str
    type: GenerationType
    provider: str
    model: str | None = None
    aspect_ratio: str | None = None
    image_url: str
    cost: float
    variant_group: UUID | None = None
    collection_id: UUID | None = None
    from_queue: bool = False
    created_at: datetime
