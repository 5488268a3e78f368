"""ApiKey entity - provider credential stored through the settings surface."""

from datetime import datetime

from pydantic import field_validator
from sqlmodel import Field, SQLModel

from sakuga.models.types import UTCDateTime, utc_now


class ApiKey(SQLModel, table=True):
    """ApiKey stores one secret per provider; takes precedence over environment keys."""

    __tablename__ = "api_keys"  # type: ignore[assignment]

    provider: str = Field(primary_key=True, max_length=50)
    api_key: str
    created_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime)

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        """Validate provider id is alphanumeric + underscores only."""
        if not v.replace("_", "").isalnum():
            raise ValueError("Provider must be alphanumeric with underscores only")
        return v
