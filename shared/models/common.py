"""
Common Models
=============

Base response models and utilities.

Version: 0.1.0
"""

from datetime import UTC, datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys for the web client."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class PaginatedResponse(CamelModel, Generic[T]):
    """Offset-paginated API response."""

    items: list[T]
    total: int
    limit: int
    offset: int = 0

    @computed_field(alias="hasMore")  # type: ignore[prop-decorator]
    @property
    def has_more(self) -> bool:
        """Check if more items exist past this page."""
        return self.offset + len(self.items) < self.total


class ErrorResponse(BaseModel):
    """Error response model."""

    success: bool = False
    error: str
    error_code: str | None = None
    status_code: int
    details: dict[str, Any] | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class HealthResponse(BaseModel):
    """Service health check response."""

    status: str = "healthy"
    service: str
    version: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    # Component health
    components: dict[str, dict[str, Any]] = Field(default_factory=dict)
