"""Shared Pydantic base models."""

from __future__ import annotations

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 20

T = TypeVar("T")


class BaseSchema(BaseModel):
    """Base schema with common configuration (camelCase on the wire)."""
    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class PaginationParams(BaseModel):
    """Pagination query parameters.

    Oversized page sizes are clamped to MAX_PAGE_SIZE rather than rejected.
    """
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1)

    @property
    def limit(self) -> int:
        return min(self.page_size, MAX_PAGE_SIZE)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class PaginatedResponse(BaseSchema, Generic[T]):
    """Standard list envelope: {data, total, page, pageSize}."""
    data: list[T]
    total: int
    page: int
    page_size: int


class HealthResponse(BaseModel):
    """Standard health check response."""
    status: str = "healthy"
    service: str
    version: str = "0.1.0"


class ErrorResponse(BaseModel):
    """Standard error response."""
    detail: str
    error_code: Optional[str] = None
