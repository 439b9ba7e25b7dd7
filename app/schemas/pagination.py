"""Generic page wrapper used by the search endpoints."""

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class PaginatedResponse(BaseModel, Generic[T]):
    """One page of results plus the number of matches across all pages."""
    data: list[T]
    total_count: int
