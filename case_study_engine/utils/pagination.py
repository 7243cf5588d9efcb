"""Pagination utilities for listings."""

from dataclasses import dataclass
from typing import Generic, Sequence, TypeVar


T = TypeVar("T")

# Pagination limits
DEFAULT_PAGE = 1
DEFAULT_PER_PAGE = 10
MAX_PER_PAGE = 100


@dataclass
class PaginationParams:
    """Pagination parameters (1-indexed page)."""
    page: int
    per_page: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page


def get_pagination(page: int | None = None, per_page: int | None = None) -> PaginationParams:
    """Clamp raw page/per_page values into valid pagination parameters."""
    page = page if page and page > 0 else DEFAULT_PAGE
    per_page = per_page if per_page and per_page > 0 else DEFAULT_PER_PAGE
    return PaginationParams(page=page, per_page=min(per_page, MAX_PER_PAGE))


@dataclass
class PaginatedResponse(Generic[T]):
    """Standard paginated response structure."""
    items: list[T]
    total: int
    page: int
    per_page: int
    pages: int

    @property
    def has_next(self) -> bool:
        return self.page < self.pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    @classmethod
    def create(cls, items: list[T], total: int, pagination: PaginationParams) -> "PaginatedResponse[T]":
        pages = (total + pagination.per_page - 1) // pagination.per_page if pagination.per_page > 0 else 0
        return cls(
            items=items,
            total=total,
            page=pagination.page,
            per_page=pagination.per_page,
            pages=pages,
        )


def paginate_items(items: Sequence[T], pagination: PaginationParams) -> tuple[list[T], int]:
    """
    Apply pagination to an in-memory sequence.

    Returns:
        (items, total_count)
    """
    total = len(items)
    start = pagination.offset
    return list(items[start : start + pagination.per_page]), total
