"""Utility modules."""

from case_study_engine.utils.normalization import (
    humanize_folder_name,
    normalize_label_value,
    normalize_labels,
    sanitize_folder_name,
)
from case_study_engine.utils.pagination import (
    PaginatedResponse,
    PaginationParams,
    get_pagination,
    paginate_items,
)

__all__ = [
    # Normalization
    "normalize_label_value",
    "normalize_labels",
    "sanitize_folder_name",
    "humanize_folder_name",
    # Pagination
    "PaginationParams",
    "PaginatedResponse",
    "get_pagination",
    "paginate_items",
]
