"""Search, label filtering and pagination over the case study listing."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime, timezone

from case_study_engine.schemas.case_study import CaseStudySummary
from case_study_engine.services.case_study_cache import CaseStudyCache
from case_study_engine.utils.pagination import PaginatedResponse, get_pagination, paginate_items

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _searchable_text(summary: CaseStudySummary) -> str:
    q = summary.questionnaire
    parts = [
        summary.title,
        q.basic_info.get("pointOfContact"),
        q.content.get("challenge"),
        q.content.get("solution"),
        q.content.get("results"),
    ]
    parts.extend(value for values in summary.labels.values() for value in values)
    return " ".join(str(p) for p in parts if p).lower()


def filter_case_studies(
    summaries: Sequence[CaseStudySummary],
    *,
    search: str | None = None,
    label_filters: Mapping[str, str | None] | None = None,
    status: str | None = None,
) -> list[CaseStudySummary]:
    """Apply text search, exact-match label filters and a status filter; newest first."""
    results = list(summaries)

    needle = (search or "").strip().lower()
    if needle:
        results = [s for s in results if needle in _searchable_text(s)]

    for category, wanted in (label_filters or {}).items():
        if wanted:
            results = [s for s in results if wanted in s.labels.get(category, [])]

    if status:
        results = [s for s in results if s.status == status]

    results.sort(key=lambda s: s.created_at or _EPOCH, reverse=True)
    return results


async def search_case_studies(
    cache: CaseStudyCache,
    *,
    search: str | None = None,
    label_filters: Mapping[str, str | None] | None = None,
    status: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> PaginatedResponse[CaseStudySummary]:
    """Search the cached listing and return one page of results."""
    summaries = await cache.read()
    filtered = filter_case_studies(summaries, search=search, label_filters=label_filters, status=status)
    pagination = get_pagination(page, per_page)
    items, total = paginate_items(filtered, pagination)
    return PaginatedResponse.create(items, total, pagination)
