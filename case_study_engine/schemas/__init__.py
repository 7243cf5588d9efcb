"""Pydantic schemas for stored records."""

from case_study_engine.schemas.case_study import (
    ApprovedCaseStudy,
    CaseStudy,
    CaseStudySummary,
    PublishedCaseStudy,
    Questionnaire,
    RejectedCaseStudy,
    parse_case_study,
)
from case_study_engine.schemas.draft import (
    ClosedDraft,
    Draft,
    OpenDraft,
    UnderReviewDraft,
    parse_draft,
)
from case_study_engine.schemas.review import ReviewComment, ReviewThread

__all__ = [
    # Drafts
    "Draft",
    "OpenDraft",
    "UnderReviewDraft",
    "ClosedDraft",
    "parse_draft",
    # Case studies
    "CaseStudy",
    "ApprovedCaseStudy",
    "RejectedCaseStudy",
    "PublishedCaseStudy",
    "CaseStudySummary",
    "Questionnaire",
    "parse_case_study",
    # Reviews
    "ReviewComment",
    "ReviewThread",
]
