"""Draft records, one type per lifecycle stage."""

from typing import Annotated, Any, Literal, Union

from pydantic import Field, TypeAdapter

from case_study_engine.schemas.base import RecordModel, UTCDateTime

DRAFT = "draft"
UNDER_REVIEW = "under_review"
APPROVED = "approved"
REJECTED = "rejected"

ACTIVE_DRAFT_STATUSES = frozenset({DRAFT, UNDER_REVIEW})
CLOSED_DRAFT_STATUSES = frozenset({APPROVED, REJECTED})

UNTITLED_DRAFT = "Untitled Draft"


class DraftBase(RecordModel):
    id: str
    title: str = UNTITLED_DRAFT
    data: dict[str, Any] = Field(default_factory=dict)
    created_at: UTCDateTime
    updated_at: UTCDateTime

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_DRAFT_STATUSES  # type: ignore[attr-defined]


class OpenDraft(DraftBase):
    """Editable draft (new, or pulled back from review to incorporate feedback)."""

    status: Literal["draft"] = DRAFT
    submitted_at: UTCDateTime | None = None


class UnderReviewDraft(DraftBase):
    """Draft submitted for review."""

    status: Literal["under_review"] = UNDER_REVIEW
    submitted_at: UTCDateTime


class ClosedDraft(DraftBase):
    """Draft already converted into a case study; kept only when cleanup failed."""

    status: Literal["approved", "rejected"]
    submitted_at: UTCDateTime | None = None


Draft = Annotated[Union[OpenDraft, UnderReviewDraft, ClosedDraft], Field(discriminator="status")]

_draft_adapter: TypeAdapter[Draft] = TypeAdapter(Draft)


def parse_draft(payload: dict[str, Any]) -> Draft:
    """Parse a stored draft; records written before statuses existed are open drafts."""
    if not payload.get("status"):
        payload = {**payload, "status": DRAFT}
    if payload["status"] == UNDER_REVIEW and not payload.get("submittedAt"):
        payload = {**payload, "submittedAt": payload.get("updatedAt")}
    return _draft_adapter.validate_python(payload)
