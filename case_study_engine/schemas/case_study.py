"""Case study records and listing summaries."""

from typing import Annotated, Any, Literal, Union

from pydantic import Field, TypeAdapter, field_validator, model_validator

from case_study_engine.schemas.base import RecordModel, UTCDateTime
from case_study_engine.utils.normalization import normalize_labels

APPROVED = "approved"
REJECTED = "rejected"
PUBLISHED = "published"

CASE_STUDY_STATUSES = (APPROVED, REJECTED, PUBLISHED)


class Questionnaire(RecordModel):
    basic_info: dict[str, Any] = Field(default_factory=dict)
    content: dict[str, Any] = Field(default_factory=dict)
    metrics: dict[str, Any] = Field(default_factory=dict)
    technical: dict[str, Any] = Field(default_factory=dict)


class CaseStudyBase(RecordModel):
    id: str
    folder_name: str
    original_title: str
    title: str
    labels: dict[str, list[str]] = Field(default_factory=dict)
    custom_metrics: list[Any] = Field(default_factory=list)
    questionnaire: Questionnaire = Field(default_factory=Questionnaire)
    created_at: UTCDateTime
    updated_at: UTCDateTime
    original_draft_id: str | None = None
    file_name: str | None = None
    one_pager_file_name: str | None = None

    @model_validator(mode="before")
    @classmethod
    def fill_titles(cls, data: Any) -> Any:
        """Older metadata only carried originalTitle; keep both titles populated."""
        if not isinstance(data, dict):
            return data
        title = data.get("title")
        original = data.get("originalTitle", data.get("original_title"))
        if title and not original:
            data = {**data, "originalTitle": title}
        elif original and not title:
            data = {**data, "title": original}
        return data

    @field_validator("labels", mode="before")
    @classmethod
    def normalize_stored_labels(cls, v: Any) -> dict[str, list[str]]:
        return normalize_labels(v)


class ApprovedCaseStudy(CaseStudyBase):
    status: Literal["approved"] = APPROVED
    approved_at: UTCDateTime | None = None


class RejectedCaseStudy(CaseStudyBase):
    status: Literal["rejected"] = REJECTED
    rejected_at: UTCDateTime | None = None


class PublishedCaseStudy(CaseStudyBase):
    status: Literal["published"] = PUBLISHED
    approved_at: UTCDateTime | None = None
    published_at: UTCDateTime | None = None


CaseStudy = Annotated[
    Union[ApprovedCaseStudy, RejectedCaseStudy, PublishedCaseStudy],
    Field(discriminator="status"),
]

_case_study_adapter: TypeAdapter[CaseStudy] = TypeAdapter(CaseStudy)


def parse_case_study(payload: dict[str, Any]) -> CaseStudy:
    """Parse stored metadata; records written before statuses existed count as approved."""
    if not payload.get("status"):
        payload = {**payload, "status": APPROVED}
    if not payload.get("updatedAt") and payload.get("createdAt"):
        payload = {**payload, "updatedAt": payload["createdAt"]}
    return _case_study_adapter.validate_python(payload)


class CaseStudySummary(RecordModel):
    """One row of the case study listing."""

    id: str
    folder_name: str
    title: str
    status: str
    labels: dict[str, list[str]] = Field(default_factory=dict)
    questionnaire: Questionnaire = Field(default_factory=Questionnaire)
    created_at: UTCDateTime | None = None
    updated_at: UTCDateTime | None = None
    file_name: str | None = None
    one_pager_file_name: str | None = None

    @classmethod
    def from_case_study(cls, case_study: CaseStudyBase) -> "CaseStudySummary":
        return cls(
            id=case_study.id,
            folder_name=case_study.folder_name,
            title=case_study.title,
            status=case_study.status,  # type: ignore[attr-defined]
            labels=case_study.labels,
            questionnaire=case_study.questionnaire,
            created_at=case_study.created_at,
            updated_at=case_study.updated_at,
            file_name=case_study.file_name,
            one_pager_file_name=case_study.one_pager_file_name,
        )
