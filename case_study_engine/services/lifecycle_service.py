"""
Case study lifecycle: drafts through review to approved/rejected case studies.

State machine:
    draft <-> under_review -> approved | rejected (case study) ; approved -> published

approve/reject run a multi-step sequence. Steps up to and including the metadata
write and document generation are the critical path; the draft status stamp, the
review comment copy and the draft deletion are best-effort and never fail the call.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar

import anyio

from case_study_engine.core.async_utils import KeyedLock
from case_study_engine.core.errors import (
    InvalidTransitionError,
    NonFatalSideEffectError,
    NotFoundError,
    ValidationError,
)
from case_study_engine.core.structured_logging import build_log_context
from case_study_engine.schemas.base import utc_now
from case_study_engine.schemas.case_study import (
    APPROVED,
    PUBLISHED,
    REJECTED,
    ApprovedCaseStudy,
    CaseStudy,
    PublishedCaseStudy,
    Questionnaire,
    RejectedCaseStudy,
)
from case_study_engine.schemas.draft import (
    UNTITLED_DRAFT,
    ClosedDraft,
    Draft,
    OpenDraft,
    UnderReviewDraft,
)
from case_study_engine.services.blob_store import blob_store_from_settings
from case_study_engine.services.case_study_cache import CaseStudyCache
from case_study_engine.services.case_study_store import CaseStudyStore
from case_study_engine.services.document_service import (
    DocumentGenerator,
    DocumentService,
    case_study_file_name,
    one_pager_file_name,
)
from case_study_engine.services.draft_service import DraftStore
from case_study_engine.services.label_service import LabelCatalog, validate_case_study_labels
from case_study_engine.services.review_service import ReviewService

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Payload keys that identify the draft rather than describe the case study.
_DRAFT_ID_KEYS = ("id", "draftId")

BASIC_INFO_FIELDS = ("title", "pointOfContact", "duration", "teamSize", "customer", "industry", "useCase")
CONTENT_FIELDS = (
    "overview",
    "challenge",
    "solution",
    "implementation",
    "results",
    "lessonsLearned",
    "conclusion",
    "executiveSummary",
    "implementationWorkstreams",
    "architectureDiagrams",
)
METRICS_FIELDS = (
    "performanceImprovement",
    "costReduction",
    "timeSavings",
    "userSatisfaction",
    "costSavings",
    "otherBenefits",
)
TECHNICAL_FIELDS = ("awsServices", "architecture", "technologies")


@dataclass
class ApprovalResult:
    """Outcome of approve/reject. Only `case_study` is guaranteed; the flags report cleanup."""

    case_study: CaseStudy
    draft_status_updated: bool
    comments_copied: int | None
    draft_deleted: bool


def build_questionnaire(data: Mapping[str, Any], title: str) -> Questionnaire:
    """Group flat form fields into the questionnaire sections used for documents and listings."""

    def pick(fields: tuple[str, ...]) -> dict[str, Any]:
        return {field: data[field] for field in fields if data.get(field) is not None}

    basic_info = pick(BASIC_INFO_FIELDS)
    basic_info["title"] = title
    technical = pick(TECHNICAL_FIELDS)
    technical.setdefault("awsServices", [])
    return Questionnaire(
        basic_info=basic_info,
        content=pick(CONTENT_FIELDS),
        metrics=pick(METRICS_FIELDS),
        technical=technical,
    )


def _validate_payload(form_payload: Any) -> dict[str, Any]:
    if not isinstance(form_payload, Mapping):
        raise ValidationError("Form payload must be an object")
    labels = form_payload.get("labels")
    if labels is not None and not isinstance(labels, Mapping):
        raise ValidationError("labels must be a mapping of category to values")
    return {k: v for k, v in form_payload.items() if k not in _DRAFT_ID_KEYS}


def _payload_title(form_payload: Mapping[str, Any]) -> str | None:
    title = form_payload.get("title")
    if isinstance(title, str) and title.strip():
        return title.strip()
    return None


def _payload_draft_id(form_payload: Mapping[str, Any]) -> str | None:
    for key in _DRAFT_ID_KEYS:
        value = form_payload.get(key)
        if value:
            return str(value)
    return None


class LifecycleEngine:
    """Drives drafts through review into case studies and keeps the listing cache consistent."""

    def __init__(
        self,
        drafts: DraftStore,
        case_studies: CaseStudyStore,
        cache: CaseStudyCache,
        catalog: LabelCatalog,
        reviews: ReviewService,
        documents: DocumentService | None = None,
    ) -> None:
        self.drafts = drafts
        self.case_studies = case_studies
        self.cache = cache
        self.catalog = catalog
        self.reviews = reviews
        self.documents = documents
        self._draft_locks = KeyedLock()
        self._case_study_locks = KeyedLock()
        self._create_lock = anyio.Lock()
        self._folder_lock = anyio.Lock()

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    async def create(self, form_payload: Mapping[str, Any]) -> Draft:
        """
        Save a draft. Also used for every later save of the same draft.

        An explicit id updates that draft in place (status unchanged). Without one,
        an active draft with the same title is reused instead of creating a duplicate.
        """
        data = _validate_payload(form_payload)
        title = _payload_title(form_payload) or UNTITLED_DRAFT
        draft_id = _payload_draft_id(form_payload)

        if draft_id is None:
            async with self._create_lock:
                existing = await self.drafts.find_active_by_title(title)
                if existing is None:
                    return await self._create_new(str(uuid.uuid4()), title, data)
                draft_id = existing.id
            logger.info(
                "Reusing existing draft with matching title",
                extra=build_log_context(operation="create", draft_id=draft_id),
            )

        async with self._draft_locks.hold(draft_id):
            draft = await self.drafts.get(draft_id)
            if draft is None:
                return await self._create_new(draft_id, title, data)
            if not draft.is_active:
                raise InvalidTransitionError(f"Draft {draft_id} is already {draft.status}")
            updated = draft.model_copy(update={"title": title, "data": data, "updated_at": utc_now()})
            await self.drafts.put(updated)
        logger.info(
            "Draft saved",
            extra=build_log_context(operation="create", draft_id=draft_id, status=updated.status),
        )
        return updated

    save_draft = create

    async def _create_new(self, draft_id: str, title: str, data: dict[str, Any]) -> OpenDraft:
        now = utc_now()
        draft = OpenDraft(id=draft_id, title=title, data=data, created_at=now, updated_at=now)
        await self.drafts.put(draft)
        logger.info("Draft created", extra=build_log_context(operation="create", draft_id=draft_id))
        return draft

    async def submit_for_review(self, draft_id: str, form_payload: Mapping[str, Any]) -> UnderReviewDraft:
        data = _validate_payload(form_payload)
        async with self._draft_locks.hold(draft_id):
            draft = await self._require_active_draft(draft_id)
            now = utc_now()
            submitted = UnderReviewDraft(
                id=draft.id,
                title=_payload_title(form_payload) or draft.title,
                data=data,
                created_at=draft.created_at,
                updated_at=now,
                submitted_at=now,
            )
            await self.drafts.put(submitted)
        logger.info(
            "Draft submitted for review",
            extra=build_log_context(operation="submit_for_review", draft_id=draft_id, status=submitted.status),
        )
        return submitted

    async def resubmit(self, draft_id: str, form_payload: Mapping[str, Any]) -> UnderReviewDraft:
        """Submit again after incorporating feedback. No version is tracked."""
        return await self.submit_for_review(draft_id, form_payload)

    async def incorporate_feedback(self, draft_id: str) -> OpenDraft:
        """Pull an under-review draft back to editable; the form payload is left alone."""
        async with self._draft_locks.hold(draft_id):
            draft = await self._require_draft(draft_id)
            if not isinstance(draft, UnderReviewDraft):
                raise InvalidTransitionError(
                    f"Draft {draft_id} is {draft.status}; only drafts under review can incorporate feedback"
                )
            reopened = OpenDraft(
                id=draft.id,
                title=draft.title,
                data=draft.data,
                created_at=draft.created_at,
                updated_at=utc_now(),
                submitted_at=draft.submitted_at,
            )
            await self.drafts.put(reopened)
        logger.info(
            "Draft reopened to incorporate feedback",
            extra=build_log_context(operation="incorporate_feedback", draft_id=draft_id, status=reopened.status),
        )
        return reopened

    async def get_draft(self, draft_id: str) -> Draft:
        return await self._require_draft(draft_id)

    async def list_drafts(self, include_closed: bool = False) -> list[Draft]:
        drafts = await self.drafts.list()
        if include_closed:
            return drafts
        return [d for d in drafts if d.is_active]

    async def _require_draft(self, draft_id: str) -> Draft:
        draft = await self.drafts.get(draft_id)
        if draft is None:
            raise NotFoundError(f"Draft not found: {draft_id}")
        return draft

    async def _require_active_draft(self, draft_id: str) -> Draft:
        draft = await self._require_draft(draft_id)
        if not draft.is_active:
            raise InvalidTransitionError(f"Draft {draft_id} is already {draft.status}")
        return draft

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    async def approve(self, draft_id: str) -> ApprovalResult:
        return await self._decide(draft_id, APPROVED)

    async def reject(self, draft_id: str) -> ApprovalResult:
        return await self._decide(draft_id, REJECTED)

    async def _decide(self, draft_id: str, status: str) -> ApprovalResult:
        async with self._draft_locks.hold(draft_id):
            draft = await self._require_draft(draft_id)
            if not isinstance(draft, UnderReviewDraft):
                raise InvalidTransitionError(
                    f"Draft {draft_id} is {draft.status}; only drafts under review can be {status}"
                )

            catalog = await self.catalog.get_catalog()
            labels = validate_case_study_labels(draft.data.get("labels"), catalog)

            # Allocation and the first write under the folder must not interleave.
            async with self._folder_lock:
                folder_name = await self.case_studies.allocate_folder_name(draft.title, draft_id=draft.id)
                case_study = self._build_case_study(draft, folder_name, status, labels)
                await self.case_studies.put(case_study)
            log_context = build_log_context(
                operation=status, draft_id=draft_id, folder_name=folder_name, status=status
            )
            logger.info("Case study metadata saved", extra=log_context)

            if self.documents is not None:
                try:
                    await self.documents.generate_and_upload(
                        folder_name,
                        case_study.questionnaire.model_dump(by_alias=True),
                        case_study.labels,
                    )
                except Exception:
                    logger.error("Document generation failed after metadata write", extra=log_context)
                    # A leftover folder is picked up again by allocate_folder_name on retry.
                    await self._best_effort(
                        "case study rollback",
                        lambda: self.case_studies.delete_folder(folder_name),
                        log_context,
                    )
                    self.cache.invalidate()
                    raise
            else:
                logger.info("No document generator configured, skipping documents", extra=log_context)

            status_updated, _ = await self._best_effort(
                "draft status update", lambda: self._mark_draft_closed(draft, status), log_context
            )
            comments_ok, comments_copied = await self._best_effort(
                "review comment copy",
                lambda: self.reviews.copy_draft_comments(draft_id, folder_name),
                log_context,
            )

            self.cache.invalidate()

            draft_deleted, _ = await self._best_effort(
                "draft deletion", lambda: self.drafts.delete(draft_id), log_context
            )

        logger.info("Draft converted to %s case study", status, extra=log_context)
        return ApprovalResult(
            case_study=case_study,
            draft_status_updated=status_updated,
            comments_copied=comments_copied if comments_ok else None,
            draft_deleted=draft_deleted,
        )

    def _build_case_study(
        self, draft: Draft, folder_name: str, status: str, labels: dict[str, list[str]]
    ) -> CaseStudy:
        now = utc_now()
        fields: dict[str, Any] = dict(
            id=folder_name,
            folder_name=folder_name,
            title=draft.title,
            original_title=draft.title,
            labels=labels,
            custom_metrics=draft.data.get("customMetrics") or [],
            questionnaire=build_questionnaire(draft.data, draft.title),
            created_at=now,
            updated_at=now,
            original_draft_id=draft.id,
        )
        if self.documents is not None:
            fields["file_name"] = case_study_file_name(folder_name)
            fields["one_pager_file_name"] = one_pager_file_name(folder_name)
        if status == APPROVED:
            return ApprovedCaseStudy(approved_at=now, **fields)
        return RejectedCaseStudy(rejected_at=now, **fields)

    async def _mark_draft_closed(self, draft: Draft, status: str) -> None:
        closed = ClosedDraft(
            id=draft.id,
            title=draft.title,
            data=draft.data,
            status=status,
            created_at=draft.created_at,
            updated_at=utc_now(),
            submitted_at=draft.submitted_at,
        )
        await self.drafts.put(closed)

    async def _best_effort(
        self,
        step: str,
        action: Callable[[], Awaitable[T]],
        log_context: dict[str, Any],
    ) -> tuple[bool, T | None]:
        """Run a follow-up step whose failure must not undo the committed case study."""
        try:
            return True, await action()
        except Exception as e:
            error = NonFatalSideEffectError(step, e)
            logger.warning("Non-fatal step failed: %s", error, extra=log_context)
            return False, None

    # ------------------------------------------------------------------
    # Case studies
    # ------------------------------------------------------------------

    async def get_case_study(self, folder_name: str) -> CaseStudy:
        case_study = await self.case_studies.get(folder_name)
        if case_study is None:
            raise NotFoundError(f"Case study not found: {folder_name}")
        return case_study

    async def publish(self, folder_name: str) -> PublishedCaseStudy:
        """Terminal transition; only approved case studies can be published."""
        async with self._case_study_locks.hold(folder_name):
            case_study = await self.get_case_study(folder_name)
            if case_study.status == PUBLISHED:
                raise InvalidTransitionError(f"Case study {folder_name} is already published")
            if case_study.status != APPROVED:
                raise InvalidTransitionError(
                    f"Case study {folder_name} is {case_study.status}; only approved case studies can be published"
                )
            now = utc_now()
            published = PublishedCaseStudy(
                **case_study.model_dump(exclude={"status", "updated_at"}),
                updated_at=now,
                published_at=now,
            )
            await self.case_studies.put(published)
            self.cache.invalidate()
        logger.info(
            "Case study published",
            extra=build_log_context(operation="publish", folder_name=folder_name, status=PUBLISHED),
        )
        return published

    async def update_case_study_labels(self, folder_name: str, labels: Mapping[str, Any] | None) -> CaseStudy:
        """Replace a case study's labels with a freshly validated set."""
        if labels is not None and not isinstance(labels, Mapping):
            raise ValidationError("labels must be a mapping of category to values")
        async with self._case_study_locks.hold(folder_name):
            case_study = await self.get_case_study(folder_name)
            if case_study.status == PUBLISHED:
                raise InvalidTransitionError(f"Case study {folder_name} is published and cannot be edited")
            catalog = await self.catalog.get_catalog()
            validated = validate_case_study_labels(labels, catalog)
            updated = case_study.model_copy(update={"labels": validated, "updated_at": utc_now()})
            await self.case_studies.put(updated)
            self.cache.invalidate()
        logger.info(
            "Case study labels updated",
            extra=build_log_context(operation="update_labels", folder_name=folder_name),
        )
        return updated


def build_engine(generator: DocumentGenerator | None = None) -> LifecycleEngine:
    """Wire an engine against the configured blob store."""
    store = blob_store_from_settings()
    case_studies = CaseStudyStore(store)
    return LifecycleEngine(
        drafts=DraftStore(store),
        case_studies=case_studies,
        cache=CaseStudyCache(case_studies),
        catalog=LabelCatalog(store),
        reviews=ReviewService(store),
        documents=DocumentService(generator, case_studies) if generator is not None else None,
    )
