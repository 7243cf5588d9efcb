"""Tests for the case study lifecycle engine."""

import logging

import anyio
import pytest

from case_study_engine.core.errors import (
    BackingStoreError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from case_study_engine.schemas.draft import OpenDraft, UnderReviewDraft
from case_study_engine.services.case_study_store import metadata_key
from case_study_engine.services.draft_service import draft_key
from case_study_engine.services.label_service import LABELS_KEY
from case_study_engine.services.lifecycle_service import LifecycleEngine, build_questionnaire


async def _under_review(engine, payload) -> str:
    draft = await engine.create(payload)
    await engine.submit_for_review(draft.id, payload)
    return draft.id


# =============================================================================
# Drafts
# =============================================================================

@pytest.mark.asyncio
async def test_create_defaults_title_and_status(engine):
    draft = await engine.create({"overview": "text"})

    assert isinstance(draft, OpenDraft)
    assert draft.title == "Untitled Draft"
    assert draft.data == {"overview": "text"}


@pytest.mark.asyncio
async def test_resave_with_same_title_reuses_draft(engine):
    first = await engine.create({"title": "X", "overview": "v1"})
    second = await engine.create({"title": "X", "overview": "v2"})

    drafts = await engine.list_drafts()
    assert second.id == first.id
    assert len(drafts) == 1
    assert drafts[0].data["overview"] == "v2"
    assert drafts[0].created_at == first.created_at


@pytest.mark.asyncio
async def test_save_with_explicit_id_updates_in_place_and_keeps_status(engine):
    draft_id = await _under_review(engine, {"title": "X"})

    saved = await engine.create({"id": draft_id, "title": "X renamed", "overview": "more"})

    assert saved.id == draft_id
    assert isinstance(saved, UnderReviewDraft)
    assert saved.title == "X renamed"
    assert "id" not in saved.data


@pytest.mark.asyncio
async def test_labels_must_be_a_mapping(engine):
    with pytest.raises(ValidationError):
        await engine.create({"title": "X", "labels": ["client"]})
    with pytest.raises(ValidationError):
        await engine.create(["not", "a", "payload"])


@pytest.mark.asyncio
async def test_submit_requires_existing_draft(engine):
    with pytest.raises(NotFoundError):
        await engine.submit_for_review("missing", {"title": "X"})


@pytest.mark.asyncio
async def test_submit_overwrites_payload_and_stamps_submitted_at(engine):
    draft = await engine.create({"title": "X", "overview": "old"})

    submitted = await engine.submit_for_review(draft.id, {"title": "X", "overview": "new"})

    assert submitted.status == "under_review"
    assert submitted.submitted_at is not None
    assert (await engine.get_draft(draft.id)).data["overview"] == "new"


@pytest.mark.asyncio
async def test_incorporate_feedback_round_trip(engine):
    draft_id = await _under_review(engine, {"title": "X", "overview": "keep me"})

    reopened = await engine.incorporate_feedback(draft_id)
    assert reopened.status == "draft"
    assert reopened.data["overview"] == "keep me"
    assert reopened.submitted_at is not None

    with pytest.raises(InvalidTransitionError):
        await engine.incorporate_feedback(draft_id)

    resubmitted = await engine.resubmit(draft_id, {"title": "X", "overview": "revised"})
    assert resubmitted.status == "under_review"
    assert "version" not in resubmitted.data


@pytest.mark.asyncio
async def test_incorporate_feedback_missing_draft(engine):
    with pytest.raises(NotFoundError):
        await engine.incorporate_feedback("missing")


# =============================================================================
# Approve / reject
# =============================================================================

@pytest.mark.asyncio
async def test_end_to_end_approval(engine, store, cache, generator):
    draft = await engine.create({"title": "X"})
    await engine.submit_for_review(draft.id, {"title": "X"})

    result = await engine.approve(draft.id)

    case_study = result.case_study
    assert case_study.title == case_study.original_title == "X"
    assert case_study.status == "approved"
    assert case_study.original_draft_id == draft.id
    assert case_study.approved_at is not None
    assert result.draft_status_updated and result.draft_deleted
    assert result.comments_copied == 0

    listing = await cache.read()
    assert [(s.folder_name, s.title, s.status) for s in listing] == [("x", "X", "approved")]
    assert await engine.list_drafts(include_closed=True) == []
    assert draft_key(draft.id) not in store.objects
    assert generator.calls == [("case_study", "x"), ("one_pager", "x")]
    assert case_study.file_name == "x.docx"
    assert case_study.one_pager_file_name == "x-one-pager.docx"


@pytest.mark.asyncio
async def test_reject_creates_rejected_case_study(engine, cache):
    draft_id = await _under_review(engine, {"title": "Nope"})

    result = await engine.reject(draft_id)

    assert result.case_study.status == "rejected"
    assert result.case_study.rejected_at is not None
    assert [s.status for s in await cache.read()] == ["rejected"]
    assert await engine.list_drafts() == []


@pytest.mark.asyncio
async def test_approve_missing_draft(engine, store):
    with pytest.raises(NotFoundError):
        await engine.approve("missing")
    assert not [k for k in store.objects if k.startswith("case-studies/")]


@pytest.mark.asyncio
async def test_unsubmitted_draft_cannot_be_decided(engine, store):
    draft = await engine.create({"title": "Never Reviewed"})

    with pytest.raises(InvalidTransitionError):
        await engine.approve(draft.id)
    with pytest.raises(InvalidTransitionError):
        await engine.reject(draft.id)

    assert (await engine.get_draft(draft.id)).status == "draft"
    assert not [k for k in store.objects if k.startswith("case-studies/")]


@pytest.mark.asyncio
async def test_reopened_draft_must_be_resubmitted_before_approval(engine):
    draft_id = await _under_review(engine, {"title": "Reopened"})
    await engine.incorporate_feedback(draft_id)

    with pytest.raises(InvalidTransitionError):
        await engine.approve(draft_id)

    await engine.resubmit(draft_id, {"title": "Reopened"})
    assert (await engine.approve(draft_id)).case_study.folder_name == "reopened"


@pytest.mark.asyncio
async def test_approved_case_study_visible_within_ttl(engine, cache):
    await cache.read()
    assert cache.is_fresh()

    draft_id = await _under_review(engine, {"title": "Fresh"})
    await engine.approve(draft_id)

    assert [s.folder_name for s in await cache.read()] == ["fresh"]


@pytest.mark.asyncio
async def test_labels_validated_against_stored_catalog(engine, store):
    await store.put_json(LABELS_KEY, {"client": ["A", "C"], "Circles": ["Inner"]})
    draft_id = await _under_review(engine, {"title": "L", "labels": {"client": ["A", "Z"], "Extra": ["B"]}})

    result = await engine.approve(draft_id)

    assert result.case_study.labels == {"client": ["A"], "Extra": ["B"]}


@pytest.mark.asyncio
async def test_questionnaire_built_from_payload(engine):
    draft_id = await _under_review(
        engine,
        {
            "title": "Q",
            "pointOfContact": "Sam",
            "challenge": "Legacy",
            "costReduction": "20%",
            "customMetrics": [{"name": "NPS", "value": "+12"}],
            "unknownField": "kept on the draft only",
        },
    )

    case_study = (await engine.approve(draft_id)).case_study

    q = case_study.questionnaire
    assert q.basic_info == {"title": "Q", "pointOfContact": "Sam"}
    assert q.content == {"challenge": "Legacy"}
    assert q.metrics == {"costReduction": "20%"}
    assert q.technical == {"awsServices": []}
    assert case_study.custom_metrics == [{"name": "NPS", "value": "+12"}]


def test_build_questionnaire_prefers_draft_title():
    q = build_questionnaire({"title": "stale", "awsServices": ["S3"]}, "Current")

    assert q.basic_info["title"] == "Current"
    assert q.technical["awsServices"] == ["S3"]


@pytest.mark.asyncio
async def test_same_title_gets_distinct_folder(engine):
    first = await engine.approve(await _under_review(engine, {"title": "Twin"}))
    second = await engine.approve(await _under_review(engine, {"title": "Twin"}))

    assert first.case_study.folder_name == "twin"
    assert second.case_study.folder_name == "twin-2"


@pytest.mark.asyncio
async def test_review_comments_copied_on_approval(engine):
    draft_id = await _under_review(engine, {"title": "C"})
    await engine.reviews.add_draft_comment(draft_id, "Add results", author="Lee")

    result = await engine.approve(draft_id)

    assert result.comments_copied == 1
    thread = await engine.reviews.get_case_study_comments(result.case_study.folder_name)
    assert [(c.author, c.comment) for c in thread] == [("Lee", "Add results")]


@pytest.mark.asyncio
async def test_draft_delete_failure_is_non_fatal(engine, store, caplog):
    draft_id = await _under_review(engine, {"title": "Orphan"})
    store.fail("delete", f"drafts/{draft_id}/")

    with caplog.at_level(logging.WARNING):
        result = await engine.approve(draft_id)

    assert result.draft_deleted is False
    assert (await engine.get_case_study("orphan")).status == "approved"
    # The orphan carries the closed status and is hidden from active listings.
    assert (await engine.get_draft(draft_id)).status == "approved"
    assert await engine.list_drafts() == []
    assert "draft deletion failed" in caplog.text


@pytest.mark.asyncio
async def test_draft_status_update_failure_is_non_fatal(engine, store, cache):
    draft_id = await _under_review(engine, {"title": "S"})
    store.fail("put", f"drafts/{draft_id}/")

    result = await engine.approve(draft_id)

    assert result.draft_status_updated is False
    assert result.draft_deleted is True
    assert [s.folder_name for s in await cache.read()] == ["s"]


@pytest.mark.asyncio
async def test_comment_copy_failure_is_non_fatal(engine, store):
    draft_id = await _under_review(engine, {"title": "K"})
    await engine.reviews.add_draft_comment(draft_id, "note")
    store.fail("put", "reviews/")

    result = await engine.approve(draft_id)

    assert result.comments_copied is None
    assert result.case_study.folder_name == "k"


@pytest.mark.asyncio
async def test_metadata_write_failure_aborts(engine, store, cache, generator):
    await cache.read()
    draft_id = await _under_review(engine, {"title": "Meta"})
    store.fail("put", metadata_key("meta"))

    with pytest.raises(BackingStoreError):
        await engine.approve(draft_id)

    assert cache.is_fresh()
    draft = await engine.get_draft(draft_id)
    assert draft.status == "under_review"
    assert generator.calls == []

    # Nothing was committed, so approving again succeeds.
    store.heal()
    assert (await engine.approve(draft_id)).case_study.folder_name == "meta"


@pytest.mark.asyncio
async def test_document_timeout_aborts_and_keeps_draft(engine, store, generator):
    engine.documents.timeout_seconds = 0.05
    generator.delay = 1.0
    draft_id = await _under_review(engine, {"title": "Slow"})

    with pytest.raises(BackingStoreError):
        await engine.approve(draft_id)

    assert (await engine.get_draft(draft_id)).status == "under_review"


@pytest.mark.asyncio
async def test_document_failure_rolls_back_and_retry_yields_one_folder(engine, case_studies, cache, generator):
    generator.fail_with = RuntimeError("renderer crashed")
    draft_id = await _under_review(engine, {"title": "Flaky"})

    with pytest.raises(BackingStoreError):
        await engine.approve(draft_id)

    assert await cache.read() == []
    assert await case_studies.list_folders() == []
    assert (await engine.get_draft(draft_id)).status == "under_review"

    generator.fail_with = None
    result = await engine.approve(draft_id)

    assert result.case_study.folder_name == "flaky"
    assert await case_studies.list_folders() == ["flaky"]
    assert [(s.folder_name, s.status) for s in await cache.read()] == [("flaky", "approved")]


@pytest.mark.asyncio
async def test_retry_reuses_folder_when_rollback_fails(engine, store, case_studies, generator):
    generator.fail_with = RuntimeError("renderer crashed")
    draft_id = await _under_review(engine, {"title": "Sticky"})
    store.fail("delete", "case-studies/")

    with pytest.raises(BackingStoreError):
        await engine.approve(draft_id)
    assert await case_studies.list_folders() == ["sticky"]

    store.heal()
    generator.fail_with = None
    result = await engine.approve(draft_id)

    assert result.case_study.folder_name == "sticky"
    assert await case_studies.list_folders() == ["sticky"]
    assert await case_studies.list_files("sticky") == ["metadata.json", "sticky-one-pager.docx", "sticky.docx"]


@pytest.mark.asyncio
async def test_without_generator_documents_are_skipped(store, case_studies, cache):
    from case_study_engine.services.draft_service import DraftStore
    from case_study_engine.services.label_service import LabelCatalog
    from case_study_engine.services.review_service import ReviewService

    engine = LifecycleEngine(DraftStore(store), case_studies, cache, LabelCatalog(store), ReviewService(store))
    draft_id = await _under_review(engine, {"title": "Plain"})

    case_study = (await engine.approve(draft_id)).case_study

    assert case_study.file_name is None
    assert await case_studies.list_files("plain") == ["metadata.json"]


@pytest.mark.asyncio
async def test_closed_draft_cannot_be_decided_again(engine, store):
    draft_id = await _under_review(engine, {"title": "Twice"})
    store.fail("delete", f"drafts/{draft_id}/")
    await engine.approve(draft_id)

    with pytest.raises(InvalidTransitionError):
        await engine.reject(draft_id)
    with pytest.raises(InvalidTransitionError):
        await engine.submit_for_review(draft_id, {"title": "Twice"})


@pytest.mark.asyncio
async def test_racing_approvals_create_one_case_study(engine, case_studies):
    draft_id = await _under_review(engine, {"title": "Race"})
    outcomes: list[object] = []

    async def _attempt(action):
        try:
            outcomes.append(await action(draft_id))
        except (NotFoundError, InvalidTransitionError) as e:
            outcomes.append(e)

    async with anyio.create_task_group() as tg:
        tg.start_soon(_attempt, engine.approve)
        tg.start_soon(_attempt, engine.reject)

    assert len(outcomes) == 2
    assert sum(isinstance(o, Exception) for o in outcomes) == 1
    assert await case_studies.list_folders() == ["race"]


# =============================================================================
# Publish and edits
# =============================================================================

@pytest.mark.asyncio
async def test_publish_approved_case_study(engine, cache):
    folder = (await engine.approve(await _under_review(engine, {"title": "Pub"}))).case_study.folder_name
    await cache.read()

    published = await engine.publish(folder)

    assert published.status == "published"
    assert published.published_at is not None
    assert published.title == published.original_title == "Pub"
    assert [s.status for s in await cache.read()] == ["published"]
    assert (await engine.get_case_study(folder)).status == "published"


@pytest.mark.asyncio
async def test_published_case_study_is_immutable(engine):
    folder = (await engine.approve(await _under_review(engine, {"title": "Done"}))).case_study.folder_name
    await engine.publish(folder)

    with pytest.raises(InvalidTransitionError):
        await engine.publish(folder)
    with pytest.raises(InvalidTransitionError):
        await engine.update_case_study_labels(folder, {"client": ["Bank of America"]})


@pytest.mark.asyncio
async def test_publish_rejected_or_missing_fails(engine):
    folder = (await engine.reject(await _under_review(engine, {"title": "No"}))).case_study.folder_name

    with pytest.raises(InvalidTransitionError):
        await engine.publish(folder)
    with pytest.raises(NotFoundError):
        await engine.publish("missing")


@pytest.mark.asyncio
async def test_update_labels_revalidates_and_invalidates(engine, cache):
    folder = (await engine.approve(await _under_review(engine, {"title": "Edit"}))).case_study.folder_name
    await cache.read()

    updated = await engine.update_case_study_labels(folder, {"region": ["UK", "Mars"], "Custom": ["Y"]})

    assert updated.labels == {"region": ["UK"], "Custom": ["Y"]}
    [summary] = await cache.read()
    assert summary.labels == {"region": ["UK"], "Custom": ["Y"]}
    with pytest.raises(ValidationError):
        await engine.update_case_study_labels(folder, "region=UK")
