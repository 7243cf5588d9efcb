"""Review discussion threads for drafts and case studies."""

from __future__ import annotations

import logging

from pydantic import ValidationError as PydanticValidationError

from case_study_engine.core.errors import BackingStoreError, ValidationError
from case_study_engine.schemas.base import utc_now
from case_study_engine.schemas.review import (
    ANONYMOUS_AUTHOR,
    ReviewComment,
    ReviewThread,
    dump_comments,
    parse_comments,
)
from case_study_engine.services.blob_store import BlobStore
from case_study_engine.services.case_study_store import validate_folder_name
from case_study_engine.services.draft_service import validate_draft_id

logger = logging.getLogger(__name__)

DRAFT_REVIEWS_PREFIX = "draft-reviews/"
REVIEWS_PREFIX = "reviews/"
COMMENTS_FILE = "comments.json"


def draft_comments_key(draft_id: str) -> str:
    return f"{DRAFT_REVIEWS_PREFIX}{validate_draft_id(draft_id)}/{COMMENTS_FILE}"


def case_study_comments_key(folder_name: str) -> str:
    return f"{REVIEWS_PREFIX}{validate_folder_name(folder_name)}/{COMMENTS_FILE}"


def build_comment(comment: str | None, author: str | None = None) -> ReviewComment:
    text = (comment or "").strip()
    if not text:
        raise ValidationError("Comment is required")
    return ReviewComment(comment=text, author=(author or "").strip() or ANONYMOUS_AUTHOR, timestamp=utc_now())


class ReviewService:
    def __init__(self, store: BlobStore) -> None:
        self.store = store

    async def _load(self, key: str) -> list[ReviewComment]:
        payload = await self.store.get_json(key)
        try:
            return parse_comments(payload)
        except PydanticValidationError as e:
            raise BackingStoreError(f"Comments at {key} are malformed: {e}") from e

    async def _save(self, key: str, comments: list[ReviewComment]) -> None:
        await self.store.put(key, dump_comments(comments), content_type="application/json")

    async def get_draft_comments(self, draft_id: str) -> list[ReviewComment]:
        return await self._load(draft_comments_key(draft_id))

    async def add_draft_comment(self, draft_id: str, comment: str, author: str | None = None) -> ReviewComment:
        new_comment = build_comment(comment, author)
        key = draft_comments_key(draft_id)
        comments = await self._load(key)
        comments.append(new_comment)
        await self._save(key, comments)
        logger.info("Draft review comment saved for draft %s", draft_id)
        return new_comment

    async def get_case_study_comments(self, folder_name: str) -> list[ReviewComment]:
        return await self._load(case_study_comments_key(folder_name))

    async def add_case_study_comment(
        self, folder_name: str, comment: str, author: str | None = None
    ) -> ReviewComment:
        new_comment = build_comment(comment, author)
        key = case_study_comments_key(folder_name)
        comments = await self._load(key)
        comments.append(new_comment)
        await self._save(key, comments)
        logger.info("Review comment saved for %s", folder_name)
        return new_comment

    async def list_reviews(self) -> list[ReviewThread]:
        """All case study threads, most recent activity first."""
        threads: list[ReviewThread] = []
        for key in await self.store.list(REVIEWS_PREFIX):
            if not key.endswith(f"/{COMMENTS_FILE}"):
                continue
            folder_name = key[len(REVIEWS_PREFIX) :].split("/", 1)[0]
            try:
                comments = await self._load(key)
            except BackingStoreError as e:
                logger.warning("Skipping unreadable review thread %s: %s", key, e)
                continue
            threads.append(
                ReviewThread(
                    folder_name=folder_name,
                    comment_count=len(comments),
                    last_activity=comments[-1].timestamp if comments else None,
                    comments=comments,
                )
            )
        threads.sort(key=lambda t: t.last_activity.timestamp() if t.last_activity else 0.0, reverse=True)
        return threads

    async def copy_draft_comments(self, draft_id: str, folder_name: str) -> int:
        """
        Copy (not move) a draft's review comments onto the case study thread.

        Comments already on the case study thread are kept ahead of the copied ones.
        Returns the number of comments copied; nothing is written when there are none.
        """
        draft_comments = await self.get_draft_comments(draft_id)
        if not draft_comments:
            return 0
        key = case_study_comments_key(folder_name)
        existing = await self._load(key)
        await self._save(key, existing + draft_comments)
        logger.info("Copied %d review comments from draft %s to %s", len(draft_comments), draft_id, folder_name)
        return len(draft_comments)
