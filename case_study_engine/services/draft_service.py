"""Draft persistence: CRUD over draft records in the blob store."""

from __future__ import annotations

import logging

from pydantic import ValidationError as PydanticValidationError

from case_study_engine.core.errors import BackingStoreError, ValidationError
from case_study_engine.schemas.draft import Draft, parse_draft
from case_study_engine.services.blob_store import BlobStore

logger = logging.getLogger(__name__)

DRAFTS_PREFIX = "drafts/"
DRAFT_FILE = "draft.json"


def draft_key(draft_id: str) -> str:
    return f"{DRAFTS_PREFIX}{draft_id}/{DRAFT_FILE}"


def validate_draft_id(draft_id: str) -> str:
    cleaned = (draft_id or "").strip()
    if not cleaned or "/" in cleaned or cleaned in (".", ".."):
        raise ValidationError(f"Invalid draft id: {draft_id!r}")
    return cleaned


class DraftStore:
    """Key-based draft CRUD. No locking at this layer."""

    def __init__(self, store: BlobStore) -> None:
        self.store = store

    async def get(self, draft_id: str) -> Draft | None:
        draft_id = validate_draft_id(draft_id)
        payload = await self.store.get_json(draft_key(draft_id))
        if payload is None:
            return None
        try:
            return parse_draft(payload)
        except PydanticValidationError as e:
            raise BackingStoreError(f"Stored draft {draft_id} is malformed: {e}") from e

    async def put(self, draft: Draft) -> None:
        validate_draft_id(draft.id)
        await self.store.put(draft_key(draft.id), draft.to_json_bytes(), content_type="application/json")

    async def delete(self, draft_id: str) -> None:
        """Delete the draft and everything stored under its folder."""
        draft_id = validate_draft_id(draft_id)
        removed = await self.store.delete_prefix(f"{DRAFTS_PREFIX}{draft_id}/")
        if removed:
            logger.info("Deleted draft %s (%d objects)", draft_id, removed)
        else:
            logger.info("No files found for draft %s", draft_id)

    async def list(self) -> list[Draft]:
        """All readable drafts, most recently updated first."""
        drafts: list[Draft] = []
        for key in await self.store.list(DRAFTS_PREFIX):
            if not key.endswith(f"/{DRAFT_FILE}"):
                continue
            draft_id = key[len(DRAFTS_PREFIX) : -len(f"/{DRAFT_FILE}")]
            try:
                draft = await self.get(draft_id)
            except (BackingStoreError, ValidationError) as e:
                logger.error("Skipping unreadable draft %s: %s", key, e)
                continue
            if draft is not None:
                drafts.append(draft)
        drafts.sort(key=lambda d: d.updated_at, reverse=True)
        return drafts

    async def find_active_by_title(self, title: str) -> Draft | None:
        """Most recently updated draft still in draft/under_review with exactly this title."""
        for draft in await self.list():
            if draft.is_active and draft.title == title:
                return draft
        return None
