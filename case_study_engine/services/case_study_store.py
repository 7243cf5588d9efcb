"""Case study persistence: metadata and generated documents per folder."""

from __future__ import annotations

import logging

from pydantic import ValidationError as PydanticValidationError

from case_study_engine.core.errors import BackingStoreError, ValidationError
from case_study_engine.schemas.case_study import CaseStudy, parse_case_study
from case_study_engine.services.blob_store import BlobStore
from case_study_engine.utils.normalization import sanitize_folder_name

logger = logging.getLogger(__name__)

CASE_STUDIES_PREFIX = "case-studies/"
METADATA_FILE = "metadata.json"
DOCX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def metadata_key(folder_name: str) -> str:
    return f"{CASE_STUDIES_PREFIX}{folder_name}/{METADATA_FILE}"


def legacy_metadata_key(folder_name: str) -> str:
    return f"{CASE_STUDIES_PREFIX}{folder_name}/{folder_name}-metadata.json"


def document_key(folder_name: str, file_name: str) -> str:
    return f"{CASE_STUDIES_PREFIX}{folder_name}/{file_name}"


def validate_folder_name(folder_name: str) -> str:
    cleaned = (folder_name or "").strip()
    if not cleaned or "/" in cleaned or cleaned in (".", ".."):
        raise ValidationError(f"Invalid folder name: {folder_name!r}")
    return cleaned


class CaseStudyStore:
    """Key-based case study CRUD addressed by folder name. No locking at this layer."""

    def __init__(self, store: BlobStore) -> None:
        self.store = store

    async def get(self, folder_name: str) -> CaseStudy | None:
        folder_name = validate_folder_name(folder_name)
        payload = await self.store.get_json(metadata_key(folder_name))
        if payload is None:
            payload = await self.store.get_json(legacy_metadata_key(folder_name))
        if payload is None:
            return None
        if not isinstance(payload, dict):
            raise BackingStoreError(f"Metadata for {folder_name} is not an object")
        payload.setdefault("folderName", folder_name)
        payload.setdefault("id", folder_name)
        try:
            return parse_case_study(payload)
        except PydanticValidationError as e:
            raise BackingStoreError(f"Metadata for {folder_name} is malformed: {e}") from e

    async def put(self, case_study: CaseStudy) -> None:
        folder_name = validate_folder_name(case_study.folder_name)
        await self.store.put(metadata_key(folder_name), case_study.to_json_bytes(), content_type="application/json")
        logger.info("Metadata saved for case study %s", folder_name)

    async def list_folders(self) -> list[str]:
        folders: list[str] = []
        seen: set[str] = set()
        for key in await self.store.list(CASE_STUDIES_PREFIX):
            rest = key[len(CASE_STUDIES_PREFIX) :]
            folder, sep, _ = rest.partition("/")
            if sep and folder and folder not in seen:
                seen.add(folder)
                folders.append(folder)
        return folders

    async def list_files(self, folder_name: str) -> list[str]:
        folder_name = validate_folder_name(folder_name)
        prefix = f"{CASE_STUDIES_PREFIX}{folder_name}/"
        return [key[len(prefix) :] for key in await self.store.list(prefix)]

    async def folder_exists(self, folder_name: str) -> bool:
        folder_name = validate_folder_name(folder_name)
        return bool(await self.store.list(f"{CASE_STUDIES_PREFIX}{folder_name}/"))

    async def delete_folder(self, folder_name: str) -> int:
        folder_name = validate_folder_name(folder_name)
        removed = await self.store.delete_prefix(f"{CASE_STUDIES_PREFIX}{folder_name}/")
        logger.info("Deleted %d objects under case study %s", removed, folder_name)
        return removed

    async def allocate_folder_name(self, title: str | None, draft_id: str | None = None) -> str:
        """
        Derive a folder name from the title, suffixing -2, -3, ... until unused.

        With a draft_id, an occupied folder whose metadata came from that same draft
        is returned instead, so a retried decision lands in the folder it left behind.
        """
        base = sanitize_folder_name(title)
        candidate = base
        suffix = 2
        while await self.folder_exists(candidate):
            if draft_id is not None and await self._created_from(candidate, draft_id):
                logger.info("Reusing case study folder %s left by draft %s", candidate, draft_id)
                return candidate
            candidate = f"{base}-{suffix}"
            suffix += 1
        return candidate

    async def _created_from(self, folder_name: str, draft_id: str) -> bool:
        try:
            existing = await self.get(folder_name)
        except BackingStoreError as e:
            logger.warning("Skipping unreadable metadata in %s: %s", folder_name, e)
            return False
        return existing is not None and existing.original_draft_id == draft_id

    async def put_document(
        self,
        folder_name: str,
        file_name: str,
        data: bytes,
        *,
        content_type: str = DOCX_CONTENT_TYPE,
    ) -> str:
        key = document_key(validate_folder_name(folder_name), file_name)
        await self.store.put(key, data, content_type=content_type)
        logger.info("Uploaded %s (%d bytes)", key, len(data))
        return key

    async def get_document(self, folder_name: str, file_name: str) -> bytes | None:
        return await self.store.get(document_key(validate_folder_name(folder_name), file_name))
