"""Read-through cache of the case study listing."""

from __future__ import annotations

import logging
import time
from typing import Callable, Sequence

import anyio

from case_study_engine.core.config import settings
from case_study_engine.core.errors import BackingStoreError
from case_study_engine.schemas.case_study import APPROVED, CaseStudySummary
from case_study_engine.services.case_study_store import CaseStudyStore
from case_study_engine.utils.normalization import humanize_folder_name

logger = logging.getLogger(__name__)


class CaseStudyCache:
    """
    In-memory listing cache with TTL expiry and explicit invalidation.

    `last_updated is None` means stale: the next read resyncs from the store.
    Every mutation of the listing must call invalidate() before reporting success.
    One instance per process, shared by reference with the lifecycle engine.
    """

    def __init__(
        self,
        case_studies: CaseStudyStore,
        *,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.case_studies = case_studies
        self.ttl_seconds = settings.CASE_STUDY_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self.clock = clock
        self.data: list[CaseStudySummary] = []
        self.last_updated: float | None = None
        self._generation = 0
        self._sync_lock = anyio.Lock()

    def is_fresh(self) -> bool:
        if self.last_updated is None:
            return False
        return (self.clock() - self.last_updated) < self.ttl_seconds

    def invalidate(self) -> None:
        self.last_updated = None
        self._generation += 1
        logger.info("Case study cache invalidated")

    async def read(self) -> Sequence[CaseStudySummary]:
        if self.is_fresh():
            return list(self.data)
        async with self._sync_lock:
            # Another task may have resynced while this one waited.
            if self.is_fresh():
                return list(self.data)
            return await self._resync()

    async def refresh(self) -> Sequence[CaseStudySummary]:
        """Force a resync regardless of TTL."""
        self.invalidate()
        async with self._sync_lock:
            return await self._resync()

    async def _resync(self) -> list[CaseStudySummary]:
        generation = self._generation
        started = self.clock()
        logger.info("Case study cache stale, syncing with storage")
        summaries = await self._load_summaries()
        self.data = summaries
        if generation == self._generation:
            self.last_updated = started
        else:
            # Invalidated mid-sync: the listing may predate that write, keep it stale.
            logger.info("Cache invalidated during sync; leaving entry stale")
        logger.info("Processed %d case studies", len(summaries))
        return list(summaries)

    async def _load_summaries(self) -> list[CaseStudySummary]:
        try:
            folders = await self.case_studies.list_folders()
        except BackingStoreError:
            logger.exception("Failed to list case studies from storage")
            raise

        summaries: list[CaseStudySummary] = []
        for folder_name in folders:
            try:
                case_study = await self.case_studies.get(folder_name)
            except BackingStoreError as e:
                logger.warning("Skipping case study %s: %s", folder_name, e)
                continue
            if case_study is None:
                logger.info("No metadata found for %s, using folder name", folder_name)
                title = humanize_folder_name(folder_name)
                summaries.append(
                    CaseStudySummary(id=folder_name, folder_name=folder_name, title=title, status=APPROVED)
                )
                continue
            summaries.append(CaseStudySummary.from_case_study(case_study))
        return summaries
