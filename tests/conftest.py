"""
Test configuration and fixtures.

Provides:
- In-memory blob store with per-operation failure injection
- Fake document generator and clock
- A fully wired LifecycleEngine over the in-memory store
"""
from __future__ import annotations

from dataclasses import dataclass, field

import anyio
import pytest

from case_study_engine.core.errors import BackingStoreError
from case_study_engine.services.blob_store import InMemoryBlobStore
from case_study_engine.services.case_study_cache import CaseStudyCache
from case_study_engine.services.case_study_store import CaseStudyStore
from case_study_engine.services.document_service import DocumentService
from case_study_engine.services.draft_service import DraftStore
from case_study_engine.services.label_service import LabelCatalog
from case_study_engine.services.lifecycle_service import LifecycleEngine
from case_study_engine.services.review_service import ReviewService


# =============================================================================
# Fakes
# =============================================================================

class FlakyBlobStore(InMemoryBlobStore):
    """In-memory store that raises BackingStoreError for chosen operations and key prefixes."""

    def __init__(self) -> None:
        super().__init__()
        self.failures: dict[str, list[str]] = {"get": [], "put": [], "delete": [], "list": []}
        self.puts: list[str] = []

    def fail(self, operation: str, prefix: str) -> None:
        self.failures[operation].append(prefix)

    def heal(self) -> None:
        for prefixes in self.failures.values():
            prefixes.clear()

    def _check(self, operation: str, key: str) -> None:
        if any(key.startswith(prefix) for prefix in self.failures[operation]):
            raise BackingStoreError(f"injected {operation} failure for {key}")

    async def get(self, key: str) -> bytes | None:
        self._check("get", key)
        return await super().get(key)

    async def put(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        self._check("put", key)
        self.puts.append(key)
        await super().put(key, data, content_type=content_type)

    async def delete(self, key: str) -> None:
        self._check("delete", key)
        await super().delete(key)

    async def list(self, prefix: str) -> list[str]:
        self._check("list", prefix)
        return await super().list(prefix)


@dataclass
class FakeGenerator:
    """Document generator returning fixed bytes; records every call."""

    calls: list[tuple[str, str]] = field(default_factory=list)
    delay: float = 0.0
    fail_with: Exception | None = None

    async def generate_case_study_docx(self, questionnaire, labels, folder_name):  # noqa: ANN001
        return await self._render("case_study", folder_name)

    async def generate_one_pager_docx(self, questionnaire, labels, folder_name):  # noqa: ANN001
        return await self._render("one_pager", folder_name)

    async def _render(self, kind: str, folder_name: str) -> bytes:
        self.calls.append((kind, folder_name))
        if self.delay:
            await anyio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        return f"{kind}:{folder_name}".encode()


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def store() -> FlakyBlobStore:
    return FlakyBlobStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def case_studies(store) -> CaseStudyStore:
    return CaseStudyStore(store)


@pytest.fixture
def cache(case_studies, clock) -> CaseStudyCache:
    return CaseStudyCache(case_studies, ttl_seconds=300, clock=clock)


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def engine(store, case_studies, cache, generator) -> LifecycleEngine:
    return LifecycleEngine(
        drafts=DraftStore(store),
        case_studies=case_studies,
        cache=cache,
        catalog=LabelCatalog(store),
        reviews=ReviewService(store),
        documents=DocumentService(generator, case_studies, timeout_seconds=5),
    )
