"""Office document generation for case studies (generator is an external collaborator)."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Protocol

import anyio
import anyio.to_thread

from case_study_engine.core.config import settings
from case_study_engine.core.errors import BackingStoreError
from case_study_engine.services.case_study_store import CaseStudyStore

logger = logging.getLogger(__name__)

ONE_PAGER_SUFFIX = "-one-pager"


class DocumentGenerator(Protocol):
    """Renders case study documents. Implementations may be sync or async."""

    def generate_case_study_docx(
        self, questionnaire: Mapping[str, Any], labels: Mapping[str, list[str]], folder_name: str
    ) -> Any: ...

    def generate_one_pager_docx(
        self, questionnaire: Mapping[str, Any], labels: Mapping[str, list[str]], folder_name: str
    ) -> Any: ...


@dataclass
class GeneratedDocuments:
    file_name: str
    one_pager_file_name: str


def case_study_file_name(folder_name: str) -> str:
    return f"{folder_name}.docx"


def one_pager_file_name(folder_name: str) -> str:
    return f"{folder_name}{ONE_PAGER_SUFFIX}.docx"


async def _call_generator(func: Callable[..., Any], *args: Any) -> bytes:
    if inspect.iscoroutinefunction(func):
        result = await func(*args)
    else:
        result = await anyio.to_thread.run_sync(partial(func, *args), abandon_on_cancel=True)
        if inspect.isawaitable(result):
            result = await result
    if not isinstance(result, (bytes, bytearray)):
        raise TypeError(f"Document generator returned {type(result).__name__}, expected bytes")
    return bytes(result)


class DocumentService:
    """Generates both case study documents and uploads them next to the metadata."""

    def __init__(
        self,
        generator: DocumentGenerator,
        case_studies: CaseStudyStore,
        *,
        timeout_seconds: float | None = None,
    ) -> None:
        self.generator = generator
        self.case_studies = case_studies
        self.timeout_seconds = (
            settings.DOCUMENT_GENERATION_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        )

    async def _render(self, kind: str, func: Callable[..., Any], *args: Any) -> bytes:
        try:
            with anyio.fail_after(self.timeout_seconds):
                return await _call_generator(func, *args)
        except TimeoutError as e:
            raise BackingStoreError(f"{kind} generation timed out after {self.timeout_seconds:g}s") from e
        except BackingStoreError:
            raise
        except Exception as e:
            raise BackingStoreError(f"{kind} generation failed: {e}") from e

    async def generate_and_upload(
        self,
        folder_name: str,
        questionnaire: Mapping[str, Any],
        labels: Mapping[str, list[str]],
    ) -> GeneratedDocuments:
        """
        Render the full document and the one-pager, then upload both.

        Any failure (including a timeout) is a BackingStoreError.
        """
        case_study_doc = await self._render(
            "Case study document", self.generator.generate_case_study_docx, questionnaire, labels, folder_name
        )
        one_pager_doc = await self._render(
            "One-pager document", self.generator.generate_one_pager_docx, questionnaire, labels, folder_name
        )

        documents = GeneratedDocuments(
            file_name=case_study_file_name(folder_name),
            one_pager_file_name=one_pager_file_name(folder_name),
        )
        await self.case_studies.put_document(folder_name, documents.file_name, case_study_doc)
        await self.case_studies.put_document(folder_name, documents.one_pager_file_name, one_pager_doc)
        logger.info("Generated documents for %s", folder_name)
        return documents
