"""Service layer modules."""

from case_study_engine.services.blob_store import (
    BlobStore,
    InMemoryBlobStore,
    LocalBlobStore,
    S3BlobStore,
    blob_store_from_settings,
)
from case_study_engine.services.case_study_cache import CaseStudyCache
from case_study_engine.services.case_study_store import CaseStudyStore
from case_study_engine.services.document_service import DocumentGenerator, DocumentService
from case_study_engine.services.draft_service import DraftStore
from case_study_engine.services.label_service import LabelCatalog, validate_case_study_labels
from case_study_engine.services.lifecycle_service import ApprovalResult, LifecycleEngine, build_engine
from case_study_engine.services.review_service import ReviewService

# Import service modules (not individual classes) for cleaner access
from case_study_engine.services import listing_service

__all__ = [
    # Blob stores
    "BlobStore",
    "InMemoryBlobStore",
    "LocalBlobStore",
    "S3BlobStore",
    "blob_store_from_settings",
    # Persistence
    "DraftStore",
    "CaseStudyStore",
    "CaseStudyCache",
    "ReviewService",
    # Labels
    "LabelCatalog",
    "validate_case_study_labels",
    # Documents
    "DocumentGenerator",
    "DocumentService",
    # Lifecycle
    "LifecycleEngine",
    "ApprovalResult",
    "build_engine",
    # Service modules
    "listing_service",
]
