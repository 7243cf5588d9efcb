"""Label validation and the label catalog (allowed values per category)."""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from typing import Any

from case_study_engine.core.errors import BackingStoreError, NotFoundError, ValidationError
from case_study_engine.services.blob_store import BlobStore
from case_study_engine.utils.normalization import normalize_labels

logger = logging.getLogger(__name__)

LABELS_KEY = "labels.json"

DEFAULT_LABELS: dict[str, list[str]] = {
    "client": [
        "Bank of America",
        "Confidential (Global Bank)",
    ],
    "sector": [
        "Banking",
        "Financial Services",
        "Investment Banking",
    ],
    "projectType": [
        "Data Modelling",
        "Data Strategy",
        "Regulatory Reporting",
        "Automation",
    ],
    "technology": [
        "SAP PowerDesigner",
        "Data Warehouse",
        "Metadata Portal",
        "AngularJS",
        "Java",
        "Python",
        "Data Lakehouse",
        "Kanban",
    ],
    "objective": [
        "Regulatory Compliance",
        "Data Quality Improvement",
        "Process Optimisation",
        "Future-Proofing Data Systems",
    ],
    "solution": [
        "Robust Data Models",
        "Automation Scripts",
        "Metadata Portal",
        "Strategic Roadmap",
        "Data Lakehouse Architecture",
    ],
    "methodology": [
        "Agile",
        "Safe Agile",
        "Kanban",
        "Data Analysis",
        "Normalisation",
    ],
    "region": [
        "UK",
        "US",
        "India",
    ],
}


def default_labels() -> dict[str, list[str]]:
    return copy.deepcopy(DEFAULT_LABELS)


def validate_case_study_labels(
    submitted: Mapping[str, Any] | None,
    catalog: Mapping[str, Any] | None,
) -> dict[str, list[str]]:
    """
    Reconcile submitted labels against the catalog without discarding user data.

    Only categories present in the submission appear in the result:
    - known category: values not in the catalog are dropped (submission order kept)
    - unknown category: values pass through unchanged
    """
    if submitted is None:
        return {}
    try:
        labels = normalize_labels(submitted)
    except ValueError as e:
        raise ValidationError(str(e)) from e
    allowed = normalize_labels(catalog or {})

    validated: dict[str, list[str]] = {}
    for category, values in labels.items():
        if category in allowed:
            members = set(allowed[category])
            validated[category] = [v for v in values if v in members]
        else:
            validated[category] = list(values)
    return validated


def _clean_name(value: str | None, what: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(f"{what} is required")
    return cleaned


class LabelCatalog:
    """Catalog of allowed label values, stored as one JSON document."""

    def __init__(self, store: BlobStore, key: str = LABELS_KEY) -> None:
        self.store = store
        self.key = key

    async def get_catalog(self) -> dict[str, list[str]]:
        """Return the stored catalog, or the defaults when none is stored or it is unreadable."""
        try:
            stored = await self.store.get_json(self.key)
        except BackingStoreError as e:
            logger.warning("Label catalog unavailable, using defaults: %s", e)
            return default_labels()
        if stored is None:
            return default_labels()
        try:
            return normalize_labels(stored)
        except ValueError:
            logger.warning("Label catalog at %s is not a mapping, using defaults", self.key)
            return default_labels()

    async def initialize(self) -> dict[str, list[str]]:
        """Seed the default catalog when nothing is stored yet."""
        existing = await self.store.get_json(self.key)
        if existing is not None:
            logger.info("Label catalog already initialized")
            return normalize_labels(existing)
        labels = default_labels()
        await self.save(labels)
        logger.info("Label catalog initialized with %d default categories", len(labels))
        return labels

    async def save(self, catalog: Mapping[str, Any]) -> dict[str, list[str]]:
        try:
            labels = normalize_labels(catalog)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        await self.store.put_json(self.key, labels)
        return labels

    async def add_category(self, name: str, values: list[str] | None = None) -> dict[str, list[str]]:
        name = _clean_name(name, "Category name")
        labels = await self.get_catalog()
        if name in labels:
            raise ValidationError(f"Category already exists: {name}")
        labels[name] = []
        for value in values or []:
            value = value.strip()
            if value and value not in labels[name]:
                labels[name].append(value)
        return await self.save(labels)

    async def remove_category(self, name: str) -> dict[str, list[str]]:
        labels = await self.get_catalog()
        if name not in labels:
            raise NotFoundError(f"Category not found: {name}")
        del labels[name]
        return await self.save(labels)

    async def rename_category(self, old_name: str, new_name: str) -> dict[str, list[str]]:
        new_name = _clean_name(new_name, "Category name")
        labels = await self.get_catalog()
        if old_name not in labels:
            raise NotFoundError(f"Category not found: {old_name}")
        if new_name != old_name and new_name in labels:
            raise ValidationError(f"Category already exists: {new_name}")
        # Rebuild to keep the category in its original position.
        renamed = {(new_name if k == old_name else k): v for k, v in labels.items()}
        return await self.save(renamed)

    async def add_value(self, category: str, value: str) -> dict[str, list[str]]:
        value = _clean_name(value, "Label value")
        labels = await self.get_catalog()
        if category not in labels:
            raise NotFoundError(f"Category not found: {category}")
        if value in labels[category]:
            raise ValidationError(f"Label already exists in {category}: {value}")
        labels[category].append(value)
        return await self.save(labels)

    async def rename_value(self, category: str, old_value: str, new_value: str) -> dict[str, list[str]]:
        """Replace a value in place, keeping its position in the category."""
        new_value = _clean_name(new_value, "New value")
        labels = await self.get_catalog()
        if category not in labels:
            raise NotFoundError(f"Category not found: {category}")
        if old_value not in labels[category]:
            raise NotFoundError(f"Label not found in {category}: {old_value}")
        if new_value != old_value and new_value in labels[category]:
            raise ValidationError(f"Label already exists in {category}: {new_value}")
        labels[category] = [new_value if v == old_value else v for v in labels[category]]
        return await self.save(labels)

    async def reset(self) -> dict[str, list[str]]:
        """Overwrite the stored catalog with the defaults."""
        labels = await self.save(default_labels())
        logger.info("Label catalog reset to %d default categories", len(labels))
        return labels

    async def remove_value(self, category: str, value: str) -> dict[str, list[str]]:
        labels = await self.get_catalog()
        if category not in labels:
            raise NotFoundError(f"Category not found: {category}")
        if value not in labels[category]:
            raise NotFoundError(f"Label not found in {category}: {value}")
        labels[category] = [v for v in labels[category] if v != value]
        return await self.save(labels)

    async def search(self, text: str) -> list[dict[str, str]]:
        """Case-insensitive substring search across all categories."""
        needle = (text or "").strip().lower()
        labels = await self.get_catalog()
        return [
            {"category": category, "label": label}
            for category, values in labels.items()
            for label in values
            if needle in label.lower()
        ]
