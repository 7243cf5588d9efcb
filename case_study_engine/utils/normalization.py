"""Normalization helpers for stored label data and folder names."""

import re
from collections.abc import Mapping
from typing import Any

FOLDER_NAME_MAX_LENGTH = 50
DEFAULT_FOLDER_NAME = "case-study"


def normalize_label_value(value: Any) -> str | None:
    """
    Normalize one stored label value to its canonical string form.

    Older records stored values as {"name": ..., "client": ...} objects;
    those collapse to the name (or the client when the name is blank).
    Returns None for values that carry no label.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        for key in ("name", "client", "label", "value"):
            candidate = value.get(key)
            if isinstance(candidate, str) and candidate.strip():
                return candidate
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def normalize_labels(labels: Any) -> dict[str, list[str]]:
    """Normalize a stored labels mapping into {category: [str, ...]}."""
    if labels is None:
        return {}
    if not isinstance(labels, Mapping):
        raise ValueError("Labels must be an object mapping category to values")

    normalized: dict[str, list[str]] = {}
    for category, values in labels.items():
        if values is None:
            normalized[str(category)] = []
            continue
        if not isinstance(values, (list, tuple)):
            values = [values]
        out: list[str] = []
        for value in values:
            label = normalize_label_value(value)
            if label is not None:
                out.append(label)
        normalized[str(category)] = out
    return normalized


def sanitize_folder_name(title: str | None) -> str:
    """
    Derive a folder name from a case study title.

    Lowercases, strips everything but [a-z0-9] and whitespace, joins words with
    hyphens and truncates to 50 characters.
    """
    slug = (title or "").lower()
    slug = re.sub(r"[^a-z0-9\s]", "", slug)
    slug = re.sub(r"\s+", "-", slug.strip())
    slug = slug[:FOLDER_NAME_MAX_LENGTH].strip("-")
    return slug or DEFAULT_FOLDER_NAME


def humanize_folder_name(folder_name: str) -> str:
    """Rebuild a display title from a folder name ("my-case" -> "My Case")."""
    return " ".join(word[:1].upper() + word[1:] for word in folder_name.split("-") if word)
