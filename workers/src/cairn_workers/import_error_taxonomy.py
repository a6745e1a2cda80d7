"""Coarse classes for import failures.

A job-level error code (``details.error["error_code"]``) and a per-item fail
step both map onto the same small set of classes, so a failed report and a
report with skipped items can be summarized the same way.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from typing import Literal

from .import_adapter import ImportFailedItem

ImportErrorClass = Literal[
    "validation",
    "not_found",
    "resolution",
    "parse",
    "other",
]

IMPORT_ERROR_CLASS_BY_CODE: dict[str, ImportErrorClass] = {
    "validation_error": "validation",
    "not_found": "not_found",
    "external_resolution_error": "resolution",
    "parse_error": "parse",
    "mapping_error": "parse",
}

IMPORT_ERROR_CLASS_BY_STEP: dict[str, ImportErrorClass] = {
    "ItemDetailsFromSource": "parse",
    "InputTransformation": "parse",
    "MediaDetailsFromProvider": "resolution",
    "SeenHistoryConversion": "validation",
    "ReviewConversion": "validation",
    "WorkoutCommit": "validation",
}


def classify_import_error_code(error_code: str | None) -> ImportErrorClass:
    normalized = (error_code or "").strip().lower()
    return IMPORT_ERROR_CLASS_BY_CODE.get(normalized, "other")


def classify_fail_step(step: str | None) -> ImportErrorClass:
    return IMPORT_ERROR_CLASS_BY_STEP.get((step or "").strip(), "other")


def summarize_failed_items(items: Iterable[ImportFailedItem]) -> dict[str, int]:
    """Count failed items per class, keys sorted."""
    counts = Counter(classify_fail_step(item.step) for item in items)
    return dict(sorted(counts.items()))
