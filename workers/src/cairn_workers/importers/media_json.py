"""Adapter for the JSON media export (a list of ImportOrExportMediaItem objects)."""

from __future__ import annotations

import json
import logging
from typing import Any, get_args

from pydantic import ValidationError as PydanticValidationError

from ..errors import ParseError
from ..import_adapter import (
    BaseImportAdapter,
    ImportContext,
    ImportFailedItem,
    ImportResult,
    MediaJsonImportInput,
)
from ..media_contract import CreateOrUpdateCollectionInput, ImportOrExportMediaItem, MediaLot

logger = logging.getLogger(__name__)

_MEDIA_LOTS: frozenset[str] = frozenset(get_args(MediaLot))


def _item_identifier(raw: Any, position: int) -> str:
    if isinstance(raw, dict):
        source_id = raw.get("source_id")
        if isinstance(source_id, str) and source_id.strip():
            return source_id.strip()
    return f"item-{position}"


def _first_error(exc: PydanticValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "invalid media item"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", []))
    message = first.get("msg", "invalid media item")
    return f"{location}: {message}" if location else message


class MediaJsonAdapter(BaseImportAdapter):
    source = "media_json"
    input_model = MediaJsonImportInput

    def map_export(self, job_input: MediaJsonImportInput, context: ImportContext) -> ImportResult:
        try:
            payload = json.loads(job_input.export)
        except json.JSONDecodeError as exc:
            raise ParseError(
                "Media export is not valid JSON.",
                field="export",
                docs_hint="Upload the JSON file produced by the media export.",
            ) from exc
        if not isinstance(payload, list):
            raise ParseError(
                "Media export must be a JSON list of items.",
                field="export",
                docs_hint="The top-level value of the export must be an array.",
            )

        result = ImportResult()
        seen_collections: set[str] = set()
        for position, raw in enumerate(payload):
            try:
                item = ImportOrExportMediaItem.model_validate(raw)
            except PydanticValidationError as exc:
                lot = raw.get("lot") if isinstance(raw, dict) else None
                result.failed_items.append(
                    ImportFailedItem(
                        lot=lot if isinstance(lot, str) and lot in _MEDIA_LOTS else None,
                        step="InputTransformation",
                        identifier=_item_identifier(raw, position),
                        error=_first_error(exc),
                    )
                )
                continue

            result.media.append(item)
            for name in item.collections:
                cleaned = name.strip()
                if cleaned and cleaned not in seen_collections:
                    seen_collections.add(cleaned)
                    result.collections.append(CreateOrUpdateCollectionInput(name=cleaned))

        logger.debug(
            "Media export mapped %d items (%d rejected, %d collections)",
            len(result.media),
            len(result.failed_items),
            len(result.collections),
        )
        return result
