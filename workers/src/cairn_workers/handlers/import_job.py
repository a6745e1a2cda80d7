"""Background import job handler."""

from __future__ import annotations

import logging
from typing import Any

import psycopg

from ..catalog_client import CatalogClient
from ..config import catalog_url, import_item_timeout_seconds
from ..import_adapter import parse_deploy_input
from ..import_pipeline import run_import
from ..media_service import PostgresMediaService
from ..registry import register
from ..store import PostgresStore

logger = logging.getLogger(__name__)


@register("import.process")
async def handle_import_process(
    conn: psycopg.AsyncConnection[Any], payload: dict[str, Any]
) -> None:
    user_id = payload.get("user_id")
    raw_input = payload.get("input")
    if user_id is None or not isinstance(raw_input, dict):
        raise ValueError("import.process payload requires user_id + input")

    job_input = parse_deploy_input(raw_input)
    url = catalog_url()
    catalog = CatalogClient(url) if url else None
    try:
        report = await run_import(
            PostgresStore(conn),
            PostgresMediaService(conn, catalog),
            int(user_id),
            job_input,
            item_timeout_seconds=import_item_timeout_seconds(),
        )
    finally:
        if catalog is not None:
            await catalog.aclose()

    logger.info(
        "Import report %s finished (source=%s, success=%s)",
        report.id,
        report.source,
        report.success,
        extra={"cairn_import_report_id": report.id, "cairn_user_id": report.user_id},
    )
