"""Periodic sweep that fails import reports stuck without an outcome."""

from __future__ import annotations

import logging
from typing import Any

import psycopg

from ..import_jobs import invalidate_stale_jobs
from ..registry import register
from ..scheduler import IMPORT_SWEEP_JOB_TYPE
from ..store import PostgresStore

logger = logging.getLogger(__name__)


@register(IMPORT_SWEEP_JOB_TYPE)
async def handle_import_sweep(
    conn: psycopg.AsyncConnection[Any], payload: dict[str, Any]
) -> None:
    flagged = await invalidate_stale_jobs(PostgresStore(conn))
    logger.info(
        "Import sweep flagged %d stale report(s) (scheduler_key=%s)",
        flagged,
        payload.get("scheduler_key", IMPORT_SWEEP_JOB_TYPE),
    )
