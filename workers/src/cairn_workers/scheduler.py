"""Recurring scheduler helpers for background maintenance jobs."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
import os
from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Json

logger = logging.getLogger(__name__)

IMPORT_SWEEP_JOB_TYPE = "maintenance.import_sweep"


def import_sweep_interval_hours() -> int:
    raw = os.environ.get("CAIRN_IMPORT_SWEEP_INTERVAL_HOURS", "1")
    try:
        return max(1, int(raw))
    except ValueError:
        return 1


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


async def ensure_import_sweep_job(conn: psycopg.AsyncConnection[Any]) -> int | None:
    """Keep exactly one in-flight stale-import sweep; returns the new job id if one was enqueued."""
    interval_h = import_sweep_interval_hours()
    now = datetime.now(timezone.utc)

    async with conn.cursor(row_factory=dict_row) as cur:
        await cur.execute(
            """
            SELECT id
            FROM background_jobs
            WHERE job_type = %s
              AND status IN ('pending', 'processing')
            ORDER BY scheduled_for ASC, id ASC
            LIMIT 1
            """,
            (IMPORT_SWEEP_JOB_TYPE,),
        )
        in_flight = await cur.fetchone()
        if in_flight is not None:
            return None

        await cur.execute(
            """
            SELECT completed_at
            FROM background_jobs
            WHERE job_type = %s
              AND status = 'completed'
              AND completed_at IS NOT NULL
            ORDER BY completed_at DESC
            LIMIT 1
            """,
            (IMPORT_SWEEP_JOB_TYPE,),
        )
        last_completed = await cur.fetchone()
        if last_completed is not None:
            completed_at = _as_utc(last_completed["completed_at"])
            if completed_at + timedelta(hours=interval_h) > now:
                return None

        # background_jobs rows are owned by a user; the sweep borrows the
        # owner of the oldest unresolved report.
        await cur.execute(
            """
            SELECT user_id
            FROM import_reports
            WHERE success IS NULL
            ORDER BY started_on ASC
            LIMIT 1
            """
        )
        seed_row = await cur.fetchone()
        if seed_row is None:
            logger.debug("No unresolved imports; skipping %s scheduling", IMPORT_SWEEP_JOB_TYPE)
            return None

        payload = {
            "interval_hours": interval_h,
            "scheduler_key": IMPORT_SWEEP_JOB_TYPE,
            "scheduled_at": now.isoformat(),
        }
        await cur.execute(
            """
            INSERT INTO background_jobs (
                user_id, job_type, payload, scheduled_for, priority, max_retries
            )
            VALUES (%s, %s, %s, NOW(), 50, 5)
            RETURNING id
            """,
            (seed_row["user_id"], IMPORT_SWEEP_JOB_TYPE, Json(payload)),
        )
        row = await cur.fetchone()
        if row is None:
            return None
        job_id = int(row["id"])

    logger.info(
        "Scheduled %s (job_id=%d, interval_h=%d)",
        IMPORT_SWEEP_JOB_TYPE,
        job_id,
        interval_h,
    )
    return job_id
