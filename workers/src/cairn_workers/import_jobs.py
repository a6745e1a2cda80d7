"""Import job lifecycle: report start/finish, listing, stale sweep and deploy."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .import_adapter import ImportReport, ImportResultResponse, ImportSource, parse_deploy_input
from .store import Store

logger = logging.getLogger(__name__)

IMPORT_JOB_TYPE = "import.process"
STALE_AFTER_HOURS = 24
# Imports are not replayed: a retried import would duplicate committed items.
IMPORT_JOB_MAX_RETRIES = 1


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


async def start_import_job(store: Store, user_id: int, source: ImportSource) -> ImportReport:
    report = await store.insert_import_report(user_id, source)
    logger.info("Started import report %s (user=%s, source=%s)", report.id, user_id, source)
    return report


async def finish_import_job(
    store: Store,
    report_id: int,
    *,
    success: bool,
    details: ImportResultResponse,
) -> ImportReport:
    report = await store.finish_import_report(report_id, success=success, details=details)
    logger.info(
        "Finished import report %s (success=%s, total=%d, failed=%d)",
        report_id,
        success,
        details.import_details.total,
        len(details.failed_items),
    )
    return report


async def list_import_jobs(store: Store, user_id: int) -> list[ImportReport]:
    """All import reports of a user, newest first."""
    return await store.list_import_reports(user_id)


def is_stale(
    report: ImportReport,
    now: datetime,
    threshold_hours: int = STALE_AFTER_HOURS,
) -> bool:
    if report.success is not None:
        return False
    return _as_utc(report.started_on) < _as_utc(now) - timedelta(hours=threshold_hours)


async def invalidate_stale_jobs(store: Store, now: datetime | None = None) -> int:
    """Mark unresolved reports older than the threshold as failed.

    Safe to run repeatedly: only reports still unresolved are touched, so a
    second sweep over the same data flags nothing.
    """
    now = now or datetime.now(UTC)
    flagged = 0
    for report in await store.list_unresolved_import_reports():
        if not is_stale(report, now):
            continue
        if await store.mark_import_report_failed(report.id):
            flagged += 1
    if flagged:
        logger.warning("Marked %d stale import report(s) as failed", flagged)
    return flagged


async def deploy_import_job(
    store: Store, user_id: int, job_input: Mapping[str, Any]
) -> str:
    """Validate the tagged import input and enqueue it as a background job."""
    try:
        parsed = parse_deploy_input(job_input)
    except PydanticValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise ValidationError(
            f"Invalid import input: {first.get('msg', 'invalid payload')}",
            field=location or "source",
        ) from exc

    payload = {"user_id": user_id, "input": parsed.model_dump(mode="json")}
    job_id = await store.enqueue_job(
        user_id, IMPORT_JOB_TYPE, payload, max_retries=IMPORT_JOB_MAX_RETRIES
    )
    logger.info(
        "Deployed %s job %s (user=%s, source=%s)",
        IMPORT_JOB_TYPE,
        job_id,
        user_id,
        parsed.source,
    )
    return str(job_id)
