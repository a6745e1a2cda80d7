"""Import reconciliation pipeline.

run_import drives one import job end to end: open the report, map the
export through its source adapter, replay workouts through the commit
engine or commit media items through the media service, then close the
report. Only a ParseError from the adapter fails the job; every per-item
failure is recorded in ``failed_items`` and the batch carries on.
"""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal

import psycopg

from .errors import CairnError, ParseError
from .fitness_contract import UserPreferences
from .import_adapter import (
    WORKOUT_SOURCES,
    ImportContext,
    ImportDetails,
    ImportFailedItem,
    ImportReport,
    ImportResult,
    ImportResultResponse,
    MediaJsonImportInput,
    StrongAppImportInput,
)
from .import_error_taxonomy import classify_import_error_code, summarize_failed_items
from .import_jobs import finish_import_job, start_import_job
from .importers import get_adapter
from .media_contract import (
    AlreadyFilled,
    ChangeCollectionToEntityInput,
    CreateOrUpdateCollectionInput,
    ImportOrExportMediaItem,
    PostReviewInput,
    ProgressUpdateInput,
)
from .media_service import MediaService
from .metrics import record_import_item
from .store import Store
from .workout_commit import commit_workout

logger = logging.getLogger(__name__)

DEFAULT_ITEM_TIMEOUT_SECONDS = 30.0
_OUT_OF_FIVE_DIVISOR = Decimal(20)
_ITEM_ERRORS = (CairnError, psycopg.Error)


def _error_message(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


def sort_by_richness(items: list[ImportOrExportMediaItem]) -> list[ImportOrExportMediaItem]:
    """Richest items first; equal richness keeps the export order."""
    return sorted(items, key=lambda item: item.richness, reverse=True)


async def _import_workouts(
    store: Store,
    user_id: int,
    result: ImportResult,
    preferences: UserPreferences,
    failed_items: list[ImportFailedItem],
) -> None:
    for position, workout in enumerate(result.workouts):
        try:
            async with store.transaction():
                await commit_workout(store, user_id, workout, preferences)
        except _ITEM_ERRORS as exc:
            logger.warning(
                "Imported workout %d (%s) was not committed: %s",
                position,
                workout.name,
                exc,
            )
            failed_items.append(
                ImportFailedItem(
                    step="WorkoutCommit",
                    identifier=f"{workout.name} @ {workout.start_time.isoformat()}",
                    error=_error_message(exc),
                )
            )
            record_import_item(committed=False)
            continue
        record_import_item(committed=True)


async def _resolve_item(
    media: MediaService,
    item: ImportOrExportMediaItem,
    timeout_seconds: float,
) -> int:
    identifier = item.internal_identifier
    # The timeout sits inside the savepoint so a cancelled query is rolled back.
    async with media.transaction():
        async with asyncio.timeout(timeout_seconds):
            if isinstance(identifier, AlreadyFilled):
                return await media.commit_known(identifier.details)
            return await media.resolve_or_create(item.lot, item.source, identifier.identifier)


async def _commit_seen_history(
    media: MediaService,
    user_id: int,
    item: ImportOrExportMediaItem,
    metadata_id: int,
    failed_items: list[ImportFailedItem],
) -> None:
    for seen in item.seen_history:
        try:
            async with media.transaction():
                await media.progress_update(
                    user_id,
                    ProgressUpdateInput(
                        metadata_id=metadata_id,
                        progress=seen.progress if seen.progress is not None else 100,
                        finished_on=seen.ended_on.date() if seen.ended_on else None,
                        show_season_number=seen.show_season_number,
                        show_episode_number=seen.show_episode_number,
                        podcast_episode_number=seen.podcast_episode_number,
                    ),
                )
        except _ITEM_ERRORS as exc:
            logger.warning("Seen entry for %s was not committed: %s", item.source_id, exc)
            failed_items.append(
                ImportFailedItem(
                    lot=item.lot,
                    step="SeenHistoryConversion",
                    identifier=item.source_id,
                    error=_error_message(exc),
                )
            )


async def _commit_reviews(
    media: MediaService,
    user_id: int,
    item: ImportOrExportMediaItem,
    metadata_id: int,
    preferences: UserPreferences,
    failed_items: list[ImportFailedItem],
) -> None:
    for rating in item.reviews:
        if rating.review is None and rating.rating is None:
            logger.debug("Skipping empty review for %s", item.source_id)
            continue
        value = rating.rating
        if value is not None and preferences.review_scale == "OutOfFive":
            value = value / _OUT_OF_FIVE_DIVISOR
        review = rating.review
        try:
            async with media.transaction():
                await media.post_review(
                    user_id,
                    PostReviewInput(
                        metadata_id=metadata_id,
                        rating=value,
                        text=review.text if review else None,
                        spoiler=bool(review.spoiler) if review else None,
                        date=review.date if review else None,
                        show_season_number=rating.show_season_number,
                        show_episode_number=rating.show_episode_number,
                        podcast_episode_number=rating.podcast_episode_number,
                    ),
                )
        except _ITEM_ERRORS as exc:
            logger.warning("Review for %s was not committed: %s", item.source_id, exc)
            failed_items.append(
                ImportFailedItem(
                    lot=item.lot,
                    step="ReviewConversion",
                    identifier=item.source_id,
                    error=_error_message(exc),
                )
            )


async def _create_collection(
    media: MediaService, user_id: int, collection: CreateOrUpdateCollectionInput
) -> None:
    try:
        async with media.transaction():
            await media.create_or_update_collection(user_id, collection)
    except _ITEM_ERRORS as exc:
        logger.warning("Could not create collection %r: %s", collection.name, exc)


async def _commit_collections(
    media: MediaService,
    user_id: int,
    item: ImportOrExportMediaItem,
    metadata_id: int,
) -> None:
    # Membership is best-effort and never reported as a failed item.
    for raw_name in item.collections:
        name = raw_name.strip()
        try:
            async with media.transaction():
                await media.create_or_update_collection(
                    user_id, CreateOrUpdateCollectionInput(name=name)
                )
                await media.add_entity_to_collection(
                    user_id,
                    ChangeCollectionToEntityInput(collection_name=name, metadata_id=metadata_id),
                )
        except (*_ITEM_ERRORS, ValueError) as exc:
            logger.warning(
                "Could not add %s to collection %r: %s", item.source_id, name, exc
            )


async def _import_media(
    media: MediaService,
    user_id: int,
    result: ImportResult,
    preferences: UserPreferences,
    failed_items: list[ImportFailedItem],
    item_timeout_seconds: float,
) -> None:
    for collection in result.collections:
        await _create_collection(media, user_id, collection)

    items = sort_by_richness(result.media)
    for position, item in enumerate(items, start=1):
        try:
            metadata_id = await _resolve_item(media, item, item_timeout_seconds)
        except TimeoutError:
            logger.warning(
                "Resolving %s timed out after %.1fs", item.source_id, item_timeout_seconds
            )
            failed_items.append(
                ImportFailedItem(
                    lot=item.lot,
                    step="MediaDetailsFromProvider",
                    identifier=item.source_id,
                    error=f"timed out after {item_timeout_seconds:g}s",
                )
            )
            record_import_item(committed=False)
            continue
        except _ITEM_ERRORS as exc:
            logger.warning("Resolving %s failed: %s", item.source_id, exc)
            failed_items.append(
                ImportFailedItem(
                    lot=item.lot,
                    step="MediaDetailsFromProvider",
                    identifier=item.source_id,
                    error=_error_message(exc),
                )
            )
            record_import_item(committed=False)
            continue

        await _commit_seen_history(media, user_id, item, metadata_id, failed_items)
        await _commit_reviews(media, user_id, item, metadata_id, preferences, failed_items)
        await _commit_collections(media, user_id, item, metadata_id)
        record_import_item(committed=True)
        logger.debug(
            "Imported item %d/%d (lot=%s, seen=%d, reviews=%d, collections=%d)",
            position,
            len(items),
            item.lot,
            len(item.seen_history),
            len(item.reviews),
            len(item.collections),
        )


async def run_import(
    store: Store,
    media: MediaService,
    user_id: int,
    job_input: StrongAppImportInput | MediaJsonImportInput,
    *,
    item_timeout_seconds: float = DEFAULT_ITEM_TIMEOUT_SECONDS,
) -> ImportReport:
    report = await start_import_job(store, user_id, job_input.source)

    adapter = get_adapter(job_input.source)
    if adapter is None:
        raise ValueError(f"No import adapter for source={job_input.source!r}")

    if job_input.source in WORKOUT_SOURCES:
        context = ImportContext(exercise_ids_by_name=await store.exercise_ids_by_name())
    else:
        context = ImportContext()

    try:
        result = adapter.adapt(job_input, context)
    except ParseError as exc:
        logger.warning("Import %s could not be parsed: %s", report.id, exc)
        return await finish_import_job(
            store,
            report.id,
            success=False,
            details=ImportResultResponse(
                error={**exc.to_dict(), "error_class": classify_import_error_code(exc.code)}
            ),
        )

    preferences = await store.get_user_preferences(user_id)
    failed_items = list(result.failed_items)

    if result.workouts:
        await _import_workouts(store, user_id, result, preferences, failed_items)
    if result.media or result.collections:
        await _import_media(
            media, user_id, result, preferences, failed_items, item_timeout_seconds
        )

    details = ImportResultResponse(
        import_details=ImportDetails(total=len(result.workouts) + len(result.media)),
        failed_items=failed_items,
    )
    if failed_items:
        logger.info(
            "Import %s finished with failed items by class: %s",
            report.id,
            summarize_failed_items(failed_items),
        )
    return await finish_import_job(store, report.id, success=True, details=details)
