"""In-memory fakes for the Store and MediaService protocols."""

from __future__ import annotations

import asyncio
import copy
import itertools
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

import psycopg
import pytest

from cairn_workers.errors import ExternalResolutionError, NotFoundError
from cairn_workers.fitness_contract import (
    Exercise,
    ExerciseAssociation,
    UserPreferences,
    Workout,
)
from cairn_workers.import_adapter import ImportReport, ImportResultResponse
from cairn_workers.media_contract import (
    ChangeCollectionToEntityInput,
    CreateOrUpdateCollectionInput,
    MediaDetails,
    PostReviewInput,
    ProgressUpdateInput,
)


class InMemoryStore:
    """Store double: returns copies on read so only explicit saves persist."""

    def __init__(self, exercises: list[Exercise] | None = None) -> None:
        self.exercises: dict[int, Exercise] = {e.id: e for e in exercises or []}
        self.associations: dict[tuple[int, int], ExerciseAssociation] = {}
        self.workouts: dict[str, Workout] = {}
        self.preferences: dict[int, UserPreferences] = {}
        self.reports: dict[int, ImportReport] = {}
        self.jobs: list[dict[str, Any]] = []
        self._locks: dict[tuple[int, int], asyncio.Lock] = {}
        self._association_ids = itertools.count(1)
        self._report_ids = itertools.count(1)
        self._job_ids = itertools.count(1)

    def now(self) -> datetime:
        return datetime.now(UTC)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        snapshot = (copy.deepcopy(self.associations), copy.deepcopy(self.workouts))
        try:
            yield
        except BaseException:
            self.associations, self.workouts = snapshot
            raise

    @asynccontextmanager
    async def association_lock(self, user_id: int, exercise_id: int) -> AsyncIterator[None]:
        lock = self._locks.setdefault((user_id, exercise_id), asyncio.Lock())
        async with lock:
            yield

    async def get_exercise(self, exercise_id: int) -> Exercise | None:
        return self.exercises.get(exercise_id)

    async def exercise_ids_by_name(self) -> dict[str, int]:
        return {e.name: e.id for e in self.exercises.values()}

    async def get_exercise_association(
        self, user_id: int, exercise_id: int
    ) -> ExerciseAssociation | None:
        # Yield so concurrent commits interleave between read and write.
        await asyncio.sleep(0)
        found = self.associations.get((user_id, exercise_id))
        return found.model_copy(deep=True) if found is not None else None

    async def save_exercise_association(
        self, association: ExerciseAssociation
    ) -> ExerciseAssociation:
        await asyncio.sleep(0)
        saved = association.model_copy(deep=True)
        if saved.id is None:
            saved.id = next(self._association_ids)
        saved.last_updated_on = self.now()
        self.associations[(saved.user_id, saved.exercise_id)] = saved
        return saved.model_copy(deep=True)

    async def insert_workout(self, workout: Workout) -> str:
        self.workouts[workout.id] = workout.model_copy(deep=True)
        return workout.id

    async def get_workout(self, user_id: int, workout_id: str) -> Workout | None:
        found = self.workouts.get(workout_id)
        if found is None or found.user_id != user_id:
            return None
        return found.model_copy(deep=True)

    async def delete_workout(self, user_id: int, workout_id: str) -> None:
        found = self.workouts.get(workout_id)
        if found is not None and found.user_id == user_id:
            del self.workouts[workout_id]

    async def get_user_preferences(self, user_id: int) -> UserPreferences:
        return self.preferences.get(user_id, UserPreferences())

    def add_report(self, user_id: int, source: str, started_on: datetime, success=None):
        report = ImportReport(
            id=next(self._report_ids),
            user_id=user_id,
            source=source,
            started_on=started_on,
            success=success,
        )
        self.reports[report.id] = report
        return report

    async def insert_import_report(self, user_id: int, source: str) -> ImportReport:
        return self.add_report(user_id, source, self.now())

    async def finish_import_report(
        self, report_id: int, *, success: bool, details: ImportResultResponse
    ) -> ImportReport:
        report = self.reports[report_id]
        report.finished_on = self.now()
        report.success = success
        report.details = details
        return report.model_copy(deep=True)

    async def list_import_reports(self, user_id: int) -> list[ImportReport]:
        mine = [r for r in self.reports.values() if r.user_id == user_id]
        return sorted(mine, key=lambda r: (r.started_on, r.id), reverse=True)

    async def list_unresolved_import_reports(self) -> list[ImportReport]:
        return [r.model_copy() for r in self.reports.values() if r.success is None]

    async def mark_import_report_failed(self, report_id: int) -> bool:
        report = self.reports.get(report_id)
        if report is None or report.success is not None:
            return False
        report.success = False
        return True

    async def enqueue_job(
        self, user_id: int, job_type: str, payload: dict[str, Any], max_retries: int
    ) -> int:
        job_id = next(self._job_ids)
        self.jobs.append(
            {
                "id": job_id,
                "user_id": user_id,
                "job_type": job_type,
                "payload": payload,
                "max_retries": max_retries,
            }
        )
        return job_id


class FakeMediaService:
    """MediaService double with per-identifier failure knobs."""

    def __init__(self) -> None:
        self.metadata_ids: dict[str, int] = {}
        self.resolved: list[str] = []
        self.collections: dict[str, int] = {}
        self.memberships: list[tuple[str, int]] = []
        self.progress: list[ProgressUpdateInput] = []
        self.reviews: list[PostReviewInput] = []
        self.failing_identifiers: set[str] = set()
        self.slow_identifiers: set[str] = set()
        self.failing_seen_metadata: set[int] = set()
        self.failing_membership: set[str] = set()
        # Database-level failures, as the Postgres service raises them.
        self.db_failing_identifiers: set[str] = set()
        self.db_failing_seen_metadata: set[int] = set()
        self.db_failing_review_metadata: set[int] = set()
        self.savepoints = 0
        self.rollbacks = 0

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        self.savepoints += 1
        snapshot = (list(self.progress), list(self.reviews), list(self.memberships))
        try:
            yield
        except BaseException:
            self.rollbacks += 1
            self.progress, self.reviews, self.memberships = snapshot
            raise

    def _metadata_id(self, identifier: str) -> int:
        return self.metadata_ids.setdefault(identifier, len(self.metadata_ids) + 1)

    async def resolve_or_create(self, lot: str, source: str, identifier: str) -> int:
        self.resolved.append(identifier)
        if identifier in self.slow_identifiers:
            await asyncio.sleep(10)
        if identifier in self.failing_identifiers:
            raise ExternalResolutionError(f"{source} has no {lot} {identifier}")
        if identifier in self.db_failing_identifiers:
            raise psycopg.errors.NumericValueOutOfRange("integer out of range")
        return self._metadata_id(identifier)

    async def commit_known(self, details: MediaDetails) -> int:
        self.resolved.append(details.identifier)
        return self._metadata_id(details.identifier)

    async def create_or_update_collection(
        self, user_id: int, collection: CreateOrUpdateCollectionInput
    ) -> int:
        return self.collections.setdefault(collection.name, len(self.collections) + 1)

    async def add_entity_to_collection(
        self, user_id: int, change: ChangeCollectionToEntityInput
    ) -> None:
        if change.collection_name in self.failing_membership:
            raise NotFoundError(f"Collection {change.collection_name!r} not found")
        self.memberships.append((change.collection_name, change.metadata_id))

    async def progress_update(self, user_id: int, update: ProgressUpdateInput) -> None:
        if update.metadata_id in self.failing_seen_metadata:
            raise NotFoundError("seen entry rejected")
        if update.metadata_id in self.db_failing_seen_metadata:
            raise psycopg.errors.ForeignKeyViolation("seen_metadata_id_fkey")
        self.progress.append(update)

    async def post_review(self, user_id: int, review: PostReviewInput) -> None:
        if review.metadata_id in self.db_failing_review_metadata:
            raise psycopg.errors.ForeignKeyViolation("reviews_metadata_id_fkey")
        self.reviews.append(review)


BENCH = Exercise(id=1, name="Bench Press", lot="RepsAndWeight")
RUN = Exercise(id=2, name="Treadmill Run", lot="DistanceAndDuration")
PLANK = Exercise(id=3, name="Plank", lot="Duration")
SQUAT = Exercise(id=4, name="Squat", lot="RepsAndWeight")


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore([BENCH, RUN, PLANK, SQUAT])


@pytest.fixture
def media() -> FakeMediaService:
    return FakeMediaService()
