"""Persistence gateway for workouts, exercise associations and import reports.

The engine and the pipeline only talk to the ``Store`` protocol. The
PostgreSQL implementation runs on the job's connection, so everything it
writes commits or rolls back with the surrounding job transaction.

Concurrency contract: read-modify-write of a user_to_entity row must happen
inside ``association_lock`` for that (user, exercise). In PostgreSQL the lock
is a transaction-scoped advisory lock, released on commit/rollback.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any, Protocol

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Json

from .fitness_contract import (
    Exercise,
    ExerciseAssociation,
    ExerciseExtraInformation,
    UserPreferences,
    Workout,
)
from .import_adapter import ImportReport, ImportResultResponse

logger = logging.getLogger(__name__)


class Store(Protocol):
    def transaction(self) -> AbstractAsyncContextManager[Any]: ...

    def association_lock(
        self, user_id: int, exercise_id: int
    ) -> AbstractAsyncContextManager[None]: ...

    async def get_exercise(self, exercise_id: int) -> Exercise | None: ...

    async def exercise_ids_by_name(self) -> dict[str, int]: ...

    async def get_exercise_association(
        self, user_id: int, exercise_id: int
    ) -> ExerciseAssociation | None: ...

    async def save_exercise_association(
        self, association: ExerciseAssociation
    ) -> ExerciseAssociation: ...

    async def insert_workout(self, workout: Workout) -> str: ...

    async def get_workout(self, user_id: int, workout_id: str) -> Workout | None: ...

    async def delete_workout(self, user_id: int, workout_id: str) -> None: ...

    async def get_user_preferences(self, user_id: int) -> UserPreferences: ...

    async def insert_import_report(self, user_id: int, source: str) -> ImportReport: ...

    async def finish_import_report(
        self, report_id: int, *, success: bool, details: ImportResultResponse
    ) -> ImportReport: ...

    async def list_import_reports(self, user_id: int) -> list[ImportReport]: ...

    async def list_unresolved_import_reports(self) -> list[ImportReport]: ...

    async def mark_import_report_failed(self, report_id: int) -> bool: ...

    async def enqueue_job(
        self, user_id: int, job_type: str, payload: dict[str, Any], max_retries: int
    ) -> int: ...


def _association_from_row(row: dict[str, Any]) -> ExerciseAssociation:
    extra = row.get("exercise_extra_information") or {}
    return ExerciseAssociation(
        id=row["id"],
        user_id=row["user_id"],
        exercise_id=row["exercise_id"],
        num_times_interacted=row["num_times_interacted"],
        last_updated_on=row.get("last_updated_on"),
        exercise_extra_information=ExerciseExtraInformation.model_validate(extra),
    )


def _report_from_row(row: dict[str, Any]) -> ImportReport:
    details = row.get("details")
    return ImportReport(
        id=row["id"],
        user_id=row["user_id"],
        source=row["source"],
        started_on=row["started_on"],
        finished_on=row.get("finished_on"),
        success=row.get("success"),
        details=ImportResultResponse.model_validate(details) if details else None,
    )


class PostgresStore:
    def __init__(self, conn: psycopg.AsyncConnection[Any]) -> None:
        self.conn = conn

    def transaction(self) -> AbstractAsyncContextManager[Any]:
        # Nested inside the job transaction this is a savepoint.
        return self.conn.transaction()

    @asynccontextmanager
    async def association_lock(self, user_id: int, exercise_id: int) -> AsyncIterator[None]:
        await self.conn.execute(
            "SELECT pg_advisory_xact_lock(hashtext(%s)::bigint)",
            (f"user_to_entity:{user_id}:{exercise_id}",),
        )
        yield

    async def get_exercise(self, exercise_id: int) -> Exercise | None:
        async with self.conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                "SELECT id, name, lot FROM exercises WHERE id = %s",
                (exercise_id,),
            )
            row = await cur.fetchone()
        if row is None:
            return None
        return Exercise.model_validate(row)

    async def exercise_ids_by_name(self) -> dict[str, int]:
        async with self.conn.cursor(row_factory=dict_row) as cur:
            await cur.execute("SELECT id, name FROM exercises")
            rows = await cur.fetchall()
        return {str(row["name"]): int(row["id"]) for row in rows}

    async def get_exercise_association(
        self, user_id: int, exercise_id: int
    ) -> ExerciseAssociation | None:
        async with self.conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                """
                SELECT id, user_id, exercise_id, num_times_interacted,
                       last_updated_on, exercise_extra_information
                FROM user_to_entity
                WHERE user_id = %s
                  AND exercise_id = %s
                """,
                (user_id, exercise_id),
            )
            row = await cur.fetchone()
        if row is None:
            return None
        return _association_from_row(row)

    async def save_exercise_association(
        self, association: ExerciseAssociation
    ) -> ExerciseAssociation:
        extra = Json(association.exercise_extra_information.model_dump(mode="json"))
        async with self.conn.cursor(row_factory=dict_row) as cur:
            if association.id is None:
                await cur.execute(
                    """
                    INSERT INTO user_to_entity (
                        user_id, exercise_id, num_times_interacted,
                        exercise_extra_information, last_updated_on
                    )
                    VALUES (%s, %s, %s, %s, NOW())
                    RETURNING id, user_id, exercise_id, num_times_interacted,
                              last_updated_on, exercise_extra_information
                    """,
                    (
                        association.user_id,
                        association.exercise_id,
                        association.num_times_interacted,
                        extra,
                    ),
                )
            else:
                await cur.execute(
                    """
                    UPDATE user_to_entity
                    SET num_times_interacted = %s,
                        exercise_extra_information = %s,
                        last_updated_on = NOW()
                    WHERE id = %s
                    RETURNING id, user_id, exercise_id, num_times_interacted,
                              last_updated_on, exercise_extra_information
                    """,
                    (association.num_times_interacted, extra, association.id),
                )
            row = await cur.fetchone()
        if row is None:
            raise RuntimeError(
                f"user_to_entity row vanished during save (id={association.id})"
            )
        return _association_from_row(row)

    async def insert_workout(self, workout: Workout) -> str:
        async with self.conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                """
                INSERT INTO workouts (
                    id, user_id, name, comment, start_time, end_time, summary, information
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING id
                """,
                (
                    workout.id,
                    workout.user_id,
                    workout.name,
                    workout.comment,
                    workout.start_time,
                    workout.end_time,
                    Json(workout.summary.model_dump(mode="json")),
                    Json(workout.information.model_dump(mode="json")),
                ),
            )
            row = await cur.fetchone()
        return str(row["id"]) if row is not None else workout.id

    async def get_workout(self, user_id: int, workout_id: str) -> Workout | None:
        async with self.conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                """
                SELECT id, user_id, name, comment, start_time, end_time, summary, information
                FROM workouts
                WHERE id = %s
                  AND user_id = %s
                """,
                (workout_id, user_id),
            )
            row = await cur.fetchone()
        if row is None:
            return None
        return Workout.model_validate(row)

    async def delete_workout(self, user_id: int, workout_id: str) -> None:
        await self.conn.execute(
            "DELETE FROM workouts WHERE id = %s AND user_id = %s",
            (workout_id, user_id),
        )

    async def get_user_preferences(self, user_id: int) -> UserPreferences:
        async with self.conn.cursor(row_factory=dict_row) as cur:
            await cur.execute("SELECT preferences FROM users WHERE id = %s", (user_id,))
            row = await cur.fetchone()
        if row is None or not row.get("preferences"):
            return UserPreferences()
        return UserPreferences.model_validate(row["preferences"])

    async def insert_import_report(self, user_id: int, source: str) -> ImportReport:
        async with self.conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                """
                INSERT INTO import_reports (user_id, source, started_on)
                VALUES (%s, %s, NOW())
                RETURNING id, user_id, source, started_on, finished_on, success, details
                """,
                (user_id, source),
            )
            row = await cur.fetchone()
        if row is None:
            raise RuntimeError("import_reports insert returned no row")
        logger.debug("Started import report id=%s", row["id"])
        return _report_from_row(row)

    async def finish_import_report(
        self, report_id: int, *, success: bool, details: ImportResultResponse
    ) -> ImportReport:
        async with self.conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                """
                UPDATE import_reports
                SET finished_on = NOW(),
                    success = %s,
                    details = %s
                WHERE id = %s
                RETURNING id, user_id, source, started_on, finished_on, success, details
                """,
                (success, Json(details.model_dump(mode="json")), report_id),
            )
            row = await cur.fetchone()
        if row is None:
            raise RuntimeError(f"import report {report_id} not found")
        return _report_from_row(row)

    async def list_import_reports(self, user_id: int) -> list[ImportReport]:
        async with self.conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                """
                SELECT id, user_id, source, started_on, finished_on, success, details
                FROM import_reports
                WHERE user_id = %s
                ORDER BY started_on DESC, id DESC
                """,
                (user_id,),
            )
            rows = await cur.fetchall()
        return [_report_from_row(row) for row in rows]

    async def list_unresolved_import_reports(self) -> list[ImportReport]:
        async with self.conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                """
                SELECT id, user_id, source, started_on, finished_on, success, details
                FROM import_reports
                WHERE success IS NULL
                ORDER BY started_on, id
                """
            )
            rows = await cur.fetchall()
        return [_report_from_row(row) for row in rows]

    async def mark_import_report_failed(self, report_id: int) -> bool:
        async with self.conn.cursor() as cur:
            await cur.execute(
                """
                UPDATE import_reports
                SET success = FALSE
                WHERE id = %s
                  AND success IS NULL
                """,
                (report_id,),
            )
            return cur.rowcount > 0

    async def enqueue_job(
        self, user_id: int, job_type: str, payload: dict[str, Any], max_retries: int
    ) -> int:
        async with self.conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                """
                INSERT INTO background_jobs (user_id, job_type, payload, max_retries)
                VALUES (%s, %s, %s, %s)
                RETURNING id
                """,
                (user_id, job_type, Json(payload), max_retries),
            )
            row = await cur.fetchone()
        if row is None:
            raise RuntimeError(f"background_jobs insert returned no row for {job_type}")
        await self.conn.execute("SELECT pg_notify('cairn_jobs', %s)", (job_type,))
        return int(row["id"])
