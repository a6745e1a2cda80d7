"""Strong app CSV export adapter.

The export is one row per set, ``;`` delimited. Rows are grouped into
sets -> exercises -> workouts by walking each row together with the next:
an exercise ends when the next row's set order does not increase, a
workout ends when the next row's date differs.
"""

from __future__ import annotations

import csv
import io
import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

from ..errors import ParseError
from ..fitness_contract import (
    ExerciseInput,
    WorkoutInput,
    WorkoutSetInput,
    WorkoutSetStatistic,
)
from ..import_adapter import BaseImportAdapter, ImportContext, ImportResult, StrongAppImportInput

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
WORKOUT_DURATION_PATTERN = re.compile(r"^(\d+h)?\s?(\d+m)?$")

_REQUIRED_COLUMNS: tuple[str, ...] = ("Date", "Exercise Name", "Set Order", "Workout Name")


@dataclass(frozen=True)
class _Entry:
    line: int
    date: str
    workout_name: str
    workout_notes: str | None
    workout_duration: str
    exercise_name: str
    set_order: int
    weight: Decimal | None
    reps: int | None
    distance: Decimal | None
    seconds: Decimal | None
    notes: str | None


def parse_workout_duration(raw: str) -> timedelta:
    """Parse "<N>h <M>m". Missing parts are zero; unparseable text is zero."""
    match = WORKOUT_DURATION_PATTERN.match(raw.strip())
    if match is None:
        return timedelta(0)
    hours_raw, minutes_raw = match.groups()
    hours = int(hours_raw.rstrip("h")) if hours_raw else 0
    minutes = int(minutes_raw.rstrip("m")) if minutes_raw else 0
    return timedelta(hours=hours, minutes=minutes)


def _optional_text(row: dict[str, Any], column: str) -> str | None:
    value = (row.get(column) or "").strip()
    return value or None


def _optional_decimal(row: dict[str, Any], column: str, line: int) -> Decimal | None:
    raw = _optional_text(row, column)
    if raw is None:
        return None
    try:
        return Decimal(raw)
    except InvalidOperation as exc:
        raise ParseError(
            f"Invalid number {raw!r} in column {column!r} on line {line}",
            field=column,
            docs_hint="Numeric columns must use '.' as the decimal separator.",
        ) from exc


def _optional_int(row: dict[str, Any], column: str, line: int) -> int | None:
    value = _optional_decimal(row, column, line)
    if value is None:
        return None
    if value != value.to_integral_value():
        raise ParseError(
            f"Expected a whole number in column {column!r} on line {line}",
            field=column,
        )
    return int(value)


def _parse_date(raw: str, line: int) -> datetime:
    try:
        parsed = datetime.strptime(raw.strip(), DATE_FORMAT)
    except ValueError as exc:
        raise ParseError(
            f"Invalid date {raw!r} on line {line}",
            field="Date",
            docs_hint="Dates must look like 2023-06-01 18:30:00.",
        ) from exc
    return parsed.replace(tzinfo=UTC)


def _read_entries(export: str) -> list[_Entry]:
    reader = csv.DictReader(io.StringIO(export.lstrip("\ufeff")), delimiter=";")
    columns = set(reader.fieldnames or [])
    missing = [column for column in _REQUIRED_COLUMNS if column not in columns]
    if missing:
        raise ParseError(
            f"Strong export is missing columns: {', '.join(missing)}",
            field="export",
            docs_hint="Upload the unmodified CSV produced by Strong's export.",
        )

    entries: list[_Entry] = []
    for line, row in enumerate(reader, start=2):
        set_order = _optional_int(row, "Set Order", line)
        if set_order is None:
            raise ParseError(f"Missing set order on line {line}", field="Set Order")
        entries.append(
            _Entry(
                line=line,
                date=(row.get("Date") or "").strip(),
                workout_name=(row.get("Workout Name") or "").strip(),
                workout_notes=_optional_text(row, "Workout Notes"),
                workout_duration=(row.get("Workout Duration") or "").strip(),
                exercise_name=(row.get("Exercise Name") or "").strip(),
                set_order=set_order,
                weight=_optional_decimal(row, "Weight", line),
                reps=_optional_int(row, "Reps", line),
                distance=_optional_decimal(row, "Distance", line),
                seconds=_optional_decimal(row, "Seconds", line),
                notes=_optional_text(row, "Notes"),
            )
        )
    return entries


def _set_from_entry(entry: _Entry) -> WorkoutSetInput:
    weight = entry.weight
    if weight is not None and weight == 0:
        weight = Decimal(1)
    return WorkoutSetInput(
        statistic=WorkoutSetStatistic(
            duration=entry.seconds / 60 if entry.seconds is not None else None,
            distance=entry.distance,
            reps=entry.reps,
            weight=weight,
        ),
        lot="Normal",
    )


class StrongAppAdapter(BaseImportAdapter):
    source = "strong_app"
    input_model = StrongAppImportInput

    def _resolve_exercise_id(
        self,
        exercise_name: str,
        job_input: StrongAppImportInput,
        context: ImportContext,
    ) -> int:
        target = next(
            (m.target_name for m in job_input.mapping if m.source_name == exercise_name),
            None,
        )
        if target is None:
            raise ParseError(
                f"No mapping provided for exercise {exercise_name!r}",
                code="mapping_error",
                field="mapping",
                docs_hint="Map every exercise name in the export to a catalog exercise.",
            )
        exercise_id = context.exercise_ids_by_name.get(target)
        if exercise_id is None:
            raise ParseError(
                f"Mapped exercise {target!r} does not exist in the catalog",
                code="mapping_error",
                field="mapping",
            )
        return exercise_id

    def map_export(self, job_input: StrongAppImportInput, context: ImportContext) -> ImportResult:
        entries = _read_entries(job_input.export)
        workouts: list[WorkoutInput] = []
        exercises: list[ExerciseInput] = []
        sets: list[WorkoutSetInput] = []
        notes: list[str] = []

        for idx, entry in enumerate(entries):
            next_entry = entries[idx + 1] if idx + 1 < len(entries) else None
            sets.append(_set_from_entry(entry))
            if entry.notes:
                notes.append(entry.notes)

            workout_ends = next_entry is None or next_entry.date != entry.date
            exercise_ends = workout_ends or next_entry.set_order <= entry.set_order
            if exercise_ends:
                exercises.append(
                    ExerciseInput(
                        exercise_id=self._resolve_exercise_id(
                            entry.exercise_name, job_input, context
                        ),
                        sets=sets,
                        notes=notes,
                    )
                )
                sets = []
                notes = []

            if workout_ends:
                start_time = _parse_date(entry.date, entry.line)
                workouts.append(
                    WorkoutInput(
                        name=entry.workout_name or "Imported workout",
                        comment=entry.workout_notes,
                        start_time=start_time,
                        end_time=start_time + parse_workout_duration(entry.workout_duration),
                        exercises=exercises,
                    )
                )
                exercises = []

        logger.debug("Strong export mapped %d rows into %d workouts", len(entries), len(workouts))
        return ImportResult(workouts=workouts)
