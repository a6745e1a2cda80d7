"""Personal-record projections and comparison.

Each category projects a set onto one scalar. A missing projection ranks
below any present one; equal projections never replace the incumbent.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal, DivisionByZero, InvalidOperation

from .fitness_contract import (
    PERSONAL_BESTS_BY_LOT,
    ExerciseLot,
    PersonalBestCategory,
    WorkoutSetRecord,
)


def brzycki_1rm(weight: Decimal, reps: int) -> Decimal | None:
    """Estimate 1RM as weight * 36 / (37 - reps). None when not positive."""
    try:
        value = (weight * Decimal(36)) / (Decimal(37) - Decimal(reps))
    except (DivisionByZero, InvalidOperation):
        return None
    if value <= 0:
        return None
    return value


def personal_best_value(
    record: WorkoutSetRecord, category: PersonalBestCategory
) -> Decimal | None:
    statistic = record.statistic
    if category == "Weight":
        return statistic.weight
    if category == "Time":
        return statistic.duration
    if category == "Reps":
        return Decimal(statistic.reps) if statistic.reps is not None else None
    if category == "Volume":
        if statistic.reps is None or statistic.weight is None:
            return None
        return statistic.weight * statistic.reps
    if category == "OneRm":
        if statistic.reps is None or statistic.weight is None:
            return None
        return brzycki_1rm(statistic.weight, statistic.reps)
    if category == "Pace":
        if statistic.duration is None or not statistic.distance:
            return None
        return statistic.duration / statistic.distance
    raise ValueError(f"Unknown personal best category: {category}")


def _exceeds(candidate: Decimal | None, incumbent: Decimal | None) -> bool:
    if candidate is None:
        return False
    if incumbent is None:
        return True
    return candidate > incumbent


def is_new_record(
    candidate: WorkoutSetRecord,
    incumbent: WorkoutSetRecord | None,
    category: PersonalBestCategory,
) -> bool:
    """True iff there is no incumbent or the candidate strictly beats it."""
    if incumbent is None:
        return True
    return _exceeds(
        personal_best_value(candidate, category),
        personal_best_value(incumbent, category),
    )


def index_of_highest(
    records: Sequence[WorkoutSetRecord], category: PersonalBestCategory
) -> int | None:
    """Index of the first set holding the highest projection for the category."""
    best_idx: int | None = None
    best_value: Decimal | None = None
    for idx, record in enumerate(records):
        value = personal_best_value(record, category)
        if best_idx is None or _exceeds(value, best_value):
            best_idx = idx
            best_value = value
    return best_idx


def personal_bests_for_lot(lot: ExerciseLot) -> tuple[PersonalBestCategory, ...]:
    return PERSONAL_BESTS_BY_LOT[lot]


def best_set_index(records: Sequence[WorkoutSetRecord]) -> int | None:
    """Pick the workout-summary "best set".

    Display heuristic only: sums whichever of duration, distance, reps and
    weight are present, across incompatible units. The last set wins ties.
    Never use this for personal records.
    """
    best_idx: int | None = None
    best_sum: Decimal | None = None
    for idx, record in enumerate(records):
        statistic = record.statistic
        total = (
            (statistic.duration or Decimal(0))
            + (statistic.distance or Decimal(0))
            + Decimal(statistic.reps or 0)
            + (statistic.weight or Decimal(0))
        )
        if best_sum is None or total >= best_sum:
            best_idx = idx
            best_sum = total
    return best_idx
