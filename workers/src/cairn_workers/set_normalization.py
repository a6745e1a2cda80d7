"""Unit normalization and per-lot sanitization of set statistics.

Order matters: translate_units first, then remove_invalid_statistics, so a
conversion is applied to raw input exactly once.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Protocol

from .fitness_contract import (
    VALID_FIELDS_BY_LOT,
    ExerciseLot,
    UnitSystem,
    WorkoutSetStatistic,
)

POUNDS_TO_KILOGRAMS = Decimal("0.45359")
MILES_TO_KILOMETERS = Decimal("1.60934")


class HasStatistic(Protocol):
    statistic: WorkoutSetStatistic


def translate_units(set_record: HasStatistic, unit_system: UnitSystem) -> None:
    """Convert weight (lb) and distance (mi) to metric in place.

    Not idempotent for Imperial: calling it twice converts twice.
    """
    if unit_system == "Metric":
        return
    statistic = set_record.statistic
    if statistic.weight is not None:
        statistic.weight = statistic.weight * POUNDS_TO_KILOGRAMS
    if statistic.distance is not None:
        statistic.distance = statistic.distance * MILES_TO_KILOMETERS


def sanitized_statistic(
    statistic: WorkoutSetStatistic, exercise_lot: ExerciseLot
) -> WorkoutSetStatistic:
    valid = VALID_FIELDS_BY_LOT[exercise_lot]
    return WorkoutSetStatistic(
        **{field: getattr(statistic, field) for field in valid}
    )


def remove_invalid_statistics(set_record: HasStatistic, exercise_lot: ExerciseLot) -> None:
    """Replace the statistic with one holding only the fields valid for the lot."""
    set_record.statistic = sanitized_statistic(set_record.statistic, exercise_lot)
