"""Tests for unit translation and per-lot statistic sanitization."""

from decimal import Decimal

from hypothesis import given
from hypothesis import strategies as st

from cairn_workers.fitness_contract import (
    STATISTIC_FIELDS,
    VALID_FIELDS_BY_LOT,
    WorkoutSetInput,
    WorkoutSetStatistic,
)
from cairn_workers.set_normalization import remove_invalid_statistics, translate_units

_decimals = st.none() | st.decimals(
    min_value=0, max_value=10_000, places=2, allow_nan=False, allow_infinity=False
)
_statistics = st.builds(
    WorkoutSetStatistic,
    duration=_decimals,
    distance=_decimals,
    reps=st.none() | st.integers(min_value=0, max_value=500),
    weight=_decimals,
)
_lots = st.sampled_from(sorted(VALID_FIELDS_BY_LOT))


def _set(**statistic) -> WorkoutSetInput:
    return WorkoutSetInput(statistic=WorkoutSetStatistic(**statistic))


class TestTranslateUnits:
    def test_imperial_converts_weight_and_distance(self):
        record = _set(weight=Decimal("100"), distance=Decimal("10"), reps=5)
        translate_units(record, "Imperial")
        assert record.statistic.weight == Decimal("45.359")
        assert record.statistic.distance == Decimal("16.0934")
        assert record.statistic.reps == 5

    def test_metric_is_noop(self):
        record = _set(weight=Decimal("100"), distance=Decimal("10"))
        translate_units(record, "Metric")
        assert record.statistic.weight == Decimal("100")
        assert record.statistic.distance == Decimal("10")

    def test_missing_fields_stay_missing(self):
        record = _set(duration=Decimal("30"))
        translate_units(record, "Imperial")
        assert record.statistic.weight is None
        assert record.statistic.distance is None
        assert record.statistic.duration == Decimal("30")

    def test_repeated_imperial_conversion_compounds(self):
        record = _set(weight=Decimal("100"))
        translate_units(record, "Imperial")
        translate_units(record, "Imperial")
        assert record.statistic.weight == Decimal("100") * Decimal("0.45359") ** 2


class TestRemoveInvalidStatistics:
    def test_reps_and_weight_drops_duration_and_distance(self):
        record = _set(
            duration=Decimal("5"), distance=Decimal("1"), reps=10, weight=Decimal("50")
        )
        remove_invalid_statistics(record, "RepsAndWeight")
        assert record.statistic == WorkoutSetStatistic(reps=10, weight=Decimal("50"))

    def test_duration_keeps_only_duration(self):
        record = _set(duration=Decimal("2"), reps=3, weight=Decimal("10"))
        remove_invalid_statistics(record, "Duration")
        assert record.statistic == WorkoutSetStatistic(duration=Decimal("2"))

    @given(statistic=_statistics, lot=_lots)
    def test_only_valid_fields_survive(self, statistic, lot):
        record = WorkoutSetInput(statistic=statistic)
        original = statistic.model_copy()
        remove_invalid_statistics(record, lot)

        valid = VALID_FIELDS_BY_LOT[lot]
        for field in STATISTIC_FIELDS:
            value = getattr(record.statistic, field)
            if field in valid:
                assert value == getattr(original, field)
            else:
                assert value is None
