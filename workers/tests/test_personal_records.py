"""Tests for personal-record projections, ordering and best-set selection."""

from decimal import Decimal

import pytest

from cairn_workers.fitness_contract import WorkoutSetRecord, WorkoutSetStatistic
from cairn_workers.personal_records import (
    best_set_index,
    brzycki_1rm,
    index_of_highest,
    is_new_record,
    personal_best_value,
    personal_bests_for_lot,
)


def _record(**statistic) -> WorkoutSetRecord:
    return WorkoutSetRecord(statistic=WorkoutSetStatistic(**statistic))


class TestProjections:
    def test_weight_time_reps(self):
        record = _record(weight=Decimal("80"), reps=5, duration=Decimal("3"))
        assert personal_best_value(record, "Weight") == Decimal("80")
        assert personal_best_value(record, "Reps") == Decimal(5)
        assert personal_best_value(record, "Time") == Decimal("3")

    def test_volume_is_weight_times_reps(self):
        assert personal_best_value(_record(weight=Decimal("50"), reps=10), "Volume") == Decimal(
            "500"
        )

    def test_volume_absent_without_reps(self):
        assert personal_best_value(_record(weight=Decimal("50")), "Volume") is None

    def test_one_rm_uses_brzycki(self):
        value = personal_best_value(_record(weight=Decimal("100"), reps=10), "OneRm")
        assert value == Decimal(3600) / Decimal(27)

    @pytest.mark.parametrize("reps", [37, 40])
    def test_one_rm_absent_when_not_positive(self, reps):
        assert brzycki_1rm(Decimal("100"), reps) is None

    def test_one_rm_absent_for_zero_weight(self):
        assert brzycki_1rm(Decimal("0"), 5) is None

    def test_pace_is_duration_per_distance(self):
        record = _record(duration=Decimal("30"), distance=Decimal("6"))
        assert personal_best_value(record, "Pace") == Decimal("5")

    def test_pace_absent_for_zero_distance(self):
        record = _record(duration=Decimal("30"), distance=Decimal("0"))
        assert personal_best_value(record, "Pace") is None

    def test_unknown_category_raises(self):
        with pytest.raises(ValueError, match="Unknown personal best category"):
            personal_best_value(_record(), "Speed")  # type: ignore[arg-type]

    def test_categories_per_lot(self):
        assert personal_bests_for_lot("Duration") == ("Time",)
        assert set(personal_bests_for_lot("DistanceAndDuration")) == {"Pace", "Time"}
        assert set(personal_bests_for_lot("RepsAndWeight")) == {
            "Weight",
            "OneRm",
            "Volume",
            "Reps",
        }


class TestIsNewRecord:
    def test_no_incumbent_is_a_record(self):
        assert is_new_record(_record(weight=Decimal("10")), None, "Weight")

    def test_strictly_greater_wins(self):
        assert is_new_record(
            _record(weight=Decimal("61")), _record(weight=Decimal("60")), "Weight"
        )

    def test_tie_keeps_incumbent(self):
        assert not is_new_record(
            _record(weight=Decimal("60")), _record(weight=Decimal("60")), "Weight"
        )

    def test_absent_never_beats_present(self):
        assert not is_new_record(_record(reps=5), _record(weight=Decimal("1")), "Weight")

    def test_present_beats_absent(self):
        assert is_new_record(_record(weight=Decimal("1")), _record(reps=5), "Weight")


class TestIndexOfHighest:
    def test_first_maximum_wins(self):
        records = [
            _record(weight=Decimal("50")),
            _record(weight=Decimal("60")),
            _record(weight=Decimal("60")),
        ]
        assert index_of_highest(records, "Weight") == 1

    def test_absent_ranks_below_present(self):
        records = [_record(reps=3), _record(weight=Decimal("5"))]
        assert index_of_highest(records, "Weight") == 1

    def test_empty_has_no_index(self):
        assert index_of_highest([], "Weight") is None


class TestBestSetIndex:
    def test_largest_sum_wins(self):
        records = [
            _record(reps=10, weight=Decimal("50")),
            _record(reps=5, weight=Decimal("100")),
            _record(reps=8, weight=Decimal("40")),
        ]
        assert best_set_index(records) == 1

    def test_last_set_wins_ties(self):
        records = [
            _record(reps=10, weight=Decimal("50")),
            _record(reps=50, weight=Decimal("10")),
        ]
        assert best_set_index(records) == 1
