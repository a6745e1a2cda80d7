"""Workout, set and exercise-association contracts.

These models are stored as JSONB (workouts.summary, workouts.information,
user_to_entity.exercise_extra_information) and always round-trip through
``model_dump(mode="json")`` / ``model_validate``.

Units after normalization: weight in kg, distance in km, duration in minutes.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

ExerciseLot = Literal["Duration", "DistanceAndDuration", "RepsAndWeight"]
SetLot = Literal["Normal", "WarmUp", "Drop", "Failure"]
PersonalBestCategory = Literal["Weight", "OneRm", "Volume", "Time", "Pace", "Reps"]
UnitSystem = Literal["Metric", "Imperial"]
ReviewScale = Literal["OutOfFive", "OutOfHundred"]

STATISTIC_FIELDS: tuple[str, ...] = ("duration", "distance", "reps", "weight")

VALID_FIELDS_BY_LOT: dict[str, tuple[str, ...]] = {
    "Duration": ("duration",),
    "DistanceAndDuration": ("duration", "distance"),
    "RepsAndWeight": ("reps", "weight"),
}

PERSONAL_BESTS_BY_LOT: dict[str, tuple[PersonalBestCategory, ...]] = {
    "Duration": ("Time",),
    "DistanceAndDuration": ("Pace", "Time"),
    "RepsAndWeight": ("Weight", "OneRm", "Volume", "Reps"),
}

DEFAULT_SAVE_HISTORY = 15


class WorkoutSetStatistic(BaseModel):
    duration: Decimal | None = None
    distance: Decimal | None = None
    reps: int | None = Field(default=None, ge=0)
    weight: Decimal | None = None


class WorkoutSetInput(BaseModel):
    statistic: WorkoutSetStatistic = Field(default_factory=WorkoutSetStatistic)
    lot: SetLot = "Normal"


class WorkoutSetRecord(BaseModel):
    statistic: WorkoutSetStatistic
    lot: SetLot = "Normal"
    personal_bests: list[PersonalBestCategory] = Field(default_factory=list)


class EntityAssets(BaseModel):
    images: list[str] = Field(default_factory=list)
    videos: list[str] = Field(default_factory=list)


class ExerciseInput(BaseModel):
    exercise_id: int
    sets: list[WorkoutSetInput] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)
    rest_time: int | None = Field(default=None, ge=0)
    assets: EntityAssets = Field(default_factory=EntityAssets)


class WorkoutInput(BaseModel):
    name: str
    comment: str | None = None
    start_time: datetime
    end_time: datetime
    exercises: list[ExerciseInput] = Field(default_factory=list)
    supersets: list[list[int]] = Field(default_factory=list)
    assets: EntityAssets = Field(default_factory=EntityAssets)

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("name must not be empty")
        return cleaned


class TotalMeasurement(BaseModel):
    personal_bests_achieved: int = 0
    reps: int = 0
    weight: Decimal = Decimal("0")
    duration: Decimal = Decimal("0")
    distance: Decimal = Decimal("0")

    def __add__(self, other: TotalMeasurement) -> TotalMeasurement:
        return TotalMeasurement(
            personal_bests_achieved=self.personal_bests_achieved + other.personal_bests_achieved,
            reps=self.reps + other.reps,
            weight=self.weight + other.weight,
            duration=self.duration + other.duration,
            distance=self.distance + other.distance,
        )


class Exercise(BaseModel):
    id: int
    name: str
    lot: ExerciseLot


class ProcessedExercise(BaseModel):
    id: int
    name: str
    lot: ExerciseLot
    sets: list[WorkoutSetRecord]
    notes: list[str] = Field(default_factory=list)
    rest_time: int | None = None
    assets: EntityAssets = Field(default_factory=EntityAssets)
    total: TotalMeasurement = Field(default_factory=TotalMeasurement)


class WorkoutSummaryExercise(BaseModel):
    num_sets: int
    name: str
    lot: ExerciseLot
    best_set: WorkoutSetRecord


class WorkoutSummary(BaseModel):
    total: TotalMeasurement = Field(default_factory=TotalMeasurement)
    exercises: list[WorkoutSummaryExercise] = Field(default_factory=list)


class WorkoutInformation(BaseModel):
    supersets: list[list[int]] = Field(default_factory=list)
    assets: EntityAssets = Field(default_factory=EntityAssets)
    exercises: list[ProcessedExercise] = Field(default_factory=list)


class Workout(BaseModel):
    id: str
    user_id: int
    name: str
    comment: str | None = None
    start_time: datetime
    end_time: datetime
    summary: WorkoutSummary
    information: WorkoutInformation


class ExerciseHistoryEntry(BaseModel):
    workout_id: str
    idx: int


class ExerciseBestSetRecord(BaseModel):
    workout_id: str
    set_idx: int
    data: WorkoutSetRecord


class PersonalBestSets(BaseModel):
    lot: PersonalBestCategory
    sets: list[ExerciseBestSetRecord] = Field(default_factory=list)


class ExerciseExtraInformation(BaseModel):
    history: list[ExerciseHistoryEntry] = Field(default_factory=list)
    lifetime_stats: TotalMeasurement = Field(default_factory=TotalMeasurement)
    personal_bests: list[PersonalBestSets] = Field(default_factory=list)

    def personal_best_sets(self, category: PersonalBestCategory) -> PersonalBestSets | None:
        for entry in self.personal_bests:
            if entry.lot == category:
                return entry
        return None


class ExerciseAssociation(BaseModel):
    """One user_to_entity row for an exercise."""

    id: int | None = None
    user_id: int
    exercise_id: int
    num_times_interacted: int = 1
    last_updated_on: datetime | None = None
    exercise_extra_information: ExerciseExtraInformation = Field(
        default_factory=ExerciseExtraInformation
    )


class UserPreferences(BaseModel):
    model_config = ConfigDict(extra="ignore")

    unit_system: UnitSystem = "Metric"
    save_history: int = Field(default=DEFAULT_SAVE_HISTORY, ge=1)
    review_scale: ReviewScale = "OutOfHundred"
