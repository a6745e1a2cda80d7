"""Workout commit and personal-record engine.

commit_workout persists one workout and folds it into every per-exercise
association: interaction count, bounded history, lifetime totals and the
personal-best table. delete_workout only undoes the count and the history
entry; lifetime totals and personal bests are left as they are.
"""

from __future__ import annotations

import logging
import uuid

from .bounded_history import BoundedHistory
from .errors import NotFoundError, ValidationError
from .fitness_contract import (
    ExerciseAssociation,
    ExerciseBestSetRecord,
    ExerciseExtraInformation,
    ExerciseHistoryEntry,
    ExerciseLot,
    PersonalBestSets,
    ProcessedExercise,
    TotalMeasurement,
    UserPreferences,
    Workout,
    WorkoutInformation,
    WorkoutInput,
    WorkoutSetRecord,
    WorkoutSummary,
    WorkoutSummaryExercise,
)
from .personal_records import (
    best_set_index,
    index_of_highest,
    is_new_record,
    personal_bests_for_lot,
)
from .set_normalization import remove_invalid_statistics, translate_units
from .store import Store

logger = logging.getLogger(__name__)


def _workout_id() -> str:
    try:
        return str(uuid.uuid7())
    except AttributeError:
        return str(uuid.uuid4())


def validate_workout_input(workout_input: WorkoutInput) -> None:
    if not workout_input.exercises:
        raise ValidationError(
            "This workout has no associated exercises",
            field="exercises",
        )
    for idx, exercise in enumerate(workout_input.exercises):
        if not exercise.sets:
            raise ValidationError(
                "This exercise has no associated sets",
                field=f"exercises.{idx}.sets",
            )


def _record_sets(
    sets: list[WorkoutSetRecord],
    extra: ExerciseExtraInformation,
    total: TotalMeasurement,
    lot: ExerciseLot,
) -> None:
    """Tag the in-workout best set of each category when it beats the stored best."""
    for category in personal_bests_for_lot(lot):
        set_idx = index_of_highest(sets, category)
        if set_idx is None:
            continue
        stored = extra.personal_best_sets(category)
        incumbent = stored.sets[0].data if stored is not None and stored.sets else None
        candidate = sets[set_idx]
        if is_new_record(candidate, incumbent, category):
            candidate.personal_bests.append(category)
            total.personal_bests_achieved += 1


def _push_personal_bests(
    sets: list[WorkoutSetRecord],
    extra: ExerciseExtraInformation,
    workout_id: str,
    capacity: int,
) -> None:
    for set_idx, record in enumerate(sets):
        for category in record.personal_bests:
            tagged = ExerciseBestSetRecord(
                workout_id=workout_id,
                set_idx=set_idx,
                data=record.model_copy(deep=True),
            )
            stored = extra.personal_best_sets(category)
            if stored is None:
                extra.personal_bests.append(PersonalBestSets(lot=category, sets=[tagged]))
                continue
            history = BoundedHistory(stored.sets, capacity=capacity)
            history.push_front(tagged)
            stored.sets = history.to_list()


async def commit_workout(
    store: Store,
    user_id: int,
    workout_input: WorkoutInput,
    preferences: UserPreferences,
) -> str:
    """Persist a workout and update the user's exercise associations.

    Raises ValidationError before any read or write when the workout or one
    of its exercises is empty. Exercises whose definition is missing are
    skipped. Associations are updated exercise by exercise; run this inside
    ``store.transaction()`` to make the whole commit atomic.
    """
    validate_workout_input(workout_input)

    workout_id = _workout_id()
    processed: list[ProcessedExercise] = []

    for exercise_input in workout_input.exercises:
        exercise = await store.get_exercise(exercise_input.exercise_id)
        if exercise is None:
            logger.error(
                "Exercise with id=%s not found, skipping it in workout %s",
                exercise_input.exercise_id,
                workout_id,
            )
            continue

        idx = len(processed)
        history_entry = ExerciseHistoryEntry(workout_id=workout_id, idx=idx)
        total = TotalMeasurement()
        sets: list[WorkoutSetRecord] = []
        for set_input in exercise_input.sets:
            working = set_input.model_copy(deep=True)
            translate_units(working, preferences.unit_system)
            remove_invalid_statistics(working, exercise.lot)
            statistic = working.statistic
            if statistic.reps is not None:
                total.reps += statistic.reps
                if statistic.weight is not None:
                    total.weight += statistic.weight * statistic.reps
            if statistic.duration is not None:
                total.duration += statistic.duration
            if statistic.distance is not None:
                total.distance += statistic.distance
            sets.append(WorkoutSetRecord(statistic=statistic, lot=working.lot))

        async with store.association_lock(user_id, exercise.id):
            association = await store.get_exercise_association(user_id, exercise.id)
            if association is None:
                association = ExerciseAssociation(
                    user_id=user_id,
                    exercise_id=exercise.id,
                    num_times_interacted=1,
                    exercise_extra_information=ExerciseExtraInformation(
                        history=[history_entry]
                    ),
                )
            else:
                association.num_times_interacted += 1
                history = BoundedHistory(
                    association.exercise_extra_information.history,
                    capacity=preferences.save_history,
                )
                history.push_front(history_entry)
                association.exercise_extra_information.history = history.to_list()

            extra = association.exercise_extra_information
            _record_sets(sets, extra, total, exercise.lot)
            _push_personal_bests(sets, extra, workout_id, preferences.save_history)
            extra.lifetime_stats = extra.lifetime_stats + total
            await store.save_exercise_association(association)

        processed.append(
            ProcessedExercise(
                id=exercise.id,
                name=exercise.name,
                lot=exercise.lot,
                sets=sets,
                notes=exercise_input.notes,
                rest_time=exercise_input.rest_time,
                assets=exercise_input.assets,
                total=total,
            )
        )

    summary_total = TotalMeasurement()
    for exercise in processed:
        summary_total = summary_total + exercise.total

    workout = Workout(
        id=workout_id,
        user_id=user_id,
        name=workout_input.name,
        comment=workout_input.comment,
        start_time=workout_input.start_time,
        end_time=workout_input.end_time,
        summary=WorkoutSummary(
            total=summary_total,
            exercises=[
                WorkoutSummaryExercise(
                    num_sets=len(exercise.sets),
                    name=exercise.name,
                    lot=exercise.lot,
                    best_set=exercise.sets[best_set_index(exercise.sets) or 0],
                )
                for exercise in processed
            ],
        ),
        information=WorkoutInformation(
            supersets=workout_input.supersets,
            assets=workout_input.assets,
            exercises=processed,
        ),
    )
    committed_id = await store.insert_workout(workout)
    logger.info(
        "Committed workout %s for user %s (exercises=%d, personal_bests=%d)",
        committed_id,
        user_id,
        len(processed),
        summary_total.personal_bests_achieved,
    )
    return committed_id


async def delete_workout(store: Store, user_id: int, workout_id: str) -> None:
    """Delete a workout, undoing only its count and history contribution.

    Lifetime totals and personal bests are not recomputed, so a deleted
    workout that set a record still shows up in the personal-best table.
    """
    workout = await store.get_workout(user_id, workout_id)
    if workout is None:
        raise NotFoundError(f"Workout {workout_id} not found", field="workout_id")

    for idx, exercise in enumerate(workout.information.exercises):
        async with store.association_lock(user_id, exercise.id):
            association = await store.get_exercise_association(user_id, exercise.id)
            if association is None:
                logger.warning(
                    "No association for user=%s exercise=%s while deleting workout %s",
                    user_id,
                    exercise.id,
                    workout_id,
                )
                continue
            extra = association.exercise_extra_information
            entry = ExerciseHistoryEntry(workout_id=workout_id, idx=idx)
            if entry in extra.history:
                extra.history.remove(entry)
            association.num_times_interacted = max(0, association.num_times_interacted - 1)
            await store.save_exercise_association(association)

    await store.delete_workout(user_id, workout_id)
    logger.info("Deleted workout %s for user %s", workout_id, user_id)
