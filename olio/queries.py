"""Filtering, sorting and grouping helpers.

Every function here works on in-memory lists of entities fetched from a
:class:`~olio.data_controller.DataController` and never touches the store
itself.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Hashable, Iterable, TypeVar

from .models import Category, Exercise, ExerciseSet, MuscleGroup, Workout

T = TypeVar("T")


def remove_duplicates(items: Iterable[T]) -> list[T]:
    """Return ``items`` without repeats, keeping the first occurrence."""

    seen: set = set()
    result: list[T] = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        result.append(item)
    return result


def sorted_by(items: Iterable[T], key: Callable[[T], Any], reverse: bool = False) -> list[T]:
    return sorted(items, key=key, reverse=reverse)


# ----------------------------------------------------------------------
# Equality filters
# ----------------------------------------------------------------------
def filter_by_muscle_group(exercises: Iterable[Exercise], muscle_group: MuscleGroup) -> list[Exercise]:
    return [e for e in exercises if e.muscle_group == muscle_group]


def filter_by_category(exercises: Iterable[Exercise], category: Category) -> list[Exercise]:
    return [e for e in exercises if e.category == category]


def filter_by_completed(items: Iterable[T], completed: bool) -> list[T]:
    """Keep workouts or sets whose ``completed`` flag equals ``completed``."""

    return [item for item in items if item.completed == completed]


def filter_by_template(workouts: Iterable[Workout], template: bool) -> list[Workout]:
    return [w for w in workouts if w.template == template]


# ----------------------------------------------------------------------
# Calendar grouping
# ----------------------------------------------------------------------
def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def workout_dates(workouts: Iterable[Workout]) -> list[datetime]:
    """Return the distinct days of ``workouts`` in the order first seen."""

    return remove_duplicates(start_of_day(w.workout_date) for w in workouts)


def filter_by_date(workouts: Iterable[Workout], day: datetime) -> list[Workout]:
    day = start_of_day(day)
    return [w for w in workouts if start_of_day(w.workout_date) == day]


def group_by_day(workouts: Iterable[Workout]) -> dict[datetime, list[Workout]]:
    """Group ``workouts`` into agenda sections keyed by start of day.

    Sections keep the order in which their day first appears, and workouts
    keep their relative order inside a section.
    """

    groups: dict[datetime, list[Workout]] = {}
    for workout in workouts:
        groups.setdefault(start_of_day(workout.workout_date), []).append(workout)
    return groups


# ----------------------------------------------------------------------
# Sorting
# ----------------------------------------------------------------------
def sort_workouts(workouts: Iterable[Workout]) -> list[Workout]:
    """Sort by workout date, then by name for workouts on the same date."""

    return sorted(workouts, key=lambda w: (w.workout_date, w.workout_name))


def sort_exercises(exercises: Iterable[Exercise]) -> list[Exercise]:
    """Sort by muscle group, then by name within a group."""

    return sorted(exercises, key=lambda e: (int(e.muscle_group), e.exercise_name))


def sort_sets(exercise_sets: Iterable[ExerciseSet]) -> list[ExerciseSet]:
    return sorted(exercise_sets, key=lambda s: s.exercise_set_creation_date)


def exercises_in_order(workout: Workout) -> list[Exercise]:
    """Return the exercises of ``workout`` ordered by their placement.

    Exercises without a placement in the workout sort first, as position 0.
    """

    positions: dict[Hashable, int] = {
        p.exercise_id: p.index_position for p in workout.placements
    }
    return sorted(workout.exercises, key=lambda e: positions.get(e.id, 0))


def workout_categories(workout: Workout) -> list[Category]:
    """Distinct categories of the exercises in ``workout``."""

    return remove_duplicates(e.category for e in exercises_in_order(workout))


# ----------------------------------------------------------------------
# Progress
# ----------------------------------------------------------------------
def sets_for(exercise: Exercise, workout: Workout) -> list[ExerciseSet]:
    """Sets of ``exercise`` that belong to ``workout``, oldest first."""

    return sort_sets(s for s in exercise.exercise_sets if s.workout_id == workout.id)


def exercise_completion(exercise: Exercise, workout: Workout) -> float:
    """Fraction of the sets of ``exercise`` in ``workout`` that are completed.

    Returns ``0.0`` when the exercise has no sets in the workout.
    """

    all_sets = sets_for(exercise, workout)
    if not all_sets:
        return 0.0
    completed = [s for s in all_sets if s.completed]
    return len(completed) / len(all_sets)
