"""Ownership of the local object store.

:class:`DataController` opens the SQLite store (in memory for tests and
previews, on disk otherwise) and exposes the save/delete/count operations
along with the workout editing helpers used by the rest of the
application.

Every mutation is written into a single pending transaction on the
controller's connection.  :meth:`DataController.save` commits that
transaction in one step, so several field changes are persisted together and
saving is a no-op when nothing changed.  Cascading deletes are declared in
``olio_schema.sql`` and enforced by SQLite.
"""

from __future__ import annotations

import logging
import random
import sqlite3
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

from kivy.event import EventDispatcher

from . import (
    DEFAULT_DB_PATH,
    DEFAULT_SETS_PER_EXERCISE,
    MAX_SETS_PER_EXERCISE,
    SCHEMA_PATH,
)
from .catalog import load_catalog
from .models import (
    ENTITY_KINDS,
    Category,
    Entity,
    Exercise,
    ExerciseSet,
    MuscleGroup,
    Placement,
    Workout,
)
from .queries import sets_for, sort_sets

if TYPE_CHECKING:  # pragma: no cover - imported only for type checking
    from .community import SharedExercise, SharedWorkout


class StoreError(RuntimeError):
    """Raised when the local store cannot be opened or initialised."""


class ValidationError(ValueError):
    """Raised when user input is rejected before touching the store."""


class EmptyNameError(ValidationError):
    pass


class DuplicateNameError(ValidationError):
    pass


def trim_exercise_name(name: str) -> str:
    """Strip surrounding whitespace and then surrounding full stops."""

    return name.strip().strip(".")


def _letters_only(text: str) -> str:
    return "".join(ch for ch in text if ch.isalpha())


class DataController(EventDispatcher):
    """Gateway to the local store.

    ``on_change`` is dispatched after every successful commit.  Observers
    subscribe with ``controller.bind(on_change=callback)`` and unsubscribe
    with :meth:`unbind`.
    """

    __events__ = ("on_change",)

    def __init__(
        self,
        in_memory: bool = False,
        db_path: Path = DEFAULT_DB_PATH,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.in_memory = in_memory
        self.db_path = None if in_memory else Path(db_path)
        try:
            if self.db_path is None:
                self.conn = sqlite3.connect(":memory:")
            else:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                self.conn = sqlite3.connect(str(self.db_path))
            self.conn.execute("PRAGMA foreign_keys = ON")
            self.conn.executescript(SCHEMA_PATH.read_text(encoding="utf-8"))
        except (sqlite3.Error, OSError) as exc:
            logging.exception("Failed to load storage at %s", self.db_path or ":memory:")
            raise StoreError(f"Failed to load storage: {exc}") from exc

    def on_change(self, *args) -> None:
        pass

    def close(self) -> None:
        self.conn.close()

    # ------------------------------------------------------------------
    # Low level access used by the entity classes
    # ------------------------------------------------------------------
    @staticmethod
    def _resolve(kind) -> type[Entity]:
        if isinstance(kind, str):
            try:
                return ENTITY_KINDS[kind]
            except KeyError:
                raise ValueError(f"Unknown entity kind: {kind}") from None
        if isinstance(kind, type) and issubclass(kind, Entity) and kind.table:
            return kind
        raise ValueError(f"Unknown entity kind: {kind!r}")

    @staticmethod
    def _where(cls: type[Entity], predicate: dict) -> tuple[str, list]:
        fields = cls.fields()
        clauses: list[str] = []
        params: list = []
        for name, value in predicate.items():
            if name not in fields:
                raise ValueError(f"{cls.__name__} has no field '{name}'")
            if value is None:
                clauses.append(f"{name} IS NULL")
            else:
                clauses.append(f"{name} = ?")
                params.append(fields[name].to_db_value(value))
        if not clauses:
            return "", params
        return " WHERE " + " AND ".join(clauses), params

    def read_field(self, table: str, entity_id: str, column: str):
        row = self.conn.execute(
            f"SELECT {column} FROM {table} WHERE id = ?", (entity_id,)
        ).fetchone()
        return row[0] if row else None

    def write_field(self, table: str, entity_id: str, column: str, value) -> None:
        """Write ``value`` unless the column already holds it.

        Unchanged assignments leave ``has_changes`` untouched.
        """

        if self.read_field(table, entity_id, column) == value:
            return
        self.conn.execute(
            f"UPDATE {table} SET {column} = ? WHERE id = ?", (value, entity_id)
        )

    def exists(self, entity: Entity) -> bool:
        row = self.conn.execute(
            f"SELECT 1 FROM {entity.table} WHERE id = ?", (entity.id,)
        ).fetchone()
        return row is not None

    def insert(self, kind, **values) -> Entity:
        """Create a new entity of ``kind`` with the given field values."""

        cls = self._resolve(kind)
        fields = cls.fields()
        columns = ["id"]
        params: list = [uuid.uuid4().hex]
        for name, value in values.items():
            if name not in fields:
                raise ValueError(f"{cls.__name__} has no field '{name}'")
            columns.append(name)
            params.append(fields[name].to_db_value(value))
        placeholders = ", ".join("?" for _ in columns)
        self.conn.execute(
            f"INSERT INTO {cls.table} ({', '.join(columns)}) VALUES ({placeholders})",
            params,
        )
        return cls(self, params[0])

    def get(self, kind, entity_id: str | None) -> Entity | None:
        if entity_id is None:
            return None
        cls = self._resolve(kind)
        row = self.conn.execute(
            f"SELECT id FROM {cls.table} WHERE id = ?", (entity_id,)
        ).fetchone()
        return cls(self, row[0]) if row else None

    def fetch(self, kind, *, order_by: str | None = None, limit: int | None = None, **predicate) -> list:
        """Return entities of ``kind`` matching the equality ``predicate``.

        Results are in insertion order unless ``order_by`` names a field.
        """

        cls = self._resolve(kind)
        clause, params = self._where(cls, predicate)
        if order_by is not None and order_by not in cls.fields():
            raise ValueError(f"{cls.__name__} has no field '{order_by}'")
        sql = f"SELECT id FROM {cls.table}{clause} ORDER BY {order_by or 'rowid'}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        return [cls(self, row[0]) for row in self.conn.execute(sql, params)]

    def linked_exercises(self, workout: Workout) -> list[Exercise]:
        rows = self.conn.execute(
            "SELECT exercise_id FROM workout_exercises WHERE workout_id = ? ORDER BY rowid",
            (workout.id,),
        )
        return [Exercise(self, r[0]) for r in rows]

    def linked_workouts(self, exercise: Exercise) -> list[Workout]:
        rows = self.conn.execute(
            "SELECT workout_id FROM workout_exercises WHERE exercise_id = ? ORDER BY rowid",
            (exercise.id,),
        )
        return [Workout(self, r[0]) for r in rows]

    def link(self, workout: Workout, exercise: Exercise) -> None:
        self.conn.execute(
            "INSERT OR IGNORE INTO workout_exercises (workout_id, exercise_id) VALUES (?, ?)",
            (workout.id, exercise.id),
        )

    def unlink(self, workout: Workout, exercise: Exercise) -> None:
        self.conn.execute(
            "DELETE FROM workout_exercises WHERE workout_id = ? AND exercise_id = ?",
            (workout.id, exercise.id),
        )

    # ------------------------------------------------------------------
    # Store operations
    # ------------------------------------------------------------------
    @property
    def has_changes(self) -> bool:
        return self.conn.in_transaction

    def _commit(self) -> None:
        self.conn.commit()
        self.dispatch("on_change")

    def save(self) -> None:
        """Commit pending changes if there are any.

        Errors are logged and otherwise ignored; every stored field is
        optional so no caller depends on a save succeeding.
        """

        if not self.has_changes:
            return
        try:
            self.conn.commit()
        except sqlite3.Error:
            logging.exception("There was a problem saving the store")
            return
        logging.debug("Store changes saved")
        self.dispatch("on_change")

    def delete(self, entity: Entity) -> None:
        """Delete ``entity``; owned rows go with it through the schema's cascades."""

        try:
            self.conn.execute(f"DELETE FROM {entity.table} WHERE id = ?", (entity.id,))
        except sqlite3.Error:
            logging.exception("Failed to delete %r", entity)

    def delete_all(self) -> None:
        """Remove every workout and exercise, and with them all sets and placements."""

        try:
            self.conn.execute("DELETE FROM workouts")
            self.conn.execute("DELETE FROM exercises")
            self._commit()
        except sqlite3.Error:
            logging.exception("Batch delete failed")

    def count(self, kind, **predicate) -> int:
        """Return how many entities of ``kind`` match ``predicate``.

        ``predicate`` maps field names to required values, e.g.
        ``count(Workout, completed=True)``.
        """

        cls = self._resolve(kind)
        clause, params = self._where(cls, predicate)
        row = self.conn.execute(f"SELECT COUNT(*) FROM {cls.table}{clause}", params).fetchone()
        return row[0]

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------
    def workouts(
        self,
        *,
        completed: bool | None = None,
        template: bool | None = None,
        limit: int | None = None,
    ) -> list[Workout]:
        predicate = {}
        if completed is not None:
            predicate["completed"] = completed
        if template is not None:
            predicate["template"] = template
        return self.fetch(Workout, limit=limit, **predicate)

    def exercises(
        self,
        *,
        category: Category | None = None,
        muscle_group: MuscleGroup | None = None,
    ) -> list[Exercise]:
        predicate = {}
        if category is not None:
            predicate["category"] = category
        if muscle_group is not None:
            predicate["muscle_group"] = muscle_group
        return self.fetch(Exercise, order_by="name", **predicate)

    # ------------------------------------------------------------------
    # Sample data and the exercise library
    # ------------------------------------------------------------------
    def create_sample_data(self) -> None:
        """Create five workouts, each with one exercise, one placement and three sets.

        The first workout is a template and even numbered workouts are
        completed.  The first set of each exercise is completed; the other
        sets get random completion and values.
        """

        now = datetime.now()
        for workout_count in range(1, 6):
            template = workout_count == 1
            completed = not template and workout_count % 2 == 0
            workout = self.insert(
                Workout,
                name=f"Workout - {workout_count}",
                created_date=now,
                date_scheduled=now + timedelta(days=workout_count),
                date_completed=now - timedelta(days=workout_count) if completed else None,
                template=template,
                completed=completed,
            )
            exercise = self.insert(
                Exercise,
                name=f"Exercise - {workout_count}",
                category=random.choice(list(Category)),
                muscle_group=random.choice(list(MuscleGroup)),
            )
            self.link(workout, exercise)
            self.insert(
                Placement,
                workout_id=workout.id,
                exercise_id=exercise.id,
                index_position=0,
            )
            for set_index in range(DEFAULT_SETS_PER_EXERCISE):
                self.insert(
                    ExerciseSet,
                    workout_id=workout.id,
                    exercise_id=exercise.id,
                    reps=random.randint(5, 12),
                    weight=random.choice([0, 20, 40, 60]),
                    distance=3,
                    duration=15,
                    creation_date=datetime.now(),
                    completed=set_index == 0 or random.choice([True, False]),
                )
        self._commit()

    def load_exercise_library(self, catalog_path: Path | None = None) -> list[Exercise]:
        """Add every catalog exercise whose name is not already in the library.

        Names are compared exactly (case-sensitive).  The new exercises are
        pending until the next :meth:`save`.
        """

        catalog = load_catalog(catalog_path) if catalog_path else load_catalog()
        existing = {
            row[0] for row in self.conn.execute("SELECT name FROM exercises WHERE name IS NOT NULL")
        }
        created: list[Exercise] = []
        for item in catalog:
            if item.name in existing:
                continue
            created.append(
                self.insert(
                    Exercise,
                    name=item.name,
                    category=item.category,
                    muscle_group=item.muscle_group,
                )
            )
            existing.add(item.name)
        logging.info("Loaded %d exercises from the library", len(created))
        return created

    # ------------------------------------------------------------------
    # Creating workouts and exercises
    # ------------------------------------------------------------------
    def create_workout(self, template: bool = False, days_offset: float = 0) -> Workout:
        """Create and save a new workout (or template) ``days_offset`` days from now."""

        now = datetime.now()
        workout = self.insert(
            Workout,
            name="New Template" if template else "New Workout",
            date_scheduled=now + timedelta(days=days_offset),
            created_date=now,
            completed=False,
            template=template,
        )
        self.save()
        return workout

    def create_workout_from(
        self,
        workout: Workout,
        template: bool,
        scheduled_on: datetime | None = None,
    ) -> Workout:
        """Copy ``workout`` into a new workout or template.

        Sets are copied in creation order and are completed only when the copy
        is a template.  Placements and exercises are copied as they are.
        """

        name = f"New Template ({workout.workout_name})" if template else workout.workout_name
        new_workout = self.insert(
            Workout,
            name=name,
            date_scheduled=scheduled_on,
            created_date=datetime.now(),
            completed=False,
            template=template,
        )
        for exercise_set in sort_sets(workout.exercise_sets):
            self.insert(
                ExerciseSet,
                workout_id=new_workout.id,
                exercise_id=exercise_set.exercise_id,
                weight=exercise_set.weight,
                reps=exercise_set.reps,
                distance=exercise_set.distance,
                duration=exercise_set.duration,
                creation_date=datetime.now(),
                completed=template,
            )
        for placement in workout.placements:
            self.insert(
                Placement,
                workout_id=new_workout.id,
                exercise_id=placement.exercise_id,
                index_position=placement.index_position,
            )
        for exercise in workout.exercises:
            self.link(new_workout, exercise)
        self.save()
        return new_workout

    def validate_exercise_name(self, name: str) -> str:
        """Return the trimmed ``name`` or raise a :class:`ValidationError`."""

        trimmed = trim_exercise_name(name)
        if not trimmed:
            raise EmptyNameError("Please enter a name for this exercise.")
        if self.count(Exercise, name=trimmed):
            raise DuplicateNameError(f"An exercise named '{trimmed}' already exists.")
        return trimmed

    def add_exercise(
        self,
        name: str,
        category: Category = Category.FREE_WEIGHTS,
        muscle_group: MuscleGroup = MuscleGroup.CHEST,
    ) -> Exercise:
        """Validate ``name`` and save a new library exercise."""

        trimmed = self.validate_exercise_name(name)
        exercise = self.insert(
            Exercise, name=trimmed, category=category, muscle_group=muscle_group
        )
        self.save()
        return exercise

    # ------------------------------------------------------------------
    # Editing workouts
    # ------------------------------------------------------------------
    def add_set(self, exercise: Exercise, workout: Workout) -> ExerciseSet | None:
        """Add a set to ``exercise`` in ``workout`` copying the latest set's values.

        Returns ``None`` once the exercise already has the maximum number of
        sets in the workout.
        """

        workout_sets = sets_for(exercise, workout)
        if len(workout_sets) >= MAX_SETS_PER_EXERCISE:
            return None
        if workout_sets:
            source = workout_sets[-1]
        else:
            all_sets = sort_sets(exercise.exercise_sets)
            source = all_sets[-1] if all_sets else None

        if source is None:
            weight, reps, distance = 0.0, 10, 3.0
            duration = 60 if exercise.category is Category.CLASS else 15
        else:
            weight = 999.0 if source.weight == 1000 else source.weight
            reps = 999 if source.reps == 1000 else source.reps
            distance = source.distance
            duration = source.duration

        return self.insert(
            ExerciseSet,
            workout_id=workout.id,
            exercise_id=exercise.id,
            weight=weight,
            reps=reps,
            distance=distance,
            duration=duration,
            creation_date=datetime.now(),
            completed=bool(workout.template),
        )

    def placement_for(self, exercise: Exercise, workout: Workout) -> Placement | None:
        placements = self.fetch(Placement, workout_id=workout.id, exercise_id=exercise.id)
        return placements[0] if placements else None

    def placement_index(self, exercise: Exercise, workout: Workout) -> int | None:
        placement = self.placement_for(exercise, workout)
        return placement.index_position if placement else None

    def set_workout_exercises(self, workout: Workout, exercises: Iterable[Exercise]) -> None:
        """Replace the exercises linked to ``workout`` with ``exercises``."""

        self.conn.execute("DELETE FROM workout_exercises WHERE workout_id = ?", (workout.id,))
        for exercise in exercises:
            self.link(workout, exercise)

    def update_order_of_exercises(self, exercises: list[Exercise], workout: Workout) -> None:
        """Record the position of each exercise in ``exercises`` and save."""

        for position, exercise in enumerate(exercises):
            placement = self.placement_for(exercise, workout)
            if placement is None:
                self.insert(
                    Placement,
                    workout_id=workout.id,
                    exercise_id=exercise.id,
                    index_position=position,
                )
            else:
                placement.index_position = position
        self.set_workout_exercises(workout, exercises)
        self.save()

    def add_exercises(self, exercises: list[Exercise], workout: Workout) -> None:
        """Make ``exercises`` the exercises of ``workout``, in that order.

        Placements of exercises that are no longer part of the workout are
        deleted.
        """

        for placement in workout.placements:
            if placement.exercise not in exercises:
                self.delete(placement)
        self.update_order_of_exercises(exercises, workout)

    def remove_exercise(self, exercise: Exercise, workout: Workout) -> None:
        """Take ``exercise`` out of ``workout`` along with its sets and placement there."""

        self.unlink(workout, exercise)
        self.conn.execute(
            "DELETE FROM placements WHERE workout_id = ? AND exercise_id = ?",
            (workout.id, exercise.id),
        )
        self.conn.execute(
            "DELETE FROM exercise_sets WHERE workout_id = ? AND exercise_id = ?",
            (workout.id, exercise.id),
        )

    def complete_all_sets(self, exercise: Exercise, workout: Workout) -> None:
        for exercise_set in sets_for(exercise, workout):
            exercise_set.completed = True

    def complete_next_set(self, exercise: Exercise, workout: Workout) -> ExerciseSet | None:
        """Complete the oldest incomplete set of ``exercise`` in ``workout``."""

        for exercise_set in sets_for(exercise, workout):
            if not exercise_set.completed:
                exercise_set.completed = True
                return exercise_set
        return None

    def toggle_completion(self, workout: Workout) -> None:
        """Flip ``workout`` between scheduled and completed and save.

        Completing a workout stamps its completion date and completes all of
        its sets.
        """

        if workout.completed:
            workout.completed = False
            workout.date_completed = None
        else:
            workout.completed = True
            workout.date_completed = datetime.now()
            for exercise_set in workout.exercise_sets:
                exercise_set.completed = True
        self.save()

    # ------------------------------------------------------------------
    # Community downloads
    # ------------------------------------------------------------------
    def download_shared_workout(
        self,
        shared_workout: "SharedWorkout",
        shared_exercises: Iterable["SharedExercise"],
    ) -> Workout:
        """Save a community workout as a local template.

        Library exercises are reused when their letters-only name matches a
        shared exercise; the remaining shared exercises are added to the
        library.  When a row cannot be written, every pending change is rolled
        back and :class:`StoreError` is raised.
        """

        try:
            template = self._build_template(shared_workout, shared_exercises)
        except sqlite3.Error as exc:
            self.conn.rollback()
            logging.exception("Failed to download shared workout %s", shared_workout.id)
            raise StoreError(f"Failed to download shared workout: {exc}") from exc
        self.save()
        logging.info("Downloaded shared workout %s as a template", shared_workout.id)
        return template

    def _build_template(
        self,
        shared_workout: "SharedWorkout",
        shared_exercises: Iterable["SharedExercise"],
    ) -> Workout:
        library = {_letters_only(e.exercise_name): e for e in self.exercises()}
        now = datetime.now()
        template = self.insert(
            Workout,
            name=shared_workout.name,
            date_scheduled=now,
            created_date=now,
            completed=False,
            template=True,
        )
        for shared in sorted(shared_exercises, key=lambda e: e.placement):
            key = _letters_only(shared.name)
            exercise = library.get(key)
            if exercise is None:
                exercise = self.insert(
                    Exercise,
                    name=shared.name,
                    category=Category.from_label(shared.category),
                    muscle_group=MuscleGroup.from_label(shared.muscle_group),
                )
                library[key] = exercise
            self.link(template, exercise)
            for _ in range(shared.set_count):
                self.insert(
                    ExerciseSet,
                    workout_id=template.id,
                    exercise_id=exercise.id,
                    reps=shared.target_reps,
                    weight=shared.target_weight,
                    distance=3,
                    duration=60 if exercise.category is Category.CLASS else 15,
                    creation_date=datetime.now(),
                    completed=True,
                )
            if self.placement_for(exercise, template) is None:
                self.insert(
                    Placement,
                    workout_id=template.id,
                    exercise_id=exercise.id,
                    index_position=shared.placement,
                )
        return template
