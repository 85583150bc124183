"""Domain entities stored by :class:`~olio.data_controller.DataController`.

Entities are lightweight handles on rows of the local store.  They hold only
their ``id`` and a reference to the owning controller; every attribute read
goes to the store and every assignment is written to the controller's pending
transaction.  Nothing is persisted until :meth:`DataController.save` is
called, but reads made through the same controller already observe the
pending changes.  Two handles with the same id compare equal.
"""

from __future__ import annotations

from datetime import datetime
from enum import IntEnum
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:  # pragma: no cover - imported only for type checking
    from .data_controller import DataController


class Category(IntEnum):
    """Kind of exercise, stored as its integer code."""

    FREE_WEIGHTS = 1
    BODYWEIGHT = 2
    CARDIO = 3
    CLASS = 4
    STRETCH = 5

    @property
    def label(self) -> str:
        return _CATEGORY_LABELS[self]

    @property
    def is_timed(self) -> bool:
        """Timed categories record distance and duration instead of reps."""

        return self in (Category.CARDIO, Category.CLASS)

    @property
    def is_weighted(self) -> bool:
        return self is Category.FREE_WEIGHTS

    @classmethod
    def from_code(cls, code: int) -> "Category":
        try:
            return cls(int(code))
        except (TypeError, ValueError):
            return cls.FREE_WEIGHTS

    @classmethod
    def from_label(cls, label: str) -> "Category":
        """Return the category displayed as ``label`` (case-insensitive)."""

        for category, text in _CATEGORY_LABELS.items():
            if text.lower() == str(label).strip().lower():
                return category
        return cls.FREE_WEIGHTS


class MuscleGroup(IntEnum):
    """Primary muscle group worked by an exercise."""

    CHEST = 1
    BACK = 2
    SHOULDERS = 3
    BICEPS = 4
    TRICEPS = 5
    LEGS = 6
    ABS = 7
    FULL_BODY = 8

    @property
    def label(self) -> str:
        return _MUSCLE_GROUP_LABELS[self]

    @classmethod
    def from_code(cls, code: int) -> "MuscleGroup":
        try:
            return cls(int(code))
        except (TypeError, ValueError):
            return cls.FULL_BODY

    @classmethod
    def from_label(cls, label: str) -> "MuscleGroup":
        """Return the muscle group displayed as ``label`` (case-insensitive)."""

        for group, text in _MUSCLE_GROUP_LABELS.items():
            if text.lower() == str(label).strip().lower():
                return group
        return cls.FULL_BODY


_CATEGORY_LABELS = {
    Category.FREE_WEIGHTS: "Weights",
    Category.BODYWEIGHT: "Body",
    Category.CARDIO: "Cardio",
    Category.CLASS: "Class",
    Category.STRETCH: "Stretch",
}

_MUSCLE_GROUP_LABELS = {
    MuscleGroup.CHEST: "Chest",
    MuscleGroup.BACK: "Back",
    MuscleGroup.SHOULDERS: "Shoulders",
    MuscleGroup.BICEPS: "Biceps",
    MuscleGroup.TRICEPS: "Triceps",
    MuscleGroup.LEGS: "Legs",
    MuscleGroup.ABS: "Abs",
    MuscleGroup.FULL_BODY: "Full Body",
}


def _to_timestamp(value: datetime) -> float:
    return value.timestamp()


class Field:
    """A column of an entity's table.

    ``to_db`` converts assigned values before they are written and
    ``from_db`` converts stored values when read.  ``None`` is passed through
    unchanged in both directions.
    """

    def __init__(
        self,
        to_db: Callable[[Any], Any] | None = None,
        from_db: Callable[[Any], Any] | None = None,
    ) -> None:
        self.to_db = to_db
        self.from_db = from_db
        self.name = ""

    def __set_name__(self, owner, name: str) -> None:
        self.name = name

    def __get__(self, instance, owner=None):
        if instance is None:
            return self
        value = instance._controller.read_field(owner.table, instance.id, self.name)
        if value is None or self.from_db is None:
            return value
        return self.from_db(value)

    def __set__(self, instance, value) -> None:
        instance._controller.write_field(
            instance.table, instance.id, self.name, self.to_db_value(value)
        )

    def to_db_value(self, value):
        if value is None or self.to_db is None:
            return value
        return self.to_db(value)


def _bool_field() -> Field:
    return Field(to_db=int, from_db=bool)


def _date_field() -> Field:
    return Field(to_db=_to_timestamp, from_db=datetime.fromtimestamp)


class Entity:
    """Base class for rows of the local store."""

    table = ""

    def __init__(self, controller: "DataController", entity_id: str) -> None:
        self._controller = controller
        self.id = entity_id

    @classmethod
    def fields(cls) -> dict[str, Field]:
        """Return the :class:`Field` descriptors declared on ``cls``."""

        found: dict[str, Field] = {}
        for klass in reversed(cls.__mro__):
            for name, attr in vars(klass).items():
                if isinstance(attr, Field):
                    found[name] = attr
        return found

    @property
    def is_deleted(self) -> bool:
        return not self._controller.exists(self)

    def to_dict(self) -> dict:
        """Return a ``dict`` with the current value of every field."""

        data = {"id": self.id}
        for name in self.fields():
            data[name] = getattr(self, name)
        return data

    def __eq__(self, other) -> bool:
        return type(self) is type(other) and self.id == other.id

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.id))

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id}>"


class Workout(Entity):
    table = "workouts"

    name = Field()
    date_scheduled = _date_field()
    date_completed = _date_field()
    created_date = _date_field()
    completed = _bool_field()
    template = _bool_field()

    @property
    def workout_name(self) -> str:
        name = self.name
        if name is not None:
            return name
        return "New Template" if self.template else "New Workout"

    @property
    def workout_date(self) -> datetime:
        """Date used to order and group the workout.

        Completed workouts use their completion date when it was recorded,
        everything else the scheduled date.
        """

        if self.completed and self.date_completed is not None:
            return self.date_completed
        return self.date_scheduled or self.created_date or datetime.now()

    @property
    def exercises(self) -> list["Exercise"]:
        return self._controller.linked_exercises(self)

    @property
    def exercise_sets(self) -> list["ExerciseSet"]:
        return self._controller.fetch(ExerciseSet, workout_id=self.id)

    @property
    def placements(self) -> list["Placement"]:
        return self._controller.fetch(Placement, workout_id=self.id)


class Exercise(Entity):
    table = "exercises"

    name = Field()
    category = Field(to_db=int, from_db=Category.from_code)
    muscle_group = Field(to_db=int, from_db=MuscleGroup.from_code)

    @property
    def exercise_name(self) -> str:
        return self.name or ""

    @property
    def workouts(self) -> list[Workout]:
        return self._controller.linked_workouts(self)

    @property
    def exercise_sets(self) -> list["ExerciseSet"]:
        return self._controller.fetch(ExerciseSet, exercise_id=self.id)

    @property
    def placements(self) -> list["Placement"]:
        return self._controller.fetch(Placement, exercise_id=self.id)


class ExerciseSet(Entity):
    table = "exercise_sets"

    workout_id = Field()
    exercise_id = Field()
    reps = Field(to_db=int, from_db=int)
    weight = Field(to_db=float, from_db=float)
    distance = Field(to_db=float, from_db=float)
    duration = Field(to_db=int, from_db=int)
    completed = _bool_field()
    creation_date = _date_field()

    @property
    def workout(self) -> Workout | None:
        return self._controller.get(Workout, self.workout_id)

    @property
    def exercise(self) -> Exercise | None:
        return self._controller.get(Exercise, self.exercise_id)

    @property
    def exercise_set_creation_date(self) -> datetime:
        return self.creation_date or datetime.now()


class Placement(Entity):
    table = "placements"

    workout_id = Field()
    exercise_id = Field()
    index_position = Field(to_db=int, from_db=int)

    @property
    def workout(self) -> Workout | None:
        return self._controller.get(Workout, self.workout_id)

    @property
    def exercise(self) -> Exercise | None:
        return self._controller.get(Exercise, self.exercise_id)


ENTITY_KINDS = {
    "Workout": Workout,
    "Exercise": Exercise,
    "ExerciseSet": ExerciseSet,
    "Placement": Placement,
}
