"""Observable collections kept in sync with a :class:`DataController`.

Each collection refetches its contents whenever the controller dispatches
``on_change`` and replaces its ``items`` list wholesale.  Observers use
``collection.bind(items=callback)`` and ``unbind`` to stop listening.
"""

from __future__ import annotations

from datetime import datetime

from kivy.event import EventDispatcher
from kivy.properties import ListProperty, ObjectProperty

from .data_controller import DataController
from .models import Category
from .queries import group_by_day, sort_exercises, sort_workouts, workout_dates

# Scheduled workouts shown at once
SCHEDULED_LIMIT = 10


class LiveCollection(EventDispatcher):
    items = ListProperty([])
    controller = ObjectProperty(None, allownone=True)

    def __init__(self, controller: DataController, **kwargs) -> None:
        super().__init__(**kwargs)
        self.controller = controller
        controller.bind(on_change=self._on_store_change)
        self.refresh()

    def _on_store_change(self, *_args) -> None:
        self.refresh()

    def _load(self) -> list:
        raise NotImplementedError

    def refresh(self) -> None:
        if self.controller is None:
            return
        self.items = self._load()

    def close(self) -> None:
        """Stop following the controller."""

        if self.controller is not None:
            self.controller.unbind(on_change=self._on_store_change)
            self.controller = None


class WorkoutList(LiveCollection):
    """Scheduled or completed workouts, templates excluded.

    Scheduled workouts are limited to the next :data:`SCHEDULED_LIMIT`.
    """

    def __init__(self, controller: DataController, completed: bool, **kwargs) -> None:
        self.completed = completed
        super().__init__(controller, **kwargs)

    def _load(self) -> list:
        workouts = sort_workouts(
            self.controller.workouts(completed=self.completed, template=False)
        )
        if not self.completed:
            workouts = workouts[:SCHEDULED_LIMIT]
        return workouts

    @property
    def workout_dates(self) -> list[datetime]:
        return workout_dates(self.items)

    def sections(self) -> dict:
        return group_by_day(self.items)


class TemplateList(LiveCollection):
    def _load(self) -> list:
        templates = self.controller.workouts(template=True)
        return sorted(templates, key=lambda w: w.workout_name)


class ExerciseLibrary(LiveCollection):
    """Library exercises, optionally of one category."""

    def __init__(self, controller: DataController, category: Category | None = None, **kwargs) -> None:
        self.category = category
        super().__init__(controller, **kwargs)

    def _load(self) -> list:
        return sort_exercises(self.controller.exercises(category=self.category))
