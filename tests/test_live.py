from datetime import datetime, timedelta

from olio.live import SCHEDULED_LIMIT, ExerciseLibrary, TemplateList, WorkoutList
from olio.models import Category, MuscleGroup


def test_workout_lists_follow_the_store(sample_controller):
    scheduled = WorkoutList(sample_controller, completed=False)
    completed = WorkoutList(sample_controller, completed=True)
    assert len(scheduled.items) == 2
    assert len(completed.items) == 2

    replaced = []
    scheduled.bind(items=lambda inst, value: replaced.append(list(value)))

    workout = scheduled.items[0]
    sample_controller.toggle_completion(workout)

    assert replaced and len(replaced[-1]) == 1
    assert workout in completed.items
    assert workout not in scheduled.items


def test_scheduled_list_is_limited_and_sorted(controller):
    for offset in range(SCHEDULED_LIMIT + 2):
        controller.create_workout(days_offset=offset)
    scheduled = WorkoutList(controller, completed=False)

    assert len(scheduled.items) == SCHEDULED_LIMIT
    dates = [w.workout_date for w in scheduled.items]
    assert dates == sorted(dates)
    assert len(scheduled.workout_dates) == SCHEDULED_LIMIT
    assert list(scheduled.sections()) == scheduled.workout_dates


def test_template_list(controller):
    controller.create_workout(template=True).name = "Upper"
    controller.create_workout(template=True).name = "Lower"
    controller.create_workout()
    controller.save()

    templates = TemplateList(controller)
    assert [t.workout_name for t in templates.items] == ["Lower", "Upper"]


def test_exercise_library_by_category(controller):
    library = ExerciseLibrary(controller)
    cardio = ExerciseLibrary(controller, category=Category.CARDIO)
    assert library.items == []

    controller.add_exercise("Row", Category.CARDIO, MuscleGroup.BACK)
    controller.add_exercise("Bench", Category.FREE_WEIGHTS, MuscleGroup.CHEST)

    assert [e.name for e in library.items] == ["Bench", "Row"]
    assert [e.name for e in cardio.items] == ["Row"]


def test_close_stops_updates(controller):
    library = ExerciseLibrary(controller)
    library.close()
    controller.add_exercise("Row")
    assert library.items == []
    assert library.controller is None


def test_workout_list_ignores_templates(controller):
    controller.create_workout(template=True)
    controller.create_workout(days_offset=1)
    scheduled = WorkoutList(controller, completed=False)
    assert len(scheduled.items) == 1
    assert scheduled.items[0].date_scheduled > datetime.now() + timedelta(hours=12)
