from datetime import datetime

from olio import queries
from olio.models import Category, MuscleGroup, Workout


def make_workout(dc, name, when, **fields):
    return dc.insert(Workout, name=name, date_scheduled=when, created_date=when, **fields)


def test_exercise_completion_ratio(controller):
    workout = controller.create_workout()
    squat = controller.add_exercise("Squat")
    lunge = controller.add_exercise("Lunge")
    for _ in range(4):
        controller.add_set(squat, workout)
    queries.sets_for(squat, workout)[0].completed = True

    assert queries.exercise_completion(squat, workout) == 0.25
    assert queries.exercise_completion(lunge, workout) == 0.0


def test_sort_workouts_uses_name_as_tiebreak(controller):
    day = datetime(2024, 5, 1, 8, 30)
    b = make_workout(controller, "B", day)
    a = make_workout(controller, "A", day)
    early = make_workout(controller, "Z", datetime(2024, 4, 30, 8, 30))

    assert queries.sort_workouts([b, a, early]) == [early, a, b]


def test_completed_workout_sorts_by_completion_date(controller):
    done = make_workout(
        controller,
        "Done",
        datetime(2024, 5, 10),
        completed=True,
        date_completed=datetime(2024, 5, 1),
    )
    scheduled = make_workout(controller, "Next", datetime(2024, 5, 5))
    assert queries.sort_workouts([scheduled, done]) == [done, scheduled]


def test_same_day_workouts_share_a_group(controller):
    morning = make_workout(controller, "Morning", datetime(2024, 5, 1, 7, 0))
    evening = make_workout(controller, "Evening", datetime(2024, 5, 1, 19, 45))
    next_day = make_workout(controller, "Next", datetime(2024, 5, 2, 7, 0))

    groups = queries.group_by_day([morning, evening, next_day])
    assert list(groups) == [datetime(2024, 5, 1), datetime(2024, 5, 2)]
    assert groups[datetime(2024, 5, 1)] == [morning, evening]
    assert queries.workout_dates([morning, evening, next_day]) == list(groups)
    assert queries.filter_by_date([morning, next_day], datetime(2024, 5, 2, 23, 0)) == [next_day]


def test_sort_exercises_by_muscle_group_then_name(controller):
    curl = controller.add_exercise("Curl", Category.FREE_WEIGHTS, MuscleGroup.BICEPS)
    bench = controller.add_exercise("Bench", Category.FREE_WEIGHTS, MuscleGroup.CHEST)
    fly = controller.add_exercise("Fly", Category.FREE_WEIGHTS, MuscleGroup.CHEST)

    assert queries.sort_exercises([curl, fly, bench]) == [bench, fly, curl]


def test_filters(sample_controller):
    workouts = sample_controller.workouts()
    assert len(queries.filter_by_template(workouts, True)) == 1
    assert len(queries.filter_by_completed(workouts, True)) == 2

    exercises = sample_controller.exercises()
    for category in Category:
        assert all(e.category is category for e in queries.filter_by_category(exercises, category))
    chest = queries.filter_by_muscle_group(exercises, MuscleGroup.CHEST)
    assert chest == sample_controller.exercises(muscle_group=MuscleGroup.CHEST)


def test_exercises_in_order_and_categories(controller):
    workout = controller.create_workout()
    run = controller.add_exercise("Run", Category.CARDIO)
    bench = controller.add_exercise("Bench", Category.FREE_WEIGHTS)
    row = controller.add_exercise("Row", Category.FREE_WEIGHTS)
    controller.update_order_of_exercises([bench, run, row], workout)
    controller.placement_for(bench, workout).index_position = 5

    assert queries.exercises_in_order(workout) == [run, row, bench]
    assert queries.workout_categories(workout) == [Category.CARDIO, Category.FREE_WEIGHTS]


def test_remove_duplicates_keeps_first():
    assert queries.remove_duplicates([3, 1, 3, 2, 1]) == [3, 1, 2]
    assert queries.sorted_by(["bb", "a", "ccc"], key=len, reverse=True) == ["ccc", "bb", "a"]
