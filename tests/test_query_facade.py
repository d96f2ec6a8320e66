# tests/test_query_facade.py

import pytest

from lms.core import AttemptState, ResourceNotFoundError, TaskBucket


def ids(query):
    return [view.task_id for view in query]


def test_student_buckets_from_seed(query_facade):
    tasks = query_facade.tasks_for_student("4")
    assert ids(tasks.completed()) == ["5", "3"]
    assert ids(tasks.upcoming()) == []

    assert ids(query_facade.tasks_for_student("5").upcoming()) == ["3"]
    assert ids(query_facade.tasks_for_student("6").upcoming()) == ["5"]


def test_views_join_course_name_and_state(query_facade):
    view = query_facade.tasks_for_student("5").all()[0]
    assert view.course_name == "Introduction to Computer Science"
    assert view.state is AttemptState.IN_PROGRESS
    assert view.can_attempt
    assert view.remaining_attempts == 1
    assert view.to_dict()['state'] == "in_progress"


def test_upcoming_sorted_ascending(query_facade, make_task):
    for days in (3, 1, 2):
        make_task(days=days, name=f"Due in {days}")
    names = [view.task.name for view in query_facade.tasks_for_student("5").upcoming()]
    assert names == ["Due in 1", "Due in 2", "Due in 3", "Task: Algorithm Quiz"]


def test_past_due_sorted_descending(query_facade, make_task, clock):
    for days in (1, 3, 2):
        make_task(days=days, name=f"Due in {days}")
    clock.advance(days=10)

    names = [view.task.name for view in query_facade.tasks_for_student("5").past_due()]
    assert names == ["Task: Algorithm Quiz", "Due in 3", "Due in 2", "Due in 1"]


def test_deadline_equal_to_now_is_past_due(query_facade, make_task, clock):
    task = make_task(days=1)
    clock.advance(days=1)
    view = next(v for v in query_facade.tasks_for_student("5") if v.task_id == task.id)
    assert view.bucket(clock()) is TaskBucket.PAST_DUE


def test_passed_task_is_completed_even_after_deadline(query_facade, clock):
    clock.advance(days=30)
    tasks = query_facade.tasks_for_student("4")
    assert ids(tasks.completed()) == ["5", "3"]
    assert ids(tasks.past_due()) == []


def test_exhausted_task_before_deadline_stays_upcoming(query_facade, grading_engine, make_task):
    task = make_task(max_attempts=1)
    grading_engine.attempt_task(task.id, "5", False)
    view = next(v for v in query_facade.tasks_for_student("5").upcoming() if v.task_id == task.id)
    assert view.state is AttemptState.EXHAUSTED
    assert not view.can_attempt


def test_query_is_lazy(query_facade, grading_engine):
    upcoming = query_facade.tasks_for_student("6").upcoming()
    grading_engine.attempt_task("5", "6", True)
    assert upcoming.count() == 0
    assert ids(query_facade.tasks_for_student("6").completed()) == ["5"]


def test_filter_is_chainable(query_facade):
    tasks = query_facade.tasks_for_student("4").filter(lambda view: view.grade.attempts > 1)
    assert ids(tasks) == ["5"]
    assert ids(tasks) == ["5"]


def test_tasks_for_course(query_facade):
    assert ids(query_facade.tasks_for_course("1")) == ["3"]
    assert ids(query_facade.tasks_for_course("3")) == []

    view = query_facade.tasks_for_course("1", student_id="4").all()[0]
    assert view.passed
    assert view.grade.feedback == "Excellent work!"


def test_teacher_view_has_no_grade_state(query_facade, clock):
    tasks = query_facade.tasks_for_teacher("2")
    assert ids(tasks.order_by_deadline()) == ["3", "5"]
    view = tasks.all()[0]
    assert view.state is None
    assert view.remaining_attempts is None

    assert ids(tasks.past()) == []
    clock.advance(days=20)
    assert ids(tasks.past()) == ["5", "3"]


def test_unknown_ids_fail_eagerly(query_facade):
    with pytest.raises(ResourceNotFoundError):
        query_facade.tasks_for_student("99")
    with pytest.raises(ResourceNotFoundError):
        query_facade.tasks_for_course("99")
    with pytest.raises(ResourceNotFoundError):
        query_facade.tasks_for_teacher("99")


def test_dashboard_summary(query_facade):
    assert query_facade.dashboard_summary("1") == {
        'role': 'admin', 'courses': 3, 'teachers': 2, 'students': 3,
    }
    assert query_facade.dashboard_summary("2") == {
        'role': 'teacher', 'courses': 2, 'upcoming_tasks': 2, 'past_tasks': 0,
    }
    assert query_facade.dashboard_summary("4") == {
        'role': 'student', 'courses': 2, 'upcoming_tasks': 0, 'completed_tasks': 2, 'past_due_tasks': 0,
    }


def test_view_remaining_attempts_agree_with_engine(query_facade, grading_engine, make_task):
    task = make_task(max_attempts=3)
    grading_engine.attempt_task(task.id, "4", False)
    views = {view.task.id: view for view in query_facade.tasks_for_student("4")}
    assert views[task.id].remaining_attempts == grading_engine.remaining_attempts("4", task) == 2
