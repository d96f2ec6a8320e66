# tests/test_stores.py

import pytest

from lms.core import (
    Course, DuplicateEntityError, EntityKind, Grade, Lecture, ResourceNotFoundError, Section, Task,
    User, UserRole
)
from lms.persistence import InMemoryEntityStore, SQLiteDatabase, SQLiteEntityStore, seed_store

from conftest import FIXED_NOW


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, tmp_path):
    if request.param == "sqlite":
        return SQLiteEntityStore(SQLiteDatabase(str(tmp_path / "lms.db")))
    return InMemoryEntityStore()


def test_get_unknown_raises_not_found(any_store):
    with pytest.raises(ResourceNotFoundError):
        any_store.get(EntityKind.COURSE, "missing")
    assert any_store.find(EntityKind.COURSE, "missing") is None


def test_insert_duplicate_id_fails(any_store):
    any_store.insert(Course("Algorithms", entity_id="c1"))
    with pytest.raises(DuplicateEntityError):
        any_store.insert(Course("Other", entity_id="c1"))


def test_reads_are_copies(any_store):
    any_store.insert(Course("Algorithms", entity_id="c1"))

    course = any_store.get(EntityKind.COURSE, "c1")
    course.add_student("s1")
    assert any_store.get(EntityKind.COURSE, "c1").student_ids == []

    any_store.replace(course)
    assert any_store.get(EntityKind.COURSE, "c1").student_ids == ["s1"]


def test_replace_unknown_raises_not_found(any_store):
    with pytest.raises(ResourceNotFoundError):
        any_store.replace(Course("Ghost", entity_id="nope"))


def test_list_preserves_insertion_order(any_store):
    for name in ("c", "a", "b"):
        any_store.insert(Course(name, entity_id=name))
    assert [course.id for course in any_store.list(EntityKind.COURSE)] == ["c", "a", "b"]
    assert any_store.count(EntityKind.COURSE) == 3


def test_list_with_predicate(any_store):
    any_store.insert(Course("One", teacher_ids=["t1"], entity_id="1"))
    any_store.insert(Course("Two", teacher_ids=["t2"], entity_id="2"))
    assert [c.id for c in any_store.list(EntityKind.COURSE, lambda c: c.has_teacher("t2"))] == ["2"]


def test_find_user_by_email_ignores_case(any_store):
    any_store.insert(User("Ada", "Ada@Example.edu", UserRole.TEACHER, entity_id="u1"))
    assert any_store.find_user_by_email("ada@example.EDU").id == "u1"
    assert any_store.find_user_by_email("bob@example.edu") is None


def test_subsection_variants_survive_storage(any_store):
    any_store.insert(Task("Quiz", "s1", "c1", deadline=FIXED_NOW, max_attempts=3, entity_id="t1"))
    any_store.insert(Lecture("Intro", "s1", "c1", entity_id="l1"))

    task = any_store.get(EntityKind.SUBSECTION, "t1")
    assert isinstance(task, Task)
    assert task.deadline == FIXED_NOW
    assert task.max_attempts == 3
    assert isinstance(any_store.get(EntityKind.SUBSECTION, "l1"), Lecture)


def test_grades_keyed_by_task_and_student(any_store):
    assert any_store.get_grade("t1", "s1") is None

    any_store.put_grade(Grade("t1", "s1", attempts=1))
    grade = any_store.get_grade("t1", "s1")
    grade.record_attempt(True, "ok")
    any_store.put_grade(grade)

    stored = any_store.get_grade("t1", "s1")
    assert stored.attempts == 2
    assert stored.passed
    assert len(any_store.list_grades()) == 1


def test_list_grades_filters(any_store):
    any_store.put_grade(Grade("t1", "s1"))
    any_store.put_grade(Grade("t1", "s2"))
    any_store.put_grade(Grade("t2", "s1"))

    assert {g.student_id for g in any_store.list_grades(task_id="t1")} == {"s1", "s2"}
    assert {g.task_id for g in any_store.list_grades(student_id="s1")} == {"t1", "t2"}
    assert len(any_store.list_grades(task_id="t2", student_id="s1")) == 1


def test_sections_and_subsections_in_creation_order(any_store):
    seed_store(any_store, FIXED_NOW)
    assert [s.id for s in any_store.sections_for_course("1")] == ["1", "2"]
    assert [s.id for s in any_store.subsections_for_section("1")] == ["1", "2"]
    assert [t.id for t in any_store.tasks_for_course("2")] == ["5"]


def test_seed_store_contents(any_store):
    seed_store(any_store, FIXED_NOW)
    assert any_store.count(EntityKind.USER) == 6
    assert any_store.count(EntityKind.COURSE) == 3
    assert any_store.get(EntityKind.COURSE, "2").teacher_ids == ["2", "3"]

    section = any_store.get(EntityKind.SECTION, "3")
    for subsection in any_store.subsections_for_section(section.id):
        assert subsection.course_id == section.course_id

    grade = any_store.get_grade("5", "4")
    assert grade.passed
    assert grade.attempts == 2


def test_sqlite_store_persists_across_instances(tmp_path):
    path = str(tmp_path / "lms.db")
    SQLiteEntityStore(SQLiteDatabase(path)).insert(Section("c1", "Week 1", entity_id="s1"))

    reopened = SQLiteEntityStore(SQLiteDatabase(path))
    assert reopened.get(EntityKind.SECTION, "s1").name == "Week 1"
    assert SQLiteDatabase(path).table_exists("grades")


def test_sqlite_atomic_block_rolls_back_on_error(tmp_path):
    path = str(tmp_path / "lms.db")
    store = SQLiteEntityStore(SQLiteDatabase(path))
    with pytest.raises(RuntimeError):
        with store.atomic():
            store.insert(User("Ada", "ada@university.edu", UserRole.STUDENT, entity_id="u1"))
            store.put_grade(Grade("t1", "u1", passed=True, attempts=1))
            assert store.count(EntityKind.USER) == 1
            raise RuntimeError("interrupted")

    assert store.count(EntityKind.USER) == 0
    assert store.list_grades() == []
    assert SQLiteEntityStore(SQLiteDatabase(path)).count(EntityKind.USER) == 0


def test_failed_seed_leaves_no_partial_dataset(tmp_path):
    store = SQLiteEntityStore(SQLiteDatabase(str(tmp_path / "lms.db")))
    store.insert(Course("Leftover", entity_id="3"))
    with pytest.raises(DuplicateEntityError):
        seed_store(store, FIXED_NOW)

    assert store.count(EntityKind.USER) == 0
    assert [course.name for course in store.list(EntityKind.COURSE)] == ["Leftover"]
