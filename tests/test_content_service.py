# tests/test_content_service.py

from datetime import datetime, timedelta, timezone

import pytest

from lms.core import (
    EntityKind, Extra, InvalidTaskConfigError, Lecture, ResourceNotFoundError, Task, ValidationError
)
from lms.persistence import InMemoryEntityStore
from lms.services import ConcurrencyManager, ContentService


def test_add_section_appends_in_order(content_service, store):
    first = content_service.add_section("3", "Week 2: Energy")
    second = content_service.add_section("3", "Week 3: Momentum")
    assert store.get(EntityKind.COURSE, "3").section_ids == ["4", first.id, second.id]
    assert first.course_id == "3"


def test_add_section_to_unknown_course(content_service):
    with pytest.raises(ResourceNotFoundError):
        content_service.add_section("99", "Orphan")


def test_add_subsection_copies_course_id(content_service, section):
    lecture = content_service.add_subsection(section.id, "Base cases", "lecture", "<p>...</p>")
    assert isinstance(lecture, Lecture)
    assert lecture.course_id == section.course_id == "1"
    assert [s.id for s in content_service.subsections_for_section(section.id)] == [lecture.id]


def test_task_defaults(content_service, section, clock):
    task = content_service.add_subsection(section.id, "Quiz", "task")
    assert isinstance(task, Task)
    assert task.deadline == clock() + timedelta(days=7)
    assert task.max_attempts == 2


def test_task_keeps_explicit_deadline_and_attempts(content_service, section, store):
    deadline = datetime(2030, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    task = content_service.add_subsection(section.id, "Quiz", "task", deadline=deadline, max_attempts=5)
    stored = store.get(EntityKind.SUBSECTION, task.id)
    assert stored.deadline == deadline
    assert stored.max_attempts == 5


def test_defaults_are_configurable(empty_store, clock):
    service = ContentService(empty_store, ConcurrencyManager(), default_task_days=3,
                             default_max_attempts=4, clock=clock)
    course = service.create_course("Compilers")
    section = service.add_section(course.id, "Parsing")
    task = service.add_subsection(section.id, "LL(1)", "task")
    assert task.deadline == clock() + timedelta(days=3)
    assert task.max_attempts == 4


def test_task_rejects_zero_attempts(content_service, section):
    with pytest.raises(InvalidTaskConfigError):
        content_service.add_subsection(section.id, "Quiz", "task", max_attempts=0)


def test_non_task_rejects_task_fields(content_service, section, store):
    before = store.get(EntityKind.SECTION, section.id).subsection_ids
    with pytest.raises(InvalidTaskConfigError):
        content_service.add_subsection(section.id, "Slides", "extra", max_attempts=3)
    assert store.get(EntityKind.SECTION, section.id).subsection_ids == before


def test_unknown_subsection_type(content_service, section):
    with pytest.raises(ValidationError):
        content_service.add_subsection(section.id, "Podcast", "audio")


def test_update_subsection_merges_whitelisted_fields(content_service, section):
    task = content_service.add_subsection(section.id, "Quiz", "task", max_attempts=2)
    updated = content_service.update_subsection(task.id, {'name': "Quiz v2", 'max_attempts': 4})
    assert updated.name == "Quiz v2"
    assert updated.max_attempts == 4
    assert updated.content == task.content
    assert content_service.get_task(task.id).max_attempts == 4


def test_update_subsection_validates_before_writing(content_service, section, store):
    task = content_service.add_subsection(section.id, "Quiz", "task", max_attempts=2)
    with pytest.raises(InvalidTaskConfigError):
        content_service.update_subsection(task.id, {'name': "Renamed", 'max_attempts': 0})
    stored = store.get(EntityKind.SUBSECTION, task.id)
    assert stored.name == "Quiz"
    assert stored.max_attempts == 2


def test_update_rejects_type_change(content_service, section):
    task = content_service.add_subsection(section.id, "Quiz", "task")
    with pytest.raises(ValidationError):
        content_service.update_subsection(task.id, {'type': "lecture"})
    assert content_service.update_subsection(task.id, {'type': "task", 'content': "x"}).content == "x"


def test_update_rejects_task_fields_on_non_task(content_service):
    with pytest.raises(InvalidTaskConfigError):
        content_service.update_subsection("1", {'deadline': "2030-01-01T00:00:00Z"})


def test_update_rejects_unknown_and_immutable_fields(content_service):
    with pytest.raises(ValidationError):
        content_service.update_subsection("1", {'colour': "red"})
    with pytest.raises(ValidationError):
        content_service.update_subsection("1", {'course_id': "2"})


def test_update_unknown_subsection(content_service):
    with pytest.raises(ResourceNotFoundError):
        content_service.update_subsection("99", {'name': "x"})


def test_update_task_requires_a_task(content_service):
    with pytest.raises(ResourceNotFoundError):
        content_service.update_task("1", {'name': "x"})
    assert content_service.update_task("3", {'max_attempts': 3}).max_attempts == 3


def test_course_outline(content_service):
    outline = content_service.course_outline("1")
    assert outline.course.id == "1"
    assert [entry.section.id for entry in outline.sections] == ["1", "2"]
    assert [sub.id for sub in outline.sections[0].subsections] == ["1", "2"]


def test_extra_subsection(content_service, section):
    extra = content_service.add_subsection(section.id, "Further reading", "extra")
    assert isinstance(extra, Extra)
    assert not extra.is_task


def test_invalid_default_attempts():
    with pytest.raises(InvalidTaskConfigError):
        ContentService(InMemoryEntityStore(), ConcurrencyManager(), default_max_attempts=0)


@pytest.mark.parametrize("days", [0, -1])
def test_invalid_default_task_days(days):
    with pytest.raises(InvalidTaskConfigError):
        ContentService(InMemoryEntityStore(), ConcurrencyManager(), default_task_days=days)
