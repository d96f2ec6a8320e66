# tests/test_enrollment_service.py

import pytest

from lms.core import EntityKind, ResourceNotFoundError, ValidationError


def test_add_student_twice_keeps_one_entry(enrollment_service, store):
    enrollment_service.add_student("3", "4")
    course = enrollment_service.add_student("3", "4")
    assert course.student_ids.count("4") == 1
    assert store.get(EntityKind.COURSE, "3").student_ids == ["5", "6", "4"]


def test_remove_absent_student_is_a_no_op(enrollment_service, store):
    version = store.get(EntityKind.COURSE, "3").version
    course = enrollment_service.remove_student("3", "4")
    assert course.student_ids == ["5", "6"]
    assert store.get(EntityKind.COURSE, "3").version == version


def test_unknown_course_raises_not_found(enrollment_service):
    with pytest.raises(ResourceNotFoundError):
        enrollment_service.add_student("99", "4")
    with pytest.raises(ResourceNotFoundError):
        enrollment_service.remove_teacher("99", "2")


def test_add_requires_matching_role(enrollment_service):
    with pytest.raises(ValidationError):
        enrollment_service.add_teacher("1", "4")
    with pytest.raises(ResourceNotFoundError):
        enrollment_service.add_student("1", "99")


def test_teacher_assignment(enrollment_service):
    assert enrollment_service.add_teacher("1", "3").teacher_ids == ["2", "3"]
    assert enrollment_service.remove_teacher("1", "2").teacher_ids == ["3"]
    assert enrollment_service.teachers_for_course("1") == ["3"]
    assert enrollment_service.students_for_course("1") == ["4", "5"]


def test_removing_student_keeps_grades(enrollment_service, store):
    enrollment_service.remove_student("1", "4")
    assert not enrollment_service.is_enrolled("1", "4")
    assert store.get_grade("3", "4").passed


def test_courses_for_user(enrollment_service):
    assert [c.id for c in enrollment_service.courses_for_user("1", "admin")] == ["1", "2", "3"]
    assert [c.id for c in enrollment_service.courses_for_user("3", "teacher")] == ["2", "3"]
    assert [c.id for c in enrollment_service.courses_for_user("5", "student")] == ["1", "3"]


def test_statistics(enrollment_service):
    stats = enrollment_service.get_statistics()
    assert stats == {'total_courses': 3, 'total_enrollments': 6, 'total_assignments': 4}
