# tests/test_user_service.py

import pytest

from lms.core import DuplicateEmailError, EntityKind, EventType, UserRole, ValidationError


def test_create_user(user_service, store):
    user = user_service.create_user("Grace Hopper", "grace@university.edu", "teacher")
    assert user.role is UserRole.TEACHER
    assert store.get(EntityKind.USER, user.id).email == "grace@university.edu"


def test_create_user_with_existing_email_leaves_store_unchanged(user_service, store):
    before = store.count(EntityKind.USER)
    with pytest.raises(DuplicateEmailError):
        user_service.create_user("Impostor", "Student1@University.edu", UserRole.STUDENT)
    assert store.count(EntityKind.USER) == before


@pytest.mark.parametrize("name, email, role", [
    ("", "x@university.edu", "student"),
    ("Someone", "not-an-email", "student"),
    ("Someone", "x@university.edu", "janitor"),
])
def test_create_user_rejects_invalid_input(user_service, name, email, role):
    with pytest.raises(ValidationError):
        user_service.create_user(name, email, role)


def test_create_user_publishes_event(user_service, event_service):
    user = user_service.create_user("Grace Hopper", "grace@university.edu", "teacher")
    events = event_service.get_events(stream_id=f"user_{user.id}", event_type=EventType.USER)
    assert len(events) == 1
    assert events[0].event_data['action'] == 'created'


def test_authenticate_maps_email_to_user(user_service):
    assert user_service.authenticate("teacher1@university.edu").id == "2"
    assert user_service.authenticate("nobody@university.edu") is None


def test_require_role(user_service):
    assert user_service.require_role("4", UserRole.STUDENT).id == "4"
    with pytest.raises(ValidationError):
        user_service.require_role("2", UserRole.STUDENT)


def test_list_users_by_role(user_service):
    assert [u.id for u in user_service.list_users("teacher")] == ["2", "3"]
    assert len(user_service.list_users()) == 6
    assert user_service.get_admin().id == "1"


def test_profiles(user_service):
    teachers = {profile.user.id: profile for profile in user_service.list_teachers()}
    assert teachers["2"].course_ids == ["1", "2"]

    students = {profile.user.id: profile for profile in user_service.list_students()}
    assert students["4"].course_ids == ["1", "2"]
    assert set(students["4"].grades) == {"3", "5"}
    assert students["6"].grades == {}


def test_get_user_by_email(user_service):
    assert user_service.get_user_by_email("  STUDENT2@university.edu ").id == "5"
