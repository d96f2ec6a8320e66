# tests/test_rest_api.py

import pytest
from fastapi.testclient import TestClient

from lms.config import Settings
from lms.main import LMSPlatform


@pytest.fixture
def platform(clock):
    return LMSPlatform(settings=Settings(), clock=clock)


@pytest.fixture
def client(platform):
    return TestClient(platform.app)


@pytest.fixture
def task_id(client):
    section = client.post("/courses/1/sections", json={'name': "Week 3"}).json()
    response = client.post(f"/sections/{section['id']}/subsections", json={
        'name': "Recursion Quiz", 'type': "task", 'deadline': "2030-01-01T00:00:00Z", 'max_attempts': 2,
    })
    assert response.status_code == 201
    return response.json()['id']


def test_root_and_health(client):
    assert client.get("/").json()['message'] == "LMS API"
    assert client.get("/health").json()['status'] == "healthy"


def test_create_user_and_duplicate_email(client):
    response = client.post("/users", json={'name': "Grace", 'email': "grace@university.edu", 'role': "teacher"})
    assert response.status_code == 201
    assert response.json()['role'] == "teacher"

    response = client.post("/users", json={'name': "Grace", 'email': "GRACE@university.edu", 'role': "student"})
    assert response.status_code == 409
    assert response.json()['error_code'] == "duplicate_email"


def test_create_user_validation(client):
    assert client.post("/users", json={'name': "X", 'email': "nope", 'role': "student"}).status_code == 422
    assert client.post("/users", json={'name': "X", 'email': "x@a.io", 'role': "dean"}).status_code == 422


def test_list_and_get_users(client):
    assert [u['id'] for u in client.get("/users", params={'role': "teacher"}).json()] == ["2", "3"]
    assert client.get("/users/4").json()['email'] == "student1@university.edu"
    response = client.get("/users/99")
    assert response.status_code == 404
    assert response.json()['error'] == "ResourceNotFoundError"


def test_user_courses(client):
    assert [c['id'] for c in client.get("/users/3/courses").json()] == ["2", "3"]


def test_membership_is_idempotent(client):
    client.post("/courses/3/students/4")
    course = client.post("/courses/3/students/4").json()
    assert course['student_ids'] == ["5", "6", "4"]

    course = client.delete("/courses/3/students/4").json()
    assert "4" not in course['student_ids']
    assert client.delete("/courses/3/students/4").status_code == 200


def test_membership_errors(client):
    assert client.post("/courses/99/students/4").status_code == 404
    assert client.post("/courses/1/teachers/4").status_code == 400


def test_course_outline(client):
    outline = client.get("/courses/1/outline").json()
    assert outline['course']['name'] == "Introduction to Computer Science"
    assert [s['section']['id'] for s in outline['sections']] == ["1", "2"]
    assert outline['sections'][1]['subsections'][0]['type'] == "task"


def test_create_content(client):
    course = client.post("/courses", json={'name': "Compilers"}).json()
    section = client.post(f"/courses/{course['id']}/sections", json={'name': "Parsing"}).json()
    assert client.get(f"/courses/{course['id']}/sections").json()[0]['id'] == section['id']

    lecture = client.post(f"/sections/{section['id']}/subsections",
                          json={'name': "LL(1)", 'type': "lecture", 'content': "<p>hi</p>"}).json()
    assert lecture['course_id'] == course['id']
    assert lecture['deadline'] is None

    task = client.post(f"/sections/{section['id']}/subsections", json={'name': "Quiz", 'type': "task"}).json()
    assert task['max_attempts'] == 2


def test_non_task_rejects_task_fields(client):
    response = client.post("/sections/1/subsections", json={'name': "Slides", 'type': "extra", 'max_attempts': 2})
    assert response.status_code == 400
    assert response.json()['error'] == "InvalidTaskConfigError"


def test_update_subsection(client, task_id):
    response = client.patch(f"/subsections/{task_id}", json={'name': "Quiz v2", 'max_attempts': 3})
    assert response.status_code == 200
    assert response.json()['name'] == "Quiz v2"
    assert response.json()['max_attempts'] == 3

    assert client.patch(f"/subsections/{task_id}", json={'max_attempts': 0}).status_code == 400
    assert client.patch(f"/subsections/{task_id}", json={'type': "lecture"}).status_code == 400
    assert client.patch("/subsections/1", json={'max_attempts': 3}).status_code == 400
    assert client.patch("/subsections/99", json={'name': "x"}).status_code == 404
    assert client.get(f"/subsections/{task_id}").json()['max_attempts'] == 3


def test_attempt_flow(client, task_id):
    response = client.post(f"/tasks/{task_id}/attempts",
                           json={'student_id': "4", 'passed': False, 'feedback': "try again"})
    assert response.status_code == 201
    grade = response.json()
    assert grade['attempts'] == 1
    assert grade['state'] == "in_progress"
    assert grade['remaining_attempts'] == 1

    grade = client.post(f"/tasks/{task_id}/attempts",
                        json={'student_id': "4", 'passed': True, 'feedback': "great"}).json()
    assert grade['state'] == "passed"

    response = client.post(f"/tasks/{task_id}/attempts", json={'student_id': "4", 'passed': True})
    assert response.status_code == 409
    assert response.json()['error_code'] == "passed"

    status = client.get(f"/tasks/{task_id}/students/4").json()
    assert status == {'task_id': task_id, 'student_id': "4", 'state': "passed",
                      'can_attempt': False, 'remaining_attempts': 0}


def test_attempt_with_idempotency_key(client, task_id):
    headers = {'Idempotency-Key': "retry-1"}
    body = {'student_id': "5", 'passed': False}
    first = client.post(f"/tasks/{task_id}/attempts", json=body, headers=headers).json()
    second = client.post(f"/tasks/{task_id}/attempts", json=body, headers=headers).json()
    assert first['attempts'] == second['attempts'] == 1
    assert client.get(f"/tasks/{task_id}/grades/5").json()['attempts'] == 1


def test_attempt_on_unknown_task(client):
    assert client.post("/tasks/99/attempts", json={'student_id': "4", 'passed': True}).status_code == 404
    assert client.post("/tasks/1/attempts", json={'student_id': "4", 'passed': True}).status_code == 404


def test_override_grade(client):
    response = client.put("/tasks/3/grades/5", json={'passed': True, 'feedback': "ok", 'grader_id': "2"})
    assert response.status_code == 200
    grade = response.json()
    assert grade['passed']
    assert grade['attempts'] == 1
    assert grade['grader_id'] == "2"

    response = client.put("/tasks/3/grades/5", json={'passed': False, 'grader_id': "4"})
    assert response.status_code == 403


def test_grade_listings(client):
    assert {g['student_id'] for g in client.get("/tasks/3/grades").json()} == {"4", "5"}
    assert client.get("/tasks/3/grades/6").status_code == 404
    assert {g['task_id'] for g in client.get("/students/4/grades").json()} == {"3", "5"}


def test_student_task_buckets(client):
    completed = client.get("/students/4/tasks", params={'bucket': "completed"}).json()
    assert [view['task']['id'] for view in completed] == ["5", "3"]
    assert completed[0]['course_name'] == "Advanced Mathematics"

    upcoming = client.get("/students/5/tasks", params={'bucket': "upcoming"}).json()
    assert [view['task']['id'] for view in upcoming] == ["3"]
    assert upcoming[0]['can_attempt'] is True

    assert client.get("/students/4/tasks", params={'bucket': "later"}).status_code == 422
    assert client.get("/students/99/tasks").status_code == 404


def test_course_and_teacher_tasks(client):
    views = client.get("/courses/1/tasks", params={'student_id': "5"}).json()
    assert views[0]['state'] == "in_progress"
    assert views[0]['remaining_attempts'] == 1

    views = client.get("/teachers/3/tasks").json()
    assert [view['task']['id'] for view in views] == ["5"]
    assert views[0]['state'] is None
    assert client.get("/teachers/3/tasks", params={'past': True}).json() == []


def test_task_statistics(client):
    assert client.get("/tasks/3/statistics").json() == {
        'task_id': "3", 'total_submissions': 2, 'passed': 1, 'pending': 1,
    }
    assert client.get("/tasks/1/statistics").status_code == 404


def test_dashboard_and_statistics(client):
    assert client.get("/users/4/dashboard").json()['completed_tasks'] == 2
    stats = client.get("/statistics").json()
    assert stats['success']
    assert stats['statistics']['enrollment']['total_courses'] == 3
    assert stats['statistics']['grading']['total_grades'] == 3
