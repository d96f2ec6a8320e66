"""
Python client for the LMS REST API.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from .core.exceptions import LMSException

logger = logging.getLogger(__name__)


class LMSClientError(LMSException):
    """Raised when the server answers with a non-2xx status."""

    def __init__(self, status_code: int, message: str, error_code: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code, details)
        self.status_code = status_code


class LMSClient:
    """Thin wrapper over the REST endpoints.

    ``session`` may be any object with a requests-style ``request`` method,
    e.g. a ``requests.Session`` or a FastAPI ``TestClient``.
    """

    def __init__(self, base_url: str = "http://127.0.0.1:8000", session=None,
                 timeout: Optional[float] = 10.0):
        self._base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._timeout = timeout

    @property
    def base_url(self) -> str:
        return self._base_url

    def _request(self, method: str, path: str, **kwargs) -> Any:
        if self._timeout is not None:
            kwargs.setdefault('timeout', self._timeout)
        response = self._session.request(method, f"{self._base_url}{path}", **kwargs)
        if response.status_code >= 400:
            try:
                payload = response.json()
            except ValueError:
                payload = {'detail': response.text}
            if not isinstance(payload, dict):
                payload = {'detail': payload}
            logger.debug("%s %s -> %d", method, path, response.status_code)
            raise LMSClientError(
                response.status_code,
                str(payload.get('detail', response.text)),
                error_code=payload.get('error_code'),
                details=payload.get('details') or {}
            )
        return response.json()

    def health(self) -> Dict[str, str]:
        return self._request("GET", "/health")

    def is_available(self) -> bool:
        """True if the server answers its health check."""
        try:
            self.health()
            return True
        except (requests.exceptions.RequestException, LMSClientError):
            return False

    # Users
    def create_user(self, name: str, email: str, role: str) -> Dict[str, Any]:
        return self._request("POST", "/users", json={'name': name, 'email': email, 'role': role})

    def get_user(self, user_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/users/{user_id}")

    def list_users(self, role: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {'role': role} if role else None
        return self._request("GET", "/users", params=params)

    def dashboard(self, user_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/users/{user_id}/dashboard")

    # Courses and content
    def create_course(self, name: str, description: str = "") -> Dict[str, Any]:
        return self._request("POST", "/courses", json={'name': name, 'description': description})

    def get_course(self, course_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/courses/{course_id}")

    def list_courses(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/courses")

    def course_outline(self, course_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/courses/{course_id}/outline")

    def add_section(self, course_id: str, name: str) -> Dict[str, Any]:
        return self._request("POST", f"/courses/{course_id}/sections", json={'name': name})

    def add_subsection(self, section_id: str, name: str, subsection_type: str, content: str = "",
                       deadline: Optional[str] = None,
                       max_attempts: Optional[int] = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {'name': name, 'type': subsection_type, 'content': content}
        if deadline is not None:
            body['deadline'] = deadline
        if max_attempts is not None:
            body['max_attempts'] = max_attempts
        return self._request("POST", f"/sections/{section_id}/subsections", json=body)

    def update_subsection(self, subsection_id: str, **updates) -> Dict[str, Any]:
        return self._request("PATCH", f"/subsections/{subsection_id}", json=updates)

    # Membership
    def add_teacher(self, course_id: str, teacher_id: str) -> Dict[str, Any]:
        return self._request("POST", f"/courses/{course_id}/teachers/{teacher_id}")

    def remove_teacher(self, course_id: str, teacher_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/courses/{course_id}/teachers/{teacher_id}")

    def add_student(self, course_id: str, student_id: str) -> Dict[str, Any]:
        return self._request("POST", f"/courses/{course_id}/students/{student_id}")

    def remove_student(self, course_id: str, student_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/courses/{course_id}/students/{student_id}")

    # Grading
    def attempt_task(self, task_id: str, student_id: str, passed: bool,
                     feedback: Optional[str] = None,
                     idempotency_key: Optional[str] = None) -> Dict[str, Any]:
        headers = {'Idempotency-Key': idempotency_key} if idempotency_key else None
        return self._request("POST", f"/tasks/{task_id}/attempts", headers=headers,
                             json={'student_id': student_id, 'passed': passed, 'feedback': feedback})

    def override_grade(self, task_id: str, student_id: str, passed: bool,
                       feedback: Optional[str] = None,
                       grader_id: Optional[str] = None) -> Dict[str, Any]:
        return self._request("PUT", f"/tasks/{task_id}/grades/{student_id}",
                             json={'passed': passed, 'feedback': feedback, 'grader_id': grader_id})

    def attempt_status(self, task_id: str, student_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/tasks/{task_id}/students/{student_id}")

    def task_statistics(self, task_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/tasks/{task_id}/statistics")

    # Task listings
    def student_tasks(self, student_id: str, bucket: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {'bucket': bucket} if bucket else None
        return self._request("GET", f"/students/{student_id}/tasks", params=params)

    def course_tasks(self, course_id: str, student_id: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {'student_id': student_id} if student_id else None
        return self._request("GET", f"/courses/{course_id}/tasks", params=params)

    def teacher_tasks(self, teacher_id: str) -> List[Dict[str, Any]]:
        return self._request("GET", f"/teachers/{teacher_id}/tasks")

    def statistics(self) -> Dict[str, Any]:
        return self._request("GET", "/statistics")
