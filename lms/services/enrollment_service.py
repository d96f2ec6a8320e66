"""
Course membership: teacher assignment and student enrollment.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from ..core.entities import Course
from ..core.enums import EntityKind, EventType, UserRole
from ..core.interfaces import EntityStore
from .concurrency_manager import ConcurrencyManager
from .event_service import EventService
from .user_service import UserService, coerce_role

logger = logging.getLogger(__name__)


class EnrollmentService:
    """Service for managing course membership.

    Adding a relation that already holds, or removing one that never held,
    is a successful no-op. Removing a student leaves their grades in place.
    """

    def __init__(self, store: EntityStore, user_service: UserService,
                 concurrency_manager: ConcurrencyManager,
                 event_service: Optional[EventService] = None):
        self._store = store
        self._user_service = user_service
        self._concurrency_manager = concurrency_manager
        self._event_service = event_service

    def add_teacher(self, course_id: str, teacher_id: str) -> Course:
        """Assign a teacher to a course."""
        return self._change_membership(course_id, teacher_id, UserRole.TEACHER, add=True)

    def remove_teacher(self, course_id: str, teacher_id: str) -> Course:
        """Unassign a teacher from a course."""
        return self._change_membership(course_id, teacher_id, UserRole.TEACHER, add=False)

    def add_student(self, course_id: str, student_id: str) -> Course:
        """Enroll a student in a course."""
        return self._change_membership(course_id, student_id, UserRole.STUDENT, add=True)

    def remove_student(self, course_id: str, student_id: str) -> Course:
        """Unenroll a student from a course."""
        return self._change_membership(course_id, student_id, UserRole.STUDENT, add=False)

    def _change_membership(self, course_id: str, user_id: str, role: UserRole, add: bool) -> Course:
        with self._concurrency_manager.lock(f"course:{course_id}"):
            course = self._store.get(EntityKind.COURSE, course_id)
            if add:
                self._user_service.require_role(user_id, role)

            if role is UserRole.TEACHER:
                changed = course.add_teacher(user_id) if add else course.remove_teacher(user_id)
            else:
                changed = course.add_student(user_id) if add else course.remove_student(user_id)

            if changed:
                self._store.replace(course)

        action = "added" if add else "removed"
        if not changed:
            logger.debug("%s %s already %s for course %s", role.value, user_id, action, course_id)
            return course

        logger.info("%s %s %s %s course %s", role.value.capitalize(), user_id, action,
                    "to" if add else "from", course_id)
        self._publish_event(course_id, {
            'course_id': course_id,
            'user_id': user_id,
            'role': role.value,
            'action': action,
        })
        return course

    def courses_for_user(self, user_id: str, role: Union[str, UserRole]) -> List[Course]:
        """Courses visible to a user: all for admins, assigned or enrolled otherwise."""
        role = coerce_role(role)
        if role is UserRole.ADMIN:
            return self._store.list(EntityKind.COURSE)
        if role is UserRole.TEACHER:
            return self._store.list(EntityKind.COURSE, lambda course: course.has_teacher(user_id))
        return self._store.list(EntityKind.COURSE, lambda course: course.has_student(user_id))

    def students_for_course(self, course_id: str) -> List[str]:
        return self._store.get(EntityKind.COURSE, course_id).student_ids

    def teachers_for_course(self, course_id: str) -> List[str]:
        return self._store.get(EntityKind.COURSE, course_id).teacher_ids

    def is_enrolled(self, course_id: str, student_id: str) -> bool:
        return self._store.get(EntityKind.COURSE, course_id).has_student(student_id)

    def get_statistics(self) -> Dict[str, Any]:
        """Get membership totals."""
        courses = self._store.list(EntityKind.COURSE)
        return {
            'total_courses': len(courses),
            'total_enrollments': sum(len(course.student_ids) for course in courses),
            'total_assignments': sum(len(course.teacher_ids) for course in courses),
        }

    def _publish_event(self, course_id: str, event_data: Dict[str, Any]) -> None:
        if self._event_service is not None:
            self._event_service.publish(EventType.ENROLLMENT, f"enrollment_{course_id}", event_data)
