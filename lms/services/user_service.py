"""
User registration and role-scoped user listings.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from ..core.entities import Course, Grade, User
from ..core.enums import EntityKind, EventType, UserRole
from ..core.exceptions import DuplicateEmailError, ValidationError
from ..core.interfaces import EntityStore
from .concurrency_manager import ConcurrencyManager
from .event_service import EventService

logger = logging.getLogger(__name__)


def coerce_role(role: Union[str, UserRole]) -> UserRole:
    """Accept a UserRole or its string value."""
    if isinstance(role, UserRole):
        return role
    try:
        return UserRole(str(role).strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown role: {role!r}", error_code="invalid_role")


@dataclass
class TeacherProfile:
    """A teacher with the courses they are assigned to."""
    user: User
    course_ids: List[str] = field(default_factory=list)


@dataclass
class StudentProfile:
    """A student with their enrollments and grades keyed by task id."""
    user: User
    course_ids: List[str] = field(default_factory=list)
    grades: Dict[str, Grade] = field(default_factory=dict)


class UserService:
    """Service for creating and looking up users."""

    def __init__(self, store: EntityStore, concurrency_manager: ConcurrencyManager,
                 event_service: Optional[EventService] = None):
        self._store = store
        self._concurrency_manager = concurrency_manager
        self._event_service = event_service

    def create_user(self, name: str, email: str, role: Union[str, UserRole]) -> User:
        """Register a user. Fails with DuplicateEmailError if the email is taken."""
        role = coerce_role(role)
        name = (name or "").strip()
        email = (email or "").strip()
        if not name:
            raise ValidationError("Name must not be empty")
        if "@" not in email:
            raise ValidationError(f"Invalid email address: {email!r}")

        with self._concurrency_manager.lock(f"user-email:{email.lower()}"):
            if self._store.find_user_by_email(email) is not None:
                logger.warning("Rejected duplicate registration for %s", email)
                raise DuplicateEmailError(
                    f"User with email {email} already exists",
                    error_code="duplicate_email",
                    details={'email': email}
                )
            user = User(name, email, role)
            self._store.insert(user)

        logger.info("Created %s user %s (%s)", role.value, user.id, email)
        self._publish_event(user.id, {'action': 'created', 'role': role.value, 'email': email})
        return user

    def get_user(self, user_id: str) -> User:
        """Get a user by ID."""
        return self._store.get(EntityKind.USER, user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        """Get a user by email."""
        return self._store.find_user_by_email(email)

    def authenticate(self, email: str) -> Optional[User]:
        """Resolve the identity for a login email.

        Credentials are checked by the external auth collaborator; this only
        maps a registered email to its user.
        """
        user = self._store.find_user_by_email(email)
        if user is None:
            logger.info("Login attempt for unknown email %s", email)
        return user

    def require_role(self, user_id: str, role: UserRole) -> User:
        """Get a user and check it holds ``role``."""
        user = self.get_user(user_id)
        if user.role is not role:
            raise ValidationError(
                f"User {user_id} is a {user.role.value}, expected a {role.value}",
                error_code="role_mismatch",
                details={'user_id': user_id, 'role': user.role.value, 'expected': role.value}
            )
        return user

    def list_users(self, role: Optional[Union[str, UserRole]] = None) -> List[User]:
        """List users, optionally with a given role."""
        if role is None:
            return self._store.list(EntityKind.USER)
        role = coerce_role(role)
        return self._store.list(EntityKind.USER, lambda user: user.role is role)

    def list_teachers(self) -> List[TeacherProfile]:
        courses = self._store.list(EntityKind.COURSE)
        return [
            TeacherProfile(user, [course.id for course in courses if course.has_teacher(user.id)])
            for user in self.list_users(UserRole.TEACHER)
        ]

    def list_students(self) -> List[StudentProfile]:
        courses: List[Course] = self._store.list(EntityKind.COURSE)
        profiles = []
        for user in self.list_users(UserRole.STUDENT):
            grades = {grade.task_id: grade for grade in self._store.list_grades(student_id=user.id)}
            course_ids = [course.id for course in courses if course.has_student(user.id)]
            profiles.append(StudentProfile(user, course_ids, grades))
        return profiles

    def get_admin(self) -> Optional[User]:
        admins = self.list_users(UserRole.ADMIN)
        return admins[0] if admins else None

    def _publish_event(self, user_id: str, event_data: Dict) -> None:
        if self._event_service is not None:
            self._event_service.publish(EventType.USER, f"user_{user_id}", event_data)
