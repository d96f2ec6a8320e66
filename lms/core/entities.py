"""
Core entities for the LMS.

Entities expose read-only properties and change only through their named
mutation methods, each of which bumps ``version`` and ``updated_at``. Stores
hand out copies, so a mutation is only visible to others once the modified
copy is written back through the store.
"""

import uuid
from abc import ABC
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type, Union

from .enums import EntityKind, EventType, SubsectionType, UserRole
from .exceptions import InvalidTaskConfigError, ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: Union[str, datetime]) -> datetime:
    """Coerce an ISO-8601 string or datetime into an aware UTC datetime.

    Naive values are taken to be UTC already.
    """
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(f"Invalid timestamp: {value!r}")
    if not isinstance(value, datetime):
        raise ValidationError(f"Expected a datetime, got {type(value).__name__}")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def grade_key(task_id: str, student_id: str) -> str:
    """Composite id of the grade for a (task, student) pair."""
    return f"{task_id}:{student_id}"


class AbstractEntity(ABC):
    """Base abstract entity with universal ID, timestamps, and versioning."""

    def __init__(self, entity_id: Optional[str] = None, created_at: Optional[datetime] = None,
                 updated_at: Optional[datetime] = None, version: int = 1):
        self._id = entity_id or str(uuid.uuid4())
        self._created_at = created_at or utcnow()
        self._updated_at = updated_at or self._created_at
        self._version = version

    @property
    def id(self) -> str:
        """Get the entity ID."""
        return self._id

    @property
    def created_at(self) -> datetime:
        """Get creation timestamp."""
        return self._created_at

    @property
    def updated_at(self) -> datetime:
        """Get last update timestamp."""
        return self._updated_at

    @property
    def version(self) -> int:
        """Get current version."""
        return self._version

    def _touch(self) -> None:
        self._updated_at = utcnow()
        self._version += 1

    def to_dict(self) -> Dict[str, Any]:
        """Convert entity to dictionary."""
        return {
            'id': self._id,
            'created_at': self._created_at.isoformat(),
            'updated_at': self._updated_at.isoformat(),
            'version': self._version,
        }

    @staticmethod
    def _base_kwargs(data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            'entity_id': data['id'],
            'created_at': parse_datetime(data['created_at']),
            'updated_at': parse_datetime(data['updated_at']),
            'version': data.get('version', 1),
        }

    def __str__(self) -> str:
        return f"{self.__class__.__name__}(id={self._id})"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self._id}, version={self._version})"


class User(AbstractEntity):
    """A person using the system. The role is fixed at creation."""

    def __init__(self, name: str, email: str, role: UserRole, **kwargs):
        super().__init__(**kwargs)
        if not isinstance(role, UserRole):
            raise ValidationError(f"Unknown role: {role!r}")
        self._name = name
        self._email = email
        self._role = role

    @property
    def name(self) -> str:
        return self._name

    @property
    def email(self) -> str:
        return self._email

    @property
    def role(self) -> UserRole:
        return self._role

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({
            'name': self._name,
            'email': self._email,
            'role': self._role.value,
        })
        return base_dict

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'User':
        return cls(data['name'], data['email'], UserRole(data['role']), **cls._base_kwargs(data))


class Course(AbstractEntity):
    """Course entity. Owns its sections, listed in creation order."""

    def __init__(self, name: str, description: str = "", teacher_ids: Optional[List[str]] = None,
                 student_ids: Optional[List[str]] = None, section_ids: Optional[List[str]] = None,
                 **kwargs):
        super().__init__(**kwargs)
        self._name = name
        self._description = description
        # Ordered and duplicate free; dict keys keep insertion order.
        self._teacher_ids = list(dict.fromkeys(teacher_ids or []))
        self._student_ids = list(dict.fromkeys(student_ids or []))
        self._section_ids = list(section_ids or [])

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    @property
    def teacher_ids(self) -> List[str]:
        return self._teacher_ids.copy()

    @property
    def student_ids(self) -> List[str]:
        return self._student_ids.copy()

    @property
    def section_ids(self) -> List[str]:
        return self._section_ids.copy()

    def has_teacher(self, teacher_id: str) -> bool:
        return teacher_id in self._teacher_ids

    def has_student(self, student_id: str) -> bool:
        return student_id in self._student_ids

    def add_teacher(self, teacher_id: str) -> bool:
        """Assign a teacher. Returns False if already assigned."""
        if teacher_id in self._teacher_ids:
            return False
        self._teacher_ids.append(teacher_id)
        self._touch()
        return True

    def remove_teacher(self, teacher_id: str) -> bool:
        """Unassign a teacher. Returns False if not assigned."""
        if teacher_id not in self._teacher_ids:
            return False
        self._teacher_ids.remove(teacher_id)
        self._touch()
        return True

    def add_student(self, student_id: str) -> bool:
        """Enroll a student. Returns False if already enrolled."""
        if student_id in self._student_ids:
            return False
        self._student_ids.append(student_id)
        self._touch()
        return True

    def remove_student(self, student_id: str) -> bool:
        """Unenroll a student. Returns False if not enrolled."""
        if student_id not in self._student_ids:
            return False
        self._student_ids.remove(student_id)
        self._touch()
        return True

    def add_section(self, section_id: str) -> None:
        """Append a section id."""
        self._section_ids.append(section_id)
        self._touch()

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({
            'name': self._name,
            'description': self._description,
            'teacher_ids': list(self._teacher_ids),
            'student_ids': list(self._student_ids),
            'section_ids': list(self._section_ids),
        })
        return base_dict

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Course':
        return cls(
            data['name'],
            data.get('description', ""),
            teacher_ids=data.get('teacher_ids', []),
            student_ids=data.get('student_ids', []),
            section_ids=data.get('section_ids', []),
            **cls._base_kwargs(data)
        )


class Section(AbstractEntity):
    """A named block of a course holding subsections in creation order."""

    def __init__(self, course_id: str, name: str, subsection_ids: Optional[List[str]] = None, **kwargs):
        super().__init__(**kwargs)
        self._course_id = course_id
        self._name = name
        self._subsection_ids = list(subsection_ids or [])

    @property
    def course_id(self) -> str:
        return self._course_id

    @property
    def name(self) -> str:
        return self._name

    @property
    def subsection_ids(self) -> List[str]:
        return self._subsection_ids.copy()

    def add_subsection(self, subsection_id: str) -> None:
        """Append a subsection id."""
        self._subsection_ids.append(subsection_id)
        self._touch()

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({
            'course_id': self._course_id,
            'name': self._name,
            'subsection_ids': list(self._subsection_ids),
        })
        return base_dict

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Section':
        return cls(data['course_id'], data['name'], subsection_ids=data.get('subsection_ids', []),
                   **cls._base_kwargs(data))


class Subsection(AbstractEntity):
    """Base for the content variants of a section."""

    subsection_type: SubsectionType

    def __init__(self, name: str, section_id: str, course_id: str, content: str = "", **kwargs):
        super().__init__(**kwargs)
        self._name = name
        self._section_id = section_id
        self._course_id = course_id
        self._content = content

    @property
    def name(self) -> str:
        return self._name

    @property
    def section_id(self) -> str:
        return self._section_id

    @property
    def course_id(self) -> str:
        return self._course_id

    @property
    def content(self) -> str:
        """Opaque rich text (HTML) blob."""
        return self._content

    @property
    def is_task(self) -> bool:
        return self.subsection_type is SubsectionType.TASK

    def rename(self, name: str) -> None:
        self._name = name
        self._touch()

    def set_content(self, content: str) -> None:
        self._content = content
        self._touch()

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({
            'type': self.subsection_type.value,
            'name': self._name,
            'section_id': self._section_id,
            'course_id': self._course_id,
            'content': self._content,
        })
        return base_dict

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Subsection':
        return cls(data['name'], data['section_id'], data['course_id'], data.get('content', ""),
                   **cls._base_kwargs(data))


class Lecture(Subsection):
    subsection_type = SubsectionType.LECTURE


class Literature(Subsection):
    subsection_type = SubsectionType.LITERATURE


class Extra(Subsection):
    subsection_type = SubsectionType.EXTRA


class Task(Subsection):
    """A gradable subsection with a deadline and an attempt limit."""

    subsection_type = SubsectionType.TASK

    def __init__(self, name: str, section_id: str, course_id: str, content: str = "", *,
                 deadline: Union[str, datetime], max_attempts: int, **kwargs):
        super().__init__(name, section_id, course_id, content, **kwargs)
        self._deadline = parse_datetime(deadline)
        self._max_attempts = self._validate_max_attempts(max_attempts)

    @staticmethod
    def _validate_max_attempts(max_attempts: Any) -> int:
        if isinstance(max_attempts, bool) or not isinstance(max_attempts, int):
            raise InvalidTaskConfigError(f"max_attempts must be an integer, got {max_attempts!r}")
        if max_attempts < 1:
            raise InvalidTaskConfigError(f"max_attempts must be at least 1, got {max_attempts}")
        return max_attempts

    @property
    def deadline(self) -> datetime:
        return self._deadline

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def set_deadline(self, deadline: Union[str, datetime]) -> None:
        self._deadline = parse_datetime(deadline)
        self._touch()

    def set_max_attempts(self, max_attempts: int) -> None:
        self._max_attempts = self._validate_max_attempts(max_attempts)
        self._touch()

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({
            'deadline': self._deadline.isoformat(),
            'max_attempts': self._max_attempts,
        })
        return base_dict

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Task':
        return cls(data['name'], data['section_id'], data['course_id'], data.get('content', ""),
                   deadline=data['deadline'], max_attempts=data['max_attempts'],
                   **cls._base_kwargs(data))


SUBSECTION_CLASSES: Dict[SubsectionType, Type[Subsection]] = {
    SubsectionType.LECTURE: Lecture,
    SubsectionType.LITERATURE: Literature,
    SubsectionType.TASK: Task,
    SubsectionType.EXTRA: Extra,
}


def subsection_from_dict(data: Dict[str, Any]) -> Subsection:
    """Rebuild the right subsection variant from its stored ``type``."""
    return SUBSECTION_CLASSES[SubsectionType(data['type'])].from_dict(data)


class Grade(AbstractEntity):
    """Attempt history and outcome of one student on one task."""

    def __init__(self, task_id: str, student_id: str, passed: bool = False, attempts: int = 0,
                 feedback: Optional[str] = None, graded_at: Optional[datetime] = None,
                 grader_id: Optional[str] = None, **kwargs):
        kwargs.setdefault('entity_id', grade_key(task_id, student_id))
        super().__init__(**kwargs)
        if attempts < 0:
            raise ValidationError("Attempts cannot be negative")
        self._task_id = task_id
        self._student_id = student_id
        self._passed = self._validate_passed(passed)
        self._attempts = attempts
        self._feedback = feedback
        self._graded_at = graded_at or self._created_at
        self._grader_id = grader_id

    @staticmethod
    def _validate_passed(passed: Any) -> bool:
        if not isinstance(passed, bool):
            raise ValidationError(f"passed must be a boolean, got {passed!r}")
        return passed

    @property
    def task_id(self) -> str:
        return self._task_id

    @property
    def student_id(self) -> str:
        return self._student_id

    @property
    def passed(self) -> bool:
        return self._passed

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def feedback(self) -> Optional[str]:
        return self._feedback

    @property
    def graded_at(self) -> datetime:
        return self._graded_at

    @property
    def grader_id(self) -> Optional[str]:
        return self._grader_id

    def record_attempt(self, passed: bool, feedback: Optional[str] = None) -> None:
        """Count one attempt and store its outcome. Empty feedback keeps the previous text."""
        passed = self._validate_passed(passed)
        self._attempts += 1
        self._passed = passed
        if feedback:
            self._feedback = feedback
        self._graded_at = utcnow()
        self._touch()

    def override(self, passed: bool, feedback: Optional[str] = None,
                 grader_id: Optional[str] = None) -> None:
        """Set the outcome without counting an attempt."""
        self._passed = self._validate_passed(passed)
        if feedback:
            self._feedback = feedback
        if grader_id:
            self._grader_id = grader_id
        self._graded_at = utcnow()
        self._touch()

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({
            'task_id': self._task_id,
            'student_id': self._student_id,
            'passed': self._passed,
            'attempts': self._attempts,
            'feedback': self._feedback,
            'graded_at': self._graded_at.isoformat(),
            'grader_id': self._grader_id,
        })
        return base_dict

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Grade':
        return cls(
            data['task_id'],
            data['student_id'],
            passed=data.get('passed', False),
            attempts=data.get('attempts', 0),
            feedback=data.get('feedback'),
            graded_at=parse_datetime(data['graded_at']) if data.get('graded_at') else None,
            grader_id=data.get('grader_id'),
            **cls._base_kwargs(data)
        )


class Event(AbstractEntity):
    """Record of a committed change."""

    def __init__(self, event_type: EventType, stream_id: str,
                 event_data: Dict[str, Any], **kwargs):
        super().__init__(**kwargs)
        self._event_type = event_type
        self._stream_id = stream_id
        self._event_data = dict(event_data)

    @property
    def event_type(self) -> EventType:
        return self._event_type

    @property
    def stream_id(self) -> str:
        return self._stream_id

    @property
    def event_data(self) -> Dict[str, Any]:
        return self._event_data.copy()

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({
            'event_type': self._event_type.value,
            'stream_id': self._stream_id,
            'event_data': self._event_data.copy(),
        })
        return base_dict


def entity_from_dict(kind: EntityKind, data: Dict[str, Any]) -> AbstractEntity:
    """Rebuild a stored entity of the given kind."""
    if kind is EntityKind.USER:
        return User.from_dict(data)
    if kind is EntityKind.COURSE:
        return Course.from_dict(data)
    if kind is EntityKind.SECTION:
        return Section.from_dict(data)
    return subsection_from_dict(data)


def kind_of(entity: AbstractEntity) -> EntityKind:
    """Collection an entity belongs to."""
    if isinstance(entity, User):
        return EntityKind.USER
    if isinstance(entity, Course):
        return EntityKind.COURSE
    if isinstance(entity, Section):
        return EntityKind.SECTION
    if isinstance(entity, Subsection):
        return EntityKind.SUBSECTION
    raise ValidationError(f"{entity.__class__.__name__} is not a stored entity kind")
