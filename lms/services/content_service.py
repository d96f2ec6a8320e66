"""
Course content: courses, sections, and the subsections inside them.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from ..core.entities import SUBSECTION_CLASSES, Course, Section, Subsection, Task
from ..core.enums import EntityKind, EventType, SubsectionType
from ..core.exceptions import InvalidTaskConfigError, ResourceNotFoundError, ValidationError
from ..core.interfaces import EntityStore
from .concurrency_manager import ConcurrencyManager
from .event_service import EventService

logger = logging.getLogger(__name__)

COMMON_FIELDS = frozenset({'name', 'content'})
TASK_FIELDS = frozenset({'deadline', 'max_attempts'})
IMMUTABLE_FIELDS = frozenset({'id', 'section_id', 'course_id'})


def coerce_subsection_type(value: Union[str, SubsectionType]) -> SubsectionType:
    if isinstance(value, SubsectionType):
        return value
    try:
        return SubsectionType(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown subsection type: {value!r}", error_code="invalid_type")


@dataclass
class SectionOutline:
    section: Section
    subsections: List[Subsection] = field(default_factory=list)


@dataclass
class CourseOutline:
    """A course with its sections and their subsections, in display order."""
    course: Course
    sections: List[SectionOutline] = field(default_factory=list)


class ContentService:
    """Service for creating and editing course content."""

    def __init__(self, store: EntityStore, concurrency_manager: ConcurrencyManager,
                 event_service: Optional[EventService] = None,
                 default_task_days: int = 7, default_max_attempts: int = 2,
                 clock: Optional[Callable[[], datetime]] = None):
        if default_max_attempts < 1:
            raise InvalidTaskConfigError("Default max_attempts must be at least 1")
        if default_task_days < 1:
            raise InvalidTaskConfigError("Default task deadline must be at least 1 day ahead")
        self._store = store
        self._concurrency_manager = concurrency_manager
        self._event_service = event_service
        self._default_task_days = default_task_days
        self._default_max_attempts = default_max_attempts
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def create_course(self, name: str, description: str = "") -> Course:
        """Create an empty course."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Course name must not be empty")
        course = Course(name, description or "")
        self._store.insert(course)
        logger.info("Created course %s (%s)", course.id, name)
        self._publish_event(course.id, {'action': 'course_created', 'course_id': course.id})
        return course

    def get_course(self, course_id: str) -> Course:
        return self._store.get(EntityKind.COURSE, course_id)

    def list_courses(self) -> List[Course]:
        return self._store.list(EntityKind.COURSE)

    def get_section(self, section_id: str) -> Section:
        return self._store.get(EntityKind.SECTION, section_id)

    def get_subsection(self, subsection_id: str) -> Subsection:
        return self._store.get(EntityKind.SUBSECTION, subsection_id)

    def get_task(self, task_id: str) -> Task:
        """Get a subsection that is a task, else ResourceNotFoundError."""
        subsection = self._store.find(EntityKind.SUBSECTION, task_id)
        if not isinstance(subsection, Task):
            raise ResourceNotFoundError(
                f"Task with ID {task_id} not found",
                error_code="not_found",
                details={'kind': 'task', 'id': task_id}
            )
        return subsection

    def sections_for_course(self, course_id: str) -> List[Section]:
        return self._store.sections_for_course(course_id)

    def subsections_for_section(self, section_id: str) -> List[Subsection]:
        return self._store.subsections_for_section(section_id)

    def course_outline(self, course_id: str) -> CourseOutline:
        course = self.get_course(course_id)
        return CourseOutline(course, [
            SectionOutline(section, self._store.subsections_for_section(section.id))
            for section in self._store.sections_for_course(course_id)
        ])

    def add_section(self, course_id: str, name: str) -> Section:
        """Append a new section to a course."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Section name must not be empty")

        with self._concurrency_manager.lock(f"course:{course_id}"):
            course = self._store.get(EntityKind.COURSE, course_id)
            section = Section(course_id, name)
            self._store.insert(section)
            course.add_section(section.id)
            self._store.replace(course)

        logger.info("Added section %s to course %s", section.id, course_id)
        self._publish_event(course_id, {
            'action': 'section_added', 'course_id': course_id, 'section_id': section.id
        })
        return section

    def add_subsection(self, section_id: str, name: str, subsection_type: Union[str, SubsectionType],
                       content: str = "", deadline: Optional[Union[str, datetime]] = None,
                       max_attempts: Optional[int] = None) -> Subsection:
        """Append a subsection to a section.

        Tasks get a deadline one week out and two attempts unless given;
        other types reject task fields.
        """
        subsection_type = coerce_subsection_type(subsection_type)
        name = (name or "").strip()
        if not name:
            raise ValidationError("Subsection name must not be empty")
        if subsection_type is not SubsectionType.TASK and (deadline is not None or max_attempts is not None):
            raise InvalidTaskConfigError(
                f"deadline and max_attempts only apply to tasks, not {subsection_type.value}",
                error_code="task_fields_on_non_task"
            )

        with self._concurrency_manager.lock(f"section:{section_id}"):
            section = self._store.get(EntityKind.SECTION, section_id)
            subsection_class = SUBSECTION_CLASSES[subsection_type]
            if subsection_type is SubsectionType.TASK:
                subsection = subsection_class(
                    name, section_id, section.course_id, content or "",
                    deadline=deadline if deadline is not None
                    else self._clock() + timedelta(days=self._default_task_days),
                    max_attempts=max_attempts if max_attempts is not None else self._default_max_attempts,
                )
            else:
                subsection = subsection_class(name, section_id, section.course_id, content or "")
            self._store.insert(subsection)
            section.add_subsection(subsection.id)
            self._store.replace(section)

        logger.info("Added %s %s to section %s", subsection_type.value, subsection.id, section_id)
        self._publish_event(section.course_id, {
            'action': 'subsection_added',
            'section_id': section_id,
            'subsection_id': subsection.id,
            'type': subsection_type.value,
        })
        return subsection

    def update_subsection(self, subsection_id: str, updates: Dict[str, Any]) -> Subsection:
        """Apply whitelisted field changes to a subsection.

        ``name`` and ``content`` apply to every subsection, ``deadline`` and
        ``max_attempts`` only to tasks. Nothing is written unless every
        change is valid.
        """
        with self._concurrency_manager.lock(f"subsection:{subsection_id}"):
            subsection = self._store.get(EntityKind.SUBSECTION, subsection_id)
            self._apply_updates(subsection, updates)
            self._store.replace(subsection)

        logger.info("Updated subsection %s: %s", subsection_id, ", ".join(sorted(updates)))
        self._publish_event(subsection.course_id, {
            'action': 'subsection_updated',
            'subsection_id': subsection_id,
            'fields': sorted(updates),
        })
        return subsection

    def update_task(self, task_id: str, updates: Dict[str, Any]) -> Task:
        """Like update_subsection, but the id must name a task."""
        self.get_task(task_id)
        return self.update_subsection(task_id, updates)

    def _apply_updates(self, subsection: Subsection, updates: Dict[str, Any]) -> None:
        updates = dict(updates)
        new_type = updates.pop('type', None)
        if new_type is not None and coerce_subsection_type(new_type) is not subsection.subsection_type:
            raise ValidationError(
                f"Subsection type cannot change from {subsection.subsection_type.value}",
                error_code="type_change"
            )

        immutable = IMMUTABLE_FIELDS.intersection(updates)
        if immutable:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(immutable))}")
        task_fields = TASK_FIELDS.intersection(updates)
        if task_fields and not isinstance(subsection, Task):
            raise InvalidTaskConfigError(
                f"{', '.join(sorted(task_fields))} only apply to tasks",
                error_code="task_fields_on_non_task"
            )
        unknown = set(updates) - COMMON_FIELDS - TASK_FIELDS
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

        if 'name' in updates:
            name = (updates['name'] or "").strip()
            if not name:
                raise ValidationError("Subsection name must not be empty")
            subsection.rename(name)
        if 'content' in updates:
            subsection.set_content(updates['content'] or "")
        if 'deadline' in updates:
            subsection.set_deadline(updates['deadline'])
        if 'max_attempts' in updates:
            subsection.set_max_attempts(updates['max_attempts'])

    def _publish_event(self, course_id: str, event_data: Dict[str, Any]) -> None:
        if self._event_service is not None:
            self._event_service.publish(EventType.CONTENT, f"course_{course_id}", event_data)
