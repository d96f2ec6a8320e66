"""
Core interfaces and abstract base classes for the LMS.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Callable, List, Optional

from .entities import AbstractEntity, Event, Grade, Section, Subsection, Task, User
from .enums import EntityKind


class EntityStore(ABC):
    """Abstract persistence boundary for every entity the services touch.

    Reads return copies; callers mutate a copy and write it back with
    ``replace`` or ``put_grade``. Section and subsection order is the
    insertion order recorded on the parent.
    """

    @abstractmethod
    def get(self, kind: EntityKind, entity_id: str) -> AbstractEntity:
        """Get an entity, raising ResourceNotFoundError if absent."""
        pass

    @abstractmethod
    def find(self, kind: EntityKind, entity_id: str) -> Optional[AbstractEntity]:
        """Get an entity or None."""
        pass

    @abstractmethod
    def list(self, kind: EntityKind,
             predicate: Optional[Callable[[AbstractEntity], bool]] = None) -> List[AbstractEntity]:
        """List entities of a kind in insertion order."""
        pass

    @abstractmethod
    def insert(self, entity: AbstractEntity) -> AbstractEntity:
        """Add a new entity, raising DuplicateEntityError if the id is taken."""
        pass

    @abstractmethod
    def replace(self, entity: AbstractEntity) -> AbstractEntity:
        """Overwrite an existing entity, raising ResourceNotFoundError if absent."""
        pass

    @abstractmethod
    def find_user_by_email(self, email: str) -> Optional[User]:
        """Find a user by email, ignoring case."""
        pass

    @abstractmethod
    def get_grade(self, task_id: str, student_id: str) -> Optional[Grade]:
        """Get the grade for a (task, student) pair."""
        pass

    @abstractmethod
    def put_grade(self, grade: Grade) -> Grade:
        """Create or overwrite the grade for its (task, student) pair."""
        pass

    @abstractmethod
    def list_grades(self, task_id: Optional[str] = None,
                    student_id: Optional[str] = None) -> List[Grade]:
        """List grades, optionally narrowed to a task and/or student."""
        pass

    @abstractmethod
    def atomic(self) -> AbstractContextManager:
        """Group a multi-entity write.

        The block is serialized against other writers of this store. A
        database-backed store also commits it as one transaction, so an error
        inside the block leaves nothing behind.
        """
        pass

    def sections_for_course(self, course_id: str) -> List[Section]:
        """Sections of a course in creation order."""
        course = self.get(EntityKind.COURSE, course_id)
        sections = (self.find(EntityKind.SECTION, section_id) for section_id in course.section_ids)
        return [section for section in sections if section is not None]

    def subsections_for_section(self, section_id: str) -> List[Subsection]:
        """Subsections of a section in creation order."""
        section = self.get(EntityKind.SECTION, section_id)
        subsections = (self.find(EntityKind.SUBSECTION, sub_id) for sub_id in section.subsection_ids)
        return [subsection for subsection in subsections if subsection is not None]

    def count(self, kind: EntityKind) -> int:
        """Number of stored entities of a kind."""
        return len(self.list(kind))

    def tasks_for_course(self, course_id: str) -> List[Task]:
        """Tasks of a course, in section then subsection order."""
        tasks = []
        for section in self.sections_for_course(course_id):
            tasks.extend(sub for sub in self.subsections_for_section(section.id) if isinstance(sub, Task))
        return tasks


class EventHandler(ABC):
    """Abstract base class for event handlers."""

    @abstractmethod
    def handle_event(self, event: Event) -> None:
        """Handle an event."""
        pass

    @abstractmethod
    def can_handle(self, event_type: str) -> bool:
        """Check if this handler can handle the event type."""
        pass
