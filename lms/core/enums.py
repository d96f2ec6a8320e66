"""
Enumerations and constants for the LMS.
"""

from enum import Enum


class UserRole(Enum):
    """Roles a user can hold."""
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"


class SubsectionType(Enum):
    """Kinds of content inside a section."""
    LECTURE = "lecture"
    LITERATURE = "literature"
    TASK = "task"
    EXTRA = "extra"


class EntityKind(Enum):
    """Entity collections held by a store."""
    USER = "user"
    COURSE = "course"
    SECTION = "section"
    SUBSECTION = "subsection"


class AttemptState(Enum):
    """Derived state of a (task, student) pair."""
    NOT_ATTEMPTED = "not_attempted"
    IN_PROGRESS = "in_progress"
    EXHAUSTED = "exhausted"
    PASSED = "passed"


class TaskBucket(Enum):
    """Dashboard classification of a task for one student."""
    UPCOMING = "upcoming"
    COMPLETED = "completed"
    PAST_DUE = "past_due"


class EventType(Enum):
    """Types of events in the system."""
    USER = "user"
    ENROLLMENT = "enrollment"
    CONTENT = "content"
    GRADING = "grading"
