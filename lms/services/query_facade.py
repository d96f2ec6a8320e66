"""
Read-side task listings for the dashboards.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from ..core.entities import Course, Grade, Task
from ..core.enums import AttemptState, EntityKind, TaskBucket, UserRole
from ..core.interfaces import EntityStore
from .grading_engine import GradingEngine, OPEN_STATES, derive_attempt_state, remaining_attempts_for

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskView:
    """A task joined with its course name and, for a student, their grade state."""
    task: Task
    course_name: str
    student_id: Optional[str] = None
    grade: Optional[Grade] = None
    state: Optional[AttemptState] = None

    @property
    def task_id(self) -> str:
        return self.task.id

    @property
    def deadline(self) -> datetime:
        return self.task.deadline

    @property
    def passed(self) -> bool:
        return self.state is AttemptState.PASSED

    @property
    def can_attempt(self) -> bool:
        return self.state in OPEN_STATES

    @property
    def remaining_attempts(self) -> Optional[int]:
        if self.student_id is None:
            return None
        return remaining_attempts_for(self.grade, self.task)

    def bucket(self, now: datetime) -> TaskBucket:
        if self.passed:
            return TaskBucket.COMPLETED
        if self.deadline <= now:
            return TaskBucket.PAST_DUE
        return TaskBucket.UPCOMING

    def to_dict(self) -> Dict[str, Any]:
        return {
            'task': self.task.to_dict(),
            'course_name': self.course_name,
            'student_id': self.student_id,
            'grade': self.grade.to_dict() if self.grade else None,
            'state': self.state.value if self.state else None,
            'can_attempt': self.can_attempt if self.student_id else None,
            'remaining_attempts': self.remaining_attempts,
        }


class TaskQuery:
    """Lazy, re-iterable sequence of TaskViews.

    Nothing is read from the store until the query is iterated, and every
    iteration reads afresh, so a query built before a submission reflects
    it afterwards. ``now`` is taken from the clock at iteration time.
    """

    def __init__(self, source: Callable[[], Iterable[TaskView]],
                 clock: Callable[[], datetime]):
        self._source = source
        self._clock = clock

    def __iter__(self) -> Iterator[TaskView]:
        return iter(self._source())

    def filter(self, predicate: Callable[[TaskView], bool]) -> 'TaskQuery':
        source = self._source
        return TaskQuery(lambda: (view for view in source() if predicate(view)), self._clock)

    def order_by_deadline(self, descending: bool = False) -> 'TaskQuery':
        source = self._source
        return TaskQuery(lambda: sorted(source(), key=lambda view: view.deadline, reverse=descending),
                         self._clock)

    def _bucketed(self, bucket: TaskBucket, descending: bool) -> 'TaskQuery':
        source = self._source
        clock = self._clock

        def select() -> List[TaskView]:
            now = clock()
            views = [view for view in source() if view.bucket(now) is bucket]
            return sorted(views, key=lambda view: view.deadline, reverse=descending)

        return TaskQuery(select, clock)

    def upcoming(self) -> 'TaskQuery':
        """Not passed, deadline in the future; soonest first."""
        return self._bucketed(TaskBucket.UPCOMING, descending=False)

    def completed(self) -> 'TaskQuery':
        """Passed; latest deadline first."""
        return self._bucketed(TaskBucket.COMPLETED, descending=True)

    def past_due(self) -> 'TaskQuery':
        """Not passed, deadline reached; latest deadline first."""
        return self._bucketed(TaskBucket.PAST_DUE, descending=True)

    def past(self) -> 'TaskQuery':
        """Deadline reached regardless of grades; latest deadline first."""
        clock = self._clock
        return self.filter(lambda view: view.deadline <= clock()).order_by_deadline(descending=True)

    def all(self) -> List[TaskView]:
        return list(self)

    def count(self) -> int:
        return sum(1 for _ in self)


class QueryFacade:
    """Composes store reads into task listings. Never mutates."""

    def __init__(self, store: EntityStore, grading_engine: GradingEngine,
                 clock: Optional[Callable[[], datetime]] = None):
        self._store = store
        self._grading_engine = grading_engine
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def tasks_for_student(self, student_id: str) -> TaskQuery:
        """Tasks of every course the student is enrolled in, with their grade state."""
        self._store.get(EntityKind.USER, student_id)

        def source() -> Iterator[TaskView]:
            courses = self._store.list(EntityKind.COURSE, lambda course: course.has_student(student_id))
            for course in courses:
                yield from self._views(course, student_id)

        return TaskQuery(source, self._clock)

    def tasks_for_course(self, course_id: str, student_id: Optional[str] = None) -> TaskQuery:
        """Tasks of one course, with a student's grade state if ``student_id`` is given."""
        self._store.get(EntityKind.COURSE, course_id)
        if student_id is not None:
            self._store.get(EntityKind.USER, student_id)

        def source() -> Iterator[TaskView]:
            course = self._store.find(EntityKind.COURSE, course_id)
            if course is not None:
                yield from self._views(course, student_id)

        return TaskQuery(source, self._clock)

    def tasks_for_teacher(self, teacher_id: str) -> TaskQuery:
        """Tasks of every course the teacher is assigned to."""
        self._store.get(EntityKind.USER, teacher_id)

        def source() -> Iterator[TaskView]:
            courses = self._store.list(EntityKind.COURSE, lambda course: course.has_teacher(teacher_id))
            for course in courses:
                yield from self._views(course, None)

        return TaskQuery(source, self._clock)

    def _views(self, course: Course, student_id: Optional[str]) -> Iterator[TaskView]:
        for task in self._store.tasks_for_course(course.id):
            if student_id is None:
                yield TaskView(task, course.name)
                continue
            grade = self._grading_engine.grade_for(student_id, task.id)
            yield TaskView(task, course.name, student_id, grade, derive_attempt_state(grade, task))

    def dashboard_summary(self, user_id: str) -> Dict[str, Any]:
        """Counts shown on the role's dashboard."""
        user = self._store.get(EntityKind.USER, user_id)
        if user.role is UserRole.ADMIN:
            users = self._store.list(EntityKind.USER)
            return {
                'role': user.role.value,
                'courses': self._store.count(EntityKind.COURSE),
                'teachers': sum(1 for u in users if u.role is UserRole.TEACHER),
                'students': sum(1 for u in users if u.role is UserRole.STUDENT),
            }
        if user.role is UserRole.TEACHER:
            tasks = self.tasks_for_teacher(user_id)
            return {
                'role': user.role.value,
                'courses': len(self._store.list(EntityKind.COURSE, lambda c: c.has_teacher(user_id))),
                'upcoming_tasks': tasks.upcoming().count(),
                'past_tasks': tasks.past().count(),
            }
        tasks = self.tasks_for_student(user_id)
        return {
            'role': user.role.value,
            'courses': len(self._store.list(EntityKind.COURSE, lambda c: c.has_student(user_id))),
            'upcoming_tasks': tasks.upcoming().count(),
            'completed_tasks': tasks.completed().count(),
            'past_due_tasks': tasks.past_due().count(),
        }
