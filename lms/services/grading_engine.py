"""
Task attempt and grading state machine.

The state of a (task, student) pair is derived from its Grade record:

    NOT_ATTEMPTED  no grade
    IN_PROGRESS    not passed, attempts < max_attempts
    EXHAUSTED      not passed, attempts >= max_attempts
    PASSED         passed (terminal)

Student attempts are only accepted in NOT_ATTEMPTED and IN_PROGRESS. The
eligibility check and the grade write happen under one per-pair lock, so
concurrent submissions cannot push ``attempts`` past ``max_attempts``.
Teachers change an outcome through ``override_grade``, which does not
consume an attempt.
"""

import copy
import logging
import threading
from collections import OrderedDict
from contextlib import ExitStack
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from ..core.entities import Grade, Task, grade_key
from ..core.enums import AttemptState, EntityKind, EventType, UserRole
from ..core.exceptions import (
    AttemptNotAllowedError, AuthorizationError, ResourceNotFoundError, ValidationError
)
from ..core.interfaces import EntityStore
from .concurrency_manager import ConcurrencyManager
from .event_service import EventService
from .user_service import UserService

logger = logging.getLogger(__name__)

OPEN_STATES = frozenset({AttemptState.NOT_ATTEMPTED, AttemptState.IN_PROGRESS})


def derive_attempt_state(grade: Optional[Grade], task: Task) -> AttemptState:
    if grade is None:
        return AttemptState.NOT_ATTEMPTED
    if grade.passed:
        return AttemptState.PASSED
    if grade.attempts >= task.max_attempts:
        return AttemptState.EXHAUSTED
    return AttemptState.IN_PROGRESS


def remaining_attempts_for(grade: Optional[Grade], task: Task) -> int:
    if grade is None:
        return task.max_attempts
    return max(0, task.max_attempts - grade.attempts)


@dataclass(frozen=True)
class TaskStatistics:
    task_id: str
    total_submissions: int
    passed: int
    pending: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'task_id': self.task_id,
            'total_submissions': self.total_submissions,
            'passed': self.passed,
            'pending': self.pending,
        }


class GradingEngine:
    """Records attempts and grades for tasks."""

    def __init__(self, store: EntityStore, user_service: UserService,
                 concurrency_manager: ConcurrencyManager,
                 event_service: Optional[EventService] = None,
                 enforce_deadlines: bool = False,
                 clock: Optional[Callable[[], datetime]] = None,
                 max_idempotency_keys: int = 10000):
        self._store = store
        self._user_service = user_service
        self._concurrency_manager = concurrency_manager
        self._event_service = event_service
        self._enforce_deadlines = enforce_deadlines
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._max_idempotency_keys = max_idempotency_keys
        # idempotency key -> ((task_id, student_id), grade recorded by the first call)
        self._idempotency: "OrderedDict[str, Tuple[Tuple[str, str], Grade]]" = OrderedDict()
        self._lock = threading.RLock()

    def get_task(self, task_id: str) -> Task:
        subsection = self._store.find(EntityKind.SUBSECTION, task_id)
        if not isinstance(subsection, Task):
            raise ResourceNotFoundError(
                f"Task with ID {task_id} not found",
                error_code="not_found",
                details={'kind': 'task', 'id': task_id}
            )
        return subsection

    def _resolve_task(self, task: Union[str, Task]) -> Task:
        return task if isinstance(task, Task) else self.get_task(task)

    def grade_for(self, student_id: str, task_id: str) -> Optional[Grade]:
        """Get the grade of a student on a task, if any."""
        return self._store.get_grade(task_id, student_id)

    def attempt_state(self, student_id: str, task: Union[str, Task]) -> AttemptState:
        task = self._resolve_task(task)
        return derive_attempt_state(self._store.get_grade(task.id, student_id), task)

    def can_attempt(self, student_id: str, task: Union[str, Task]) -> bool:
        """True while the student has neither passed nor used up their attempts."""
        return self.attempt_state(student_id, task) in OPEN_STATES

    def remaining_attempts(self, student_id: str, task: Union[str, Task]) -> int:
        task = self._resolve_task(task)
        return remaining_attempts_for(self._store.get_grade(task.id, student_id), task)

    def attempt_task(self, task_id: str, student_id: str, passed: bool,
                     feedback: Optional[str] = None,
                     idempotency_key: Optional[str] = None) -> Grade:
        """Check eligibility and record one attempt as a single step.

        A repeated ``idempotency_key`` returns the grade from the first call
        without counting another attempt.
        """
        task = self.get_task(task_id)
        self._user_service.require_role(student_id, UserRole.STUDENT)

        with ExitStack() as locks:
            # key before pair, so one key cannot record attempts for two pairs
            if idempotency_key is not None:
                locks.enter_context(self._concurrency_manager.lock(f"idempotency:{idempotency_key}"))
            locks.enter_context(self._concurrency_manager.lock(f"grade:{grade_key(task_id, student_id)}"))

            if idempotency_key is not None:
                replay = self._replay(idempotency_key, task_id, student_id)
                if replay is not None:
                    logger.info("Replayed attempt %s for task %s student %s",
                                idempotency_key, task_id, student_id)
                    return replay

            grade = self._store.get_grade(task_id, student_id)
            state = derive_attempt_state(grade, task)
            if state not in OPEN_STATES:
                logger.warning("Rejected attempt on task %s by student %s in state %s",
                               task_id, student_id, state.value)
                raise AttemptNotAllowedError(
                    f"No attempts allowed on task {task_id}: {state.value}",
                    error_code=state.value,
                    details={'task_id': task_id, 'student_id': student_id, 'state': state.value}
                )
            if self._enforce_deadlines and self._clock() >= task.deadline:
                logger.warning("Rejected late attempt on task %s by student %s", task_id, student_id)
                raise AttemptNotAllowedError(
                    f"Deadline for task {task_id} has passed",
                    error_code="past_due",
                    details={'task_id': task_id, 'student_id': student_id,
                             'deadline': task.deadline.isoformat()}
                )

            if grade is None:
                grade = Grade(task_id, student_id, passed=passed, attempts=1, feedback=feedback or None)
            else:
                grade.record_attempt(passed, feedback)
            self._store.put_grade(grade)

            if idempotency_key is not None:
                self._remember(idempotency_key, task_id, student_id, grade)

        new_state = derive_attempt_state(grade, task)
        logger.info("Task %s student %s attempt %d/%d: %s", task_id, student_id,
                    grade.attempts, task.max_attempts, new_state.value)
        self._publish_event(task_id, {
            'action': 'attempt',
            'task_id': task_id,
            'student_id': student_id,
            'passed': grade.passed,
            'attempts': grade.attempts,
            'state': new_state.value,
        })
        return grade

    def submit_grade(self, task_id: str, student_id: str, passed: bool,
                     feedback: Optional[str] = None,
                     idempotency_key: Optional[str] = None) -> Grade:
        """Record a student submission; same rules as attempt_task."""
        return self.attempt_task(task_id, student_id, passed, feedback, idempotency_key)

    def override_grade(self, task_id: str, student_id: str, passed: bool,
                       feedback: Optional[str] = None, grader_id: Optional[str] = None) -> Grade:
        """Set a student's outcome on a task without consuming an attempt.

        Allowed in any state. Creates a grade with zero attempts if the
        student never submitted.
        """
        self.get_task(task_id)
        self._user_service.require_role(student_id, UserRole.STUDENT)
        if grader_id is not None:
            grader = self._user_service.get_user(grader_id)
            if grader.role not in (UserRole.TEACHER, UserRole.ADMIN):
                raise AuthorizationError(
                    f"User {grader_id} cannot grade tasks",
                    error_code="forbidden",
                    details={'user_id': grader_id, 'role': grader.role.value}
                )

        with self._concurrency_manager.lock(f"grade:{grade_key(task_id, student_id)}"):
            grade = self._store.get_grade(task_id, student_id)
            if grade is None:
                grade = Grade(task_id, student_id, passed=passed, attempts=0,
                              feedback=feedback or None, grader_id=grader_id)
            else:
                grade.override(passed, feedback, grader_id)
            self._store.put_grade(grade)

        logger.info("Grade for task %s student %s overridden by %s: passed=%s",
                    task_id, student_id, grader_id or "system", passed)
        self._publish_event(task_id, {
            'action': 'override',
            'task_id': task_id,
            'student_id': student_id,
            'passed': passed,
            'grader_id': grader_id,
        })
        return grade

    def grades_for_student(self, student_id: str) -> List[Grade]:
        return self._store.list_grades(student_id=student_id)

    def grades_for_task(self, task_id: str) -> List[Grade]:
        return self._store.list_grades(task_id=task_id)

    def task_statistics(self, task_id: str) -> TaskStatistics:
        """Submission counts for a task."""
        self.get_task(task_id)
        grades = self.grades_for_task(task_id)
        passed = sum(1 for grade in grades if grade.passed)
        return TaskStatistics(task_id, len(grades), passed, len(grades) - passed)

    def get_statistics(self) -> Dict[str, Any]:
        grades = self._store.list_grades()
        return {
            'total_grades': len(grades),
            'passed': sum(1 for grade in grades if grade.passed),
            'total_attempts': sum(grade.attempts for grade in grades),
        }

    def _replay(self, idempotency_key: str, task_id: str, student_id: str) -> Optional[Grade]:
        with self._lock:
            entry = self._idempotency.get(idempotency_key)
        if entry is None:
            return None
        pair, grade = entry
        if pair != (task_id, student_id):
            raise ValidationError(
                f"Idempotency key {idempotency_key} was used for a different submission",
                error_code="idempotency_key_reused",
                details={'idempotency_key': idempotency_key}
            )
        return copy.deepcopy(grade)

    def _remember(self, idempotency_key: str, task_id: str, student_id: str, grade: Grade) -> None:
        with self._lock:
            self._idempotency[idempotency_key] = ((task_id, student_id), copy.deepcopy(grade))
            while len(self._idempotency) > self._max_idempotency_keys:
                self._idempotency.popitem(last=False)

    def _publish_event(self, task_id: str, event_data: Dict[str, Any]) -> None:
        if self._event_service is not None:
            self._event_service.publish(EventType.GRADING, f"task_{task_id}", event_data)
