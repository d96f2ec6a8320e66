"""
In-memory entity store.

Each store instance is an isolated dataset; services receive the instance
they work on, so tests build a fresh one per case.
"""

import copy
import logging
import threading
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from ..core.entities import AbstractEntity, Grade, User, kind_of
from ..core.enums import EntityKind
from ..core.exceptions import DuplicateEntityError, ResourceNotFoundError
from ..core.interfaces import EntityStore

logger = logging.getLogger(__name__)


class InMemoryEntityStore(EntityStore):
    """Dictionary backed store handing out deep copies."""

    def __init__(self):
        self._entities: Dict[EntityKind, Dict[str, AbstractEntity]] = {kind: {} for kind in EntityKind}
        self._grades: Dict[Tuple[str, str], Grade] = {}
        self._lock = threading.RLock()

    def get(self, kind: EntityKind, entity_id: str) -> AbstractEntity:
        entity = self.find(kind, entity_id)
        if entity is None:
            raise ResourceNotFoundError(
                f"{kind.value.capitalize()} with ID {entity_id} not found",
                error_code="not_found",
                details={'kind': kind.value, 'id': entity_id}
            )
        return entity

    def find(self, kind: EntityKind, entity_id: str) -> Optional[AbstractEntity]:
        with self._lock:
            entity = self._entities[kind].get(entity_id)
            return copy.deepcopy(entity) if entity is not None else None

    def list(self, kind: EntityKind,
             predicate: Optional[Callable[[AbstractEntity], bool]] = None) -> List[AbstractEntity]:
        with self._lock:
            entities = [copy.deepcopy(entity) for entity in self._entities[kind].values()]
        if predicate is None:
            return entities
        return [entity for entity in entities if predicate(entity)]

    def insert(self, entity: AbstractEntity) -> AbstractEntity:
        kind = kind_of(entity)
        with self._lock:
            if entity.id in self._entities[kind]:
                raise DuplicateEntityError(
                    f"{kind.value.capitalize()} with ID {entity.id} already exists",
                    error_code="duplicate",
                    details={'kind': kind.value, 'id': entity.id}
                )
            self._entities[kind][entity.id] = copy.deepcopy(entity)
        logger.debug("Inserted %s %s", kind.value, entity.id)
        return entity

    def replace(self, entity: AbstractEntity) -> AbstractEntity:
        kind = kind_of(entity)
        with self._lock:
            if entity.id not in self._entities[kind]:
                raise ResourceNotFoundError(
                    f"{kind.value.capitalize()} with ID {entity.id} not found",
                    error_code="not_found",
                    details={'kind': kind.value, 'id': entity.id}
                )
            self._entities[kind][entity.id] = copy.deepcopy(entity)
        return entity

    def find_user_by_email(self, email: str) -> Optional[User]:
        wanted = email.strip().lower()
        with self._lock:
            for user in self._entities[EntityKind.USER].values():
                if user.email.lower() == wanted:
                    return copy.deepcopy(user)
        return None

    def get_grade(self, task_id: str, student_id: str) -> Optional[Grade]:
        with self._lock:
            grade = self._grades.get((task_id, student_id))
            return copy.deepcopy(grade) if grade is not None else None

    def put_grade(self, grade: Grade) -> Grade:
        with self._lock:
            self._grades[(grade.task_id, grade.student_id)] = copy.deepcopy(grade)
        return grade

    def list_grades(self, task_id: Optional[str] = None,
                    student_id: Optional[str] = None) -> List[Grade]:
        with self._lock:
            return [
                copy.deepcopy(grade) for grade in self._grades.values()
                if (task_id is None or grade.task_id == task_id)
                and (student_id is None or grade.student_id == student_id)
            ]

    @contextmanager
    def atomic(self) -> Iterator[None]:
        with self._lock:
            yield

    def count(self, kind: EntityKind) -> int:
        with self._lock:
            return len(self._entities[kind])
