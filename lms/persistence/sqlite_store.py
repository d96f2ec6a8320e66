"""
Entity store persisting JSON documents in SQLite.
"""

import json
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Iterator, List, Optional

from ..core.entities import AbstractEntity, Grade, User, entity_from_dict, kind_of
from ..core.enums import EntityKind
from ..core.exceptions import DuplicateEntityError, ResourceNotFoundError
from ..core.interfaces import EntityStore
from .database import SQLiteDatabase

logger = logging.getLogger(__name__)


class SQLiteEntityStore(EntityStore):
    """Entity store backed by a SQLiteDatabase."""

    def __init__(self, database: SQLiteDatabase):
        self._database = database
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
        query = "SELECT data FROM entities WHERE kind = ? AND id = ?"
        results = self._database.execute_query(query, (kind.value, entity_id))
        if not results:
            return None
        return entity_from_dict(kind, json.loads(results[0]['data']))

    def list(self, kind: EntityKind,
             predicate: Optional[Callable[[AbstractEntity], bool]] = None) -> List[AbstractEntity]:
        query = "SELECT data FROM entities WHERE kind = ? ORDER BY seq"
        results = self._database.execute_query(query, (kind.value,))
        entities = [entity_from_dict(kind, json.loads(row['data'])) for row in results]
        if predicate is None:
            return entities
        return [entity for entity in entities if predicate(entity)]

    def insert(self, entity: AbstractEntity) -> AbstractEntity:
        kind = kind_of(entity)
        with self._lock:
            if self.find(kind, entity.id) is not None:
                raise DuplicateEntityError(
                    f"{kind.value.capitalize()} with ID {entity.id} already exists",
                    error_code="duplicate",
                    details={'kind': kind.value, 'id': entity.id}
                )
            query = """
                INSERT INTO entities (id, kind, data, email, created_at, updated_at, version)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """
            params = (
                entity.id,
                kind.value,
                json.dumps(entity.to_dict()),
                entity.email.lower() if isinstance(entity, User) else None,
                entity.created_at.isoformat(),
                entity.updated_at.isoformat(),
                entity.version,
            )
            self._database.execute_update(query, params)
        logger.debug("Inserted %s %s", kind.value, entity.id)
        return entity

    def replace(self, entity: AbstractEntity) -> AbstractEntity:
        kind = kind_of(entity)
        query = """
            UPDATE entities
            SET data = ?, updated_at = ?, version = ?
            WHERE kind = ? AND id = ?
        """
        params = (
            json.dumps(entity.to_dict()),
            entity.updated_at.isoformat(),
            entity.version,
            kind.value,
            entity.id,
        )
        with self._lock:
            if self._database.execute_update(query, params) == 0:
                raise ResourceNotFoundError(
                    f"{kind.value.capitalize()} with ID {entity.id} not found",
                    error_code="not_found",
                    details={'kind': kind.value, 'id': entity.id}
                )
        return entity

    def find_user_by_email(self, email: str) -> Optional[User]:
        query = "SELECT data FROM entities WHERE kind = ? AND email = ?"
        results = self._database.execute_query(query, (EntityKind.USER.value, email.strip().lower()))
        if not results:
            return None
        return User.from_dict(json.loads(results[0]['data']))

    def get_grade(self, task_id: str, student_id: str) -> Optional[Grade]:
        query = "SELECT data FROM grades WHERE task_id = ? AND student_id = ?"
        results = self._database.execute_query(query, (task_id, student_id))
        if not results:
            return None
        return Grade.from_dict(json.loads(results[0]['data']))

    def put_grade(self, grade: Grade) -> Grade:
        query = """
            INSERT INTO grades (task_id, student_id, data, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (task_id, student_id) DO UPDATE SET
                data = excluded.data,
                updated_at = excluded.updated_at
        """
        params = (
            grade.task_id,
            grade.student_id,
            json.dumps(grade.to_dict()),
            datetime.now(timezone.utc).isoformat(),
        )
        with self._lock:
            self._database.execute_update(query, params)
        return grade

    def list_grades(self, task_id: Optional[str] = None,
                    student_id: Optional[str] = None) -> List[Grade]:
        clauses = []
        params = []
        if task_id is not None:
            clauses.append("task_id = ?")
            params.append(task_id)
        if student_id is not None:
            clauses.append("student_id = ?")
            params.append(student_id)
        query = "SELECT data FROM grades"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY rowid"
        results = self._database.execute_query(query, tuple(params))
        return [Grade.from_dict(json.loads(row['data'])) for row in results]

    @contextmanager
    def atomic(self) -> Iterator[None]:
        with self._lock, self._database.transaction():
            yield

    def count(self, kind: EntityKind) -> int:
        query = "SELECT COUNT(*) AS total FROM entities WHERE kind = ?"
        return self._database.execute_query(query, (kind.value,))[0]['total']
