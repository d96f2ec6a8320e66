"""
Core module containing the entity model, store interface and exceptions.
"""

from .entities import *
from .interfaces import *
from .exceptions import *
from .enums import *

__all__ = [
    # Entities
    "AbstractEntity",
    "User",
    "Course",
    "Section",
    "Subsection",
    "Lecture",
    "Literature",
    "Extra",
    "Task",
    "Grade",
    "Event",
    "grade_key",
    "parse_datetime",
    "subsection_from_dict",
    
    # Interfaces
    "EntityStore",
    "EventHandler",
    
    # Enums
    "UserRole",
    "SubsectionType",
    "EntityKind",
    "AttemptState",
    "TaskBucket",
    "EventType",
    
    # Exceptions
    "LMSException",
    "ValidationError",
    "InvalidTaskConfigError",
    "AuthorizationError",
    "ConcurrencyError",
    "ResourceNotFoundError",
    "DuplicateEntityError",
    "DuplicateEmailError",
    "AttemptNotAllowedError",
    "PersistenceError",
    "ConfigurationError",
]
