"""
Services module containing the domain operations over an entity store.
"""

from .concurrency_manager import ConcurrencyManager
from .event_service import EventService, CallbackEventHandler
from .user_service import UserService
from .enrollment_service import EnrollmentService
from .content_service import ContentService
from .grading_engine import GradingEngine, derive_attempt_state, remaining_attempts_for
from .query_facade import QueryFacade, TaskQuery, TaskView

__all__ = [
    "ConcurrencyManager",
    "EventService",
    "CallbackEventHandler",
    "UserService",
    "EnrollmentService",
    "ContentService",
    "GradingEngine",
    "derive_attempt_state",
    "remaining_attempts_for",
    "QueryFacade",
    "TaskQuery",
    "TaskView",
]
