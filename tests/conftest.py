# tests/conftest.py

from datetime import datetime, timedelta, timezone

import pytest

from lms.persistence import InMemoryEntityStore, seed_store
from lms.services import (
    ConcurrencyManager, ContentService, EnrollmentService, EventService,
    GradingEngine, QueryFacade, UserService
)

FIXED_NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock passed to services in place of the wall clock."""

    def __init__(self, now=FIXED_NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def empty_store():
    return InMemoryEntityStore()


@pytest.fixture
def store(clock):
    return seed_store(InMemoryEntityStore(), clock())


@pytest.fixture
def concurrency_manager():
    return ConcurrencyManager(default_timeout=5.0)


@pytest.fixture
def event_service():
    return EventService()


@pytest.fixture
def user_service(store, concurrency_manager, event_service):
    return UserService(store, concurrency_manager, event_service)


@pytest.fixture
def enrollment_service(store, user_service, concurrency_manager, event_service):
    return EnrollmentService(store, user_service, concurrency_manager, event_service)


@pytest.fixture
def content_service(store, concurrency_manager, event_service, clock):
    return ContentService(store, concurrency_manager, event_service, clock=clock)


@pytest.fixture
def grading_engine(store, user_service, concurrency_manager, event_service, clock):
    return GradingEngine(store, user_service, concurrency_manager, event_service, clock=clock)


@pytest.fixture
def query_facade(store, grading_engine, clock):
    return QueryFacade(store, grading_engine, clock=clock)


@pytest.fixture
def section(content_service):
    """A fresh section in seed course 1."""
    return content_service.add_section("1", "Week 3: Recursion")


@pytest.fixture
def make_task(content_service, section, clock):
    def _make_task(max_attempts=2, days=1, name="Recursion Quiz"):
        return content_service.add_subsection(
            section.id, name, "task",
            deadline=clock() + timedelta(days=days), max_attempts=max_attempts,
        )
    return _make_task
