"""
Main entry point for the LMS.
"""

import argparse
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .api.rest_api import LMSRestAPI
from .config import Settings, load_settings
from .core.enums import EntityKind
from .core.interfaces import EntityStore
from .persistence import InMemoryEntityStore, SQLiteDatabase, SQLiteEntityStore, seed_store
from .services import (
    ConcurrencyManager, ContentService, EnrollmentService, EventService,
    GradingEngine, QueryFacade, UserService
)

logger = logging.getLogger(__name__)


class LMSPlatform:
    """Builds the store and every service around it."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, settings: Optional[Settings] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self._settings = settings or load_settings(config)
        self._clock = clock
        self._initialize_platform()

    def _initialize_platform(self) -> None:
        """Initialize the platform with all services."""
        settings = self._settings
        logger.info("Initializing LMS platform (store=%s)", settings.store_type)

        self._store = self._create_store(settings)
        if settings.seed_fixtures and self._store.count(EntityKind.USER) == 0:
            seed_store(self._store, self._clock() if self._clock else None)

        self._concurrency_manager = ConcurrencyManager(default_timeout=settings.lock_timeout)
        self._event_service = EventService()

        self.user_service = UserService(self._store, self._concurrency_manager, self._event_service)
        self.enrollment_service = EnrollmentService(
            self._store, self.user_service, self._concurrency_manager, self._event_service
        )
        self.content_service = ContentService(
            self._store,
            self._concurrency_manager,
            self._event_service,
            default_task_days=settings.default_task_days,
            default_max_attempts=settings.default_max_attempts,
            clock=self._clock,
        )
        self.grading_engine = GradingEngine(
            self._store,
            self.user_service,
            self._concurrency_manager,
            self._event_service,
            enforce_deadlines=settings.enforce_deadlines,
            clock=self._clock,
        )
        self.query_facade = QueryFacade(self._store, self.grading_engine, clock=self._clock)

        self._rest_api = LMSRestAPI(
            self.user_service,
            self.enrollment_service,
            self.content_service,
            self.grading_engine,
            self.query_facade,
            self._event_service,
        )
        logger.info("LMS platform initialized")

    @staticmethod
    def _create_store(settings: Settings) -> EntityStore:
        if settings.store_type == "sqlite":
            return SQLiteEntityStore(SQLiteDatabase(settings.database_path))
        return InMemoryEntityStore()

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def store(self) -> EntityStore:
        return self._store

    @property
    def event_service(self) -> EventService:
        return self._event_service

    @property
    def app(self):
        """The FastAPI application."""
        return self._rest_api.app

    def start_rest_server(self, host: Optional[str] = None, port: Optional[int] = None) -> None:
        """Serve the REST API until interrupted."""
        import uvicorn

        host = host or self._settings.rest_host
        port = port or self._settings.rest_port
        logger.info("Starting REST server on %s:%s", host, port)
        uvicorn.run(self.app, host=host, port=port, log_level=self._settings.log_level.lower())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lms", description="LMS REST server")
    parser.add_argument("--host", help="Interface to bind (LMS_REST_HOST)")
    parser.add_argument("--port", type=int, help="Port to bind (LMS_REST_PORT)")
    parser.add_argument("--store", choices=["memory", "sqlite"], help="Entity store (LMS_STORE)")
    parser.add_argument("--database-path", help="SQLite file for --store sqlite (LMS_DATABASE_PATH)")
    parser.add_argument("--no-seed", action="store_true", help="Start without the seed dataset")
    parser.add_argument("--log-level", help="Logging level (LMS_LOG_LEVEL)")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    settings = load_settings({
        'rest_host': args.host,
        'rest_port': args.port,
        'store_type': args.store,
        'database_path': args.database_path,
        'seed_fixtures': False if args.no_seed else None,
        'log_level': args.log_level.upper() if args.log_level else None,
    })

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    platform = LMSPlatform(settings=settings)
    try:
        platform.start_rest_server()
    except KeyboardInterrupt:
        logger.info("LMS server stopped")


if __name__ == "__main__":
    main()
