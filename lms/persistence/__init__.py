"""
Persistence module with the entity store implementations and seed data.
"""

from .database import SQLiteDatabase
from .memory_store import InMemoryEntityStore
from .sqlite_store import SQLiteEntityStore
from .fixtures import seed_store

__all__ = [
    "SQLiteDatabase",
    "InMemoryEntityStore",
    "SQLiteEntityStore",
    "seed_store",
]
