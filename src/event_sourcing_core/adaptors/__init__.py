from .memory import InMemoryEventStore
from .sqlite import SQLiteEventStore, sqlite_event_store

__all__ = ["InMemoryEventStore", "SQLiteEventStore", "sqlite_event_store"]
