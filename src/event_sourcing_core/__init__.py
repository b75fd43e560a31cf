# event_sourcing_core package

from .models import Command, DomainUser, Event, Snapshot, StoredStream
from .errors import (
    ConcurrencyError,
    ConfigurationError,
    EventSourcingError,
    HandlerNotFoundError,
    SequencingError,
    TypeMismatchError,
    ValidationError,
)
from .handlers import COMMAND, EVENT, Handler, HandlerRegistry, MessageKind
from .schema import JsonSchemaValidator, SchemaResult, SchemaViolation
from .stream import Stream
from .projector import Projector
from .aggregate import Aggregate
from .projection import Projection
from .bus import InMemoryMessageBus
from .repository import Repository
from .adaptors import InMemoryEventStore, SQLiteEventStore, sqlite_event_store

__all__ = [
    "Aggregate",
    "COMMAND",
    "Command",
    "ConcurrencyError",
    "ConfigurationError",
    "DomainUser",
    "EVENT",
    "Event",
    "EventSourcingError",
    "Handler",
    "HandlerNotFoundError",
    "HandlerRegistry",
    "InMemoryEventStore",
    "InMemoryMessageBus",
    "JsonSchemaValidator",
    "MessageKind",
    "Projection",
    "Projector",
    "Repository",
    "SQLiteEventStore",
    "SchemaResult",
    "SchemaViolation",
    "SequencingError",
    "Snapshot",
    "StoredStream",
    "Stream",
    "TypeMismatchError",
    "ValidationError",
    "sqlite_event_store",
]
