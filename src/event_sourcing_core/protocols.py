"""
This module defines the abstract protocols for the collaborators the core talks to.

By using `Protocol`-based interfaces, the aggregate, stream and projector logic
is decoupled from how events are persisted, delivered or validated. Concrete
adapters (in-memory, SQLite) live in `adaptors/` and implement these contracts.
"""
from typing import Any, Awaitable, Callable, Dict, List, Protocol

from .models import Event, Snapshot, StoredStream
from .schema import SchemaResult


class EventStore(Protocol):
    """
    Durable storage for streams and snapshots.
    `append` must fail with `ConcurrencyError` when `expected_version` is not
    the latest stored version for `aggregate_id`.
    """

    async def load(self, aggregate_id: str) -> StoredStream:
        ...

    async def append(self, aggregate_id: str, events: List[Event], expected_version: int) -> int:
        ...

    async def save_snapshot(self, aggregate_id: str, snapshot: Snapshot):
        ...


EventCallback = Callable[[Event], Awaitable[Any]]


class MessageBus(Protocol):
    """
    Publish/subscribe delivery of committed events.
    The core never publishes; callers do so after a successful commit.
    """

    def on_event(self, name: str, callback: EventCallback):
        ...

    async def publish(self, event: Event):
        ...


class SchemaValidator(Protocol):
    def validate(self, payload: Any, schema: Dict[str, Any]) -> SchemaResult:
        ...


class DomainContext(Protocol):
    """Identity/audit context handed to aggregates."""
    display_name: str
