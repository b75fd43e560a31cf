"""
In-memory implementation of the `EventStore` protocol, for development and tests.
Events are copied on the way in and out, so callers never share instances with the store.
"""
from typing import Dict, List

from ..errors import ConcurrencyError, SequencingError
from ..models import Event, Snapshot, StoredStream
from ..protocols import EventStore


class InMemoryEventStore(EventStore):
    def __init__(self):
        self._streams: Dict[str, List[Event]] = {}
        self._snapshots: Dict[str, Snapshot] = {}

    def stream_version(self, aggregate_id: str) -> int:
        events = self._streams.get(aggregate_id)
        if events:
            return events[-1].version
        snapshot = self._snapshots.get(aggregate_id)
        return snapshot.version if snapshot else 0

    async def load(self, aggregate_id: str) -> StoredStream:
        snapshot = self._snapshots.get(aggregate_id)
        return StoredStream(
            events=[event.model_copy(deep=True) for event in self._streams.get(aggregate_id, [])],
            snapshot=snapshot.model_copy(deep=True) if snapshot else None,
        )

    async def append(self, aggregate_id: str, events: List[Event], expected_version: int) -> int:
        current_version = self.stream_version(aggregate_id)
        if current_version != expected_version:
            raise ConcurrencyError(aggregate_id, expected_version, current_version)

        for i, event in enumerate(events):
            if event.version != current_version + i + 1:
                raise SequencingError(current_version + i + 1, event.version)

        self._streams.setdefault(aggregate_id, []).extend(
            event.model_copy(deep=True) for event in events
        )
        return current_version + len(events)

    async def save_snapshot(self, aggregate_id: str, snapshot: Snapshot):
        existing = self._snapshots.get(aggregate_id)
        if existing is None or snapshot.version >= existing.version:
            self._snapshots[aggregate_id] = snapshot.model_copy(deep=True)
