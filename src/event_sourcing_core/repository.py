"""
This module wires aggregates to an event store and, optionally, a message bus.

It implements the commit protocol around the in-memory core: uncommitted
events are appended on condition that the store still holds the stream's
committed version; only then are they committed on the stream and published.
A concurrency conflict is resolved by reloading and re-executing the command,
never by merging.
"""
import logging
from typing import Any, Dict, List

from .aggregate import Aggregate
from .errors import ConcurrencyError, ValidationError
from .models import Command, Event, Snapshot
from .protocols import EventStore, MessageBus
from .stream import Stream


class Repository:
    def __init__(self, store: EventStore, bus: MessageBus | None = None, max_retries: int = 3):
        self.store = store
        self.bus = bus
        self.max_retries = max_retries

    async def load(self, aggregate: Aggregate, aggregate_id: str, meta: Dict[str, Any] | None = None) -> Stream:
        stored = await self.store.load(aggregate_id)
        return Stream(aggregate_id, aggregate.aggregate_type, stored.events, stored.snapshot, meta)

    async def save(self, stream: Stream) -> List[Event]:
        """Persists, commits and publishes the stream's uncommitted events."""
        pending = stream.get_uncommitted_events()
        if not pending:
            return []

        await self.store.append(stream.aggregate_id, pending, stream.get_committed_version())
        stream.commit_all_events()

        if self.bus is not None:
            for event in pending:
                await self.bus.publish(event)
        return pending

    async def execute(
        self,
        aggregate: Aggregate,
        aggregate_id: str,
        cmd: Command,
        meta: Dict[str, Any] | None = None,
    ) -> Stream:
        """Load, execute and save, retrying from a fresh load on a concurrency conflict."""
        attempt = 0
        while True:
            stream = await self.load(aggregate, aggregate_id, meta)
            await aggregate.execute(cmd, stream)
            try:
                await self.save(stream)
                return stream
            except ConcurrencyError as e:
                stream.discard_uncommitted_events()
                attempt += 1
                if attempt > self.max_retries:
                    raise
                logging.warning(f"{e}; retrying {cmd.name} ({attempt}/{self.max_retries})")

    async def snapshot(self, aggregate: Aggregate, stream: Stream) -> Snapshot:
        """Stores the projected state of a fully committed stream as a snapshot."""
        if stream.has_uncommitted_events:
            raise ValidationError(
                "Cannot snapshot stream",
                [f"Stream {stream.aggregate_id} has uncommitted events"],
            )
        state = await aggregate.project(stream)
        snapshot = Snapshot(version=stream.get_latest_version(), state=state)
        await self.store.save_snapshot(stream.aggregate_id, snapshot)
        logging.info(f"Saved snapshot of {stream.aggregate_type}/{stream.aggregate_id} at version {snapshot.version}")
        return snapshot
