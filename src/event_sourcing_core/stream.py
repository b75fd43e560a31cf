"""
This module implements the in-memory event stream of a single aggregate instance.

A stream separates events known to be durable (`events`) from events produced
by the current operation but not yet persisted (`uncommitted_events`). The
caller persists the uncommitted events through an event store and only then
calls `commit_all_events`; on failure it discards them and reloads.
"""
import copy
import logging
from typing import Any, Dict, Iterable, List

from .errors import ConfigurationError, SequencingError, ValidationError
from .models import Event, Snapshot


def _coerce_event(raw: Any) -> Event:
    if isinstance(raw, Event):
        if raw.version is None:
            raise ValidationError("Malformed event: no version number")
        return raw
    if isinstance(raw, dict):
        if raw.get("version") is None:
            raise ValidationError("Malformed event: no version number")
        return Event.model_validate(raw)
    raise TypeError("Stored events must be Event objects or dicts")


# Stamped on every event by the stream and the aggregate; stream metadata may not set them.
RESERVED_META_KEYS = ("aggregate_id", "aggregate_type", "command")


def _trim_events_before_snapshot(snapshot: Snapshot | None, events: List[Event]) -> List[Event]:
    snapshot_version = snapshot.version if snapshot else 0
    return [event for event in events if event.version > snapshot_version]


class Stream:
    """
    Ordered, versioned event log for one aggregate instance, plus an optional snapshot.
    Versions are contiguous integers starting right after the snapshot version.
    Not safe for concurrent mutation.
    """

    def __init__(
        self,
        aggregate_id: str,
        aggregate_type: str,
        events: Iterable[Any] | None = None,
        snapshot: Snapshot | Dict[str, Any] | None = None,
        meta: Dict[str, Any] | None = None,
    ):
        if not aggregate_id:
            raise ConfigurationError("Missing aggregate_id from stream creation")
        if not aggregate_type:
            raise ConfigurationError("Missing aggregate_type from stream creation")
        reserved = [key for key in RESERVED_META_KEYS if key in (meta or {})]
        if reserved:
            raise ConfigurationError(f"Stream metadata may not set reserved keys: [{','.join(reserved)}]")

        self.aggregate_id = aggregate_id
        self.aggregate_type = aggregate_type
        self.snapshot = Snapshot.model_validate(snapshot) if isinstance(snapshot, dict) else snapshot
        self.meta: Dict[str, Any] = dict(meta or {})
        self.events: List[Event] = []
        self.uncommitted_events: List[Event] = []

        stored = [_coerce_event(raw) for raw in (events or [])]
        stored = _trim_events_before_snapshot(self.snapshot, stored)
        stored.sort(key=lambda event: event.version)
        self.add_events(stored)
        self.commit_all_events()
        logging.debug(
            f"Loaded stream {aggregate_type}/{aggregate_id} at version {self.get_committed_version()}"
        )

    def add_event(self, event: Event) -> Event:
        """
        Appends `event` as uncommitted. An event without a positive version gets the
        next one; an explicit version must equal `expected_next_version()`.
        """
        if not isinstance(event, Event):
            raise TypeError("All items in events list must be Event objects")

        next_version = self.expected_next_version()
        if event.version is None or event.version <= 0:
            event.version = next_version
        elif event.version != next_version:
            raise SequencingError(next_version, event.version)

        event.meta = {
            **event.meta,
            **self.meta,
            "aggregate_id": self.aggregate_id,
            "aggregate_type": self.aggregate_type,
        }
        self.uncommitted_events.append(event)
        return event

    def add_events(self, events: Event | Iterable[Event]) -> "Stream":
        """
        Adds events in order. A failure part way leaves the earlier events of the
        batch appended; callers treat it as a failed batch and discard the stream.
        """
        if isinstance(events, Event):
            events = [events]
        for event in events:
            self.add_event(event)
        return self

    def expected_next_version(self) -> int:
        if self.uncommitted_events:
            return self.uncommitted_events[-1].version + 1
        if self.events:
            return self.events[-1].version + 1
        if self.snapshot and self.snapshot.version:
            return self.snapshot.version + 1
        return 1

    def get_events(self, after_version: int = 0) -> List[Event]:
        """Committed then uncommitted events with a version greater than `after_version`."""
        return [
            event
            for event in self.events + self.uncommitted_events
            if event.version > after_version
        ]

    def get_uncommitted_events(self) -> List[Event]:
        return list(self.uncommitted_events)

    @property
    def has_uncommitted_events(self) -> bool:
        return bool(self.uncommitted_events)

    def get_snapshot(self) -> Snapshot | None:
        return self.snapshot

    def get_current_state(self) -> Dict[str, Any]:
        """Seed state for projection: identity fields overlaid with a copy of the snapshot state."""
        state = {
            "aggregate_id": self.aggregate_id,
            "aggregate_type": self.aggregate_type,
        }
        if self.snapshot and self.snapshot.state:
            state.update(copy.deepcopy(self.snapshot.state))
        return state

    def get_committed_version(self) -> int:
        """The version an event store is expected to hold for this aggregate."""
        if self.events:
            return self.events[-1].version
        return self.snapshot.version if self.snapshot else 0

    def get_latest_version(self) -> int:
        snapshot_version = self.snapshot.version if self.snapshot else 0
        event_version = self.events[-1].version if self.events else 0
        return max(snapshot_version, event_version)

    def commit_all_events(self) -> "Stream":
        """Marks every uncommitted event as persisted."""
        if self.uncommitted_events:
            self.events = self.events + self.uncommitted_events
            self.uncommitted_events = []
        return self

    def discard_uncommitted_events(self) -> List[Event]:
        discarded = self.uncommitted_events
        self.uncommitted_events = []
        return discarded

    def extend_events(self, ext: Dict[str, Any] | None = None) -> "Stream":
        """Merges `ext` into the metadata of every uncommitted event."""
        for event in self.uncommitted_events:
            event.extend_meta(ext or {})
        return self

    def __repr__(self) -> str:
        return (
            f"Stream({self.aggregate_type}/{self.aggregate_id}, "
            f"committed={len(self.events)}, uncommitted={len(self.uncommitted_events)})"
        )
