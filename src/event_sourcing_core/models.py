"""
This module defines the core data models for the event sourcing system using Pydantic.
These models are the in-memory contract between aggregates, streams and the
external collaborators (event stores, message buses) that persist and deliver them.
"""
from pydantic import BaseModel, Field
from typing import Any, Dict, List


class Event(BaseModel):
    name: str
    event_version: int = 1  # Schema/handler version of the event type
    payload: Dict[str, Any] = Field(default_factory=dict)
    meta: Dict[str, Any] = Field(default_factory=dict)
    version: int | None = None  # Stream sequence number, assigned on append

    def extend_meta(self, ext: Dict[str, Any]) -> "Event":
        """Merges `ext` into the event metadata. Only valid before commit."""
        self.meta = {**self.meta, **ext}
        return self


class Command(BaseModel):
    name: str
    command_version: int | None = None  # None resolves to the latest handler
    payload: Dict[str, Any] | None = None
    meta: Dict[str, Any] = Field(default_factory=dict)


class Snapshot(BaseModel):
    version: int
    state: Dict[str, Any] = Field(default_factory=dict)


class StoredStream(BaseModel):
    """The raw data an event store hands back for one aggregate instance."""
    events: List[Event] = Field(default_factory=list)
    snapshot: Snapshot | None = None


class DomainUser(BaseModel):
    """Identity/audit context injected into aggregates. Not read by core algorithms."""
    display_name: str
    domain: Any = None
