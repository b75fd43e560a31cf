"""
This module implements the Aggregate: the orchestration of command execution.

An aggregate owns a command handler registry and a projector, but no stream.
Streams are passed in per call, so one aggregate definition serves every
instance (one stream per aggregate id) of its type.

execute(cmd, stream):
  project stream + resolve handler (concurrently) -> check type -> validate
  command -> run handler -> validate events -> tag events -> append to stream
"""
import asyncio
import logging
import uuid
from typing import Any, Dict, Iterable, List, Mapping

from .errors import (
    ConfigurationError,
    HandlerNotFoundError,
    TypeMismatchError,
    ValidationError,
)
from .handlers import COMMAND, Handler, HandlerRegistry
from .models import Command, DomainUser, Event, Snapshot
from .projector import Projector
from .protocols import DomainContext, SchemaValidator
from .stream import Stream


class Aggregate:
    def __init__(
        self,
        aggregate_type: str,
        commands: Iterable[Mapping[str, Any]] | None = None,
        events: Iterable[Mapping[str, Any]] | None = None,
        user: DomainContext | None = None,
        domain: Any = None,
        validator: SchemaValidator | None = None,
    ):
        if not isinstance(aggregate_type, str) or not aggregate_type:
            raise ConfigurationError("Aggregate type must be a non-empty string")

        self.aggregate_type = aggregate_type
        self.command_registry = HandlerRegistry(COMMAND, validator)
        self.projector = Projector(validator=validator)
        self.user = user or DomainUser(display_name=f"Aggregate {aggregate_type}")
        self.domain = None

        if domain is not None:
            self.use_domain(domain)
        if commands:
            self.load_command_handlers(commands)
        if events:
            self.load_event_handlers(events)

    def use_domain(self, domain: Any) -> "Aggregate":
        self.domain = domain
        return self

    def get_new_id(self) -> str:
        return str(uuid.uuid4())

    def create_stream(
        self,
        aggregate_id: str | None = None,
        events: Iterable[Any] | None = None,
        snapshot: Snapshot | None = None,
        meta: Dict[str, Any] | None = None,
    ) -> Stream:
        return Stream(aggregate_id or self.get_new_id(), self.aggregate_type, events, snapshot, meta)

    # Command handlers

    def register_command(self, config: Mapping[str, Any]) -> Handler:
        return self.command_registry.register(config)

    def load_command_handlers(self, configs: Iterable[Mapping[str, Any]]) -> List[Handler]:
        return self.command_registry.load_handlers(configs)

    def has_command_handler(self, name: str) -> bool:
        return self.command_registry.has_handler(name)

    def get_command_version(self, name: str) -> int | None:
        return self.command_registry.get_version(name)

    async def get_command_handler(self, cmd: Command) -> Handler | None:
        return self.command_registry.get_handler(cmd)

    # Event handlers

    def register_event(self, config: Mapping[str, Any]) -> Handler:
        return self.projector.register_event(config)

    def load_event_handlers(self, configs: Iterable[Mapping[str, Any]]) -> List[Handler]:
        return self.projector.load_event_handlers(configs)

    def has_event_handler(self, name: str) -> bool:
        return self.projector.has_event_handler(name)

    def get_event_version(self, name: str) -> int | None:
        return self.projector.get_event_version(name)

    async def project(self, stream: Stream) -> Dict[str, Any]:
        return await self.projector.project(stream)

    def create_event(
        self,
        name: str,
        payload: Dict[str, Any] | None = None,
        meta: Dict[str, Any] | None = None,
        event_version: int | None = None,
    ) -> Event:
        """
        Builds an event this aggregate knows how to replay. Defaults the
        event version to the latest registered handler version for `name`.
        """
        if not self.has_event_handler(name):
            raise ValidationError(
                "Error creating event",
                [f"Unknown event name '{name}' for aggregate '{self.aggregate_type}'"],
            )
        return Event(
            name=name,
            event_version=event_version or self.get_event_version(name),
            payload=payload or {},
            meta=meta or {},
        )

    async def execute(self, cmd: Command, stream: Stream) -> Stream:
        """
        Runs `cmd` against the current state of `stream` and appends the resulting
        events as uncommitted. Every check happens before the first append, so a
        failure leaves `stream` as it was.
        """
        state, handler = await asyncio.gather(
            self.project(stream),
            self.get_command_handler(cmd),
        )
        if handler is None:
            raise HandlerNotFoundError(
                f"Could not find command handler for '{cmd.name}' "
                f"v{cmd.command_version} on aggregate {self.aggregate_type}"
            )
        if state.get("aggregate_type") != self.aggregate_type:
            raise TypeMismatchError(self.aggregate_type, state.get("aggregate_type"))

        errors = await handler.validate_message(cmd)
        if errors:
            raise ValidationError(f"Invalid command '{cmd.name}'", errors)

        events = self._as_event_list(await handler.execute(cmd, state, self))
        await self._validate_events(cmd, events)

        additional_meta = {
            "aggregate_type": self.aggregate_type,
            "command": dict(cmd.meta),
        }
        for event in events:
            event.extend_meta(additional_meta)

        stream.add_events(events)
        logging.debug(
            f"Executed {cmd.name} on {self.aggregate_type}/{stream.aggregate_id}: "
            f"{len(events)} new event(s)"
        )
        return stream

    @staticmethod
    def _as_event_list(result: Any) -> List[Any]:
        if result is None:
            return []
        if isinstance(result, (list, tuple)):
            return list(result)
        return [result]

    async def _validate_events(self, cmd: Command, events: List[Any]):
        errors = []
        for position, event in enumerate(events):
            if not isinstance(event, Event):
                errors.append(f"Item {position} is not an Event: {type(event).__name__}")
                continue
            handler = self.projector.get_event_handler(event)
            if handler is None:
                errors.append(
                    f"Unknown event '{event.name}' v{event.event_version} "
                    f"for aggregate '{self.aggregate_type}'"
                )
                continue
            errors.extend(await handler.validate_message(event))
        if errors:
            raise ValidationError(f"Command '{cmd.name}' produced invalid events", errors)
