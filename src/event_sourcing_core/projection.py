"""
A projection is a read model kept up to date from events delivered by a message bus.

Unlike the aggregate's projector, a projection never replays a whole stream: it
handles one committed event at a time, applies the matching handler to the state
it holds for that event's aggregate, and then runs the handler's `on_complete`
(for example to write the read model somewhere).
"""
import logging
from typing import Any, Dict, Iterable, List, Mapping

from .errors import ConfigurationError
from .models import Event
from .projector import Projector
from .protocols import MessageBus, SchemaValidator


class Projection:
    def __init__(
        self,
        name: str,
        events: Iterable[Mapping[str, Any]] | None,
        bus: MessageBus | None = None,
        validator: SchemaValidator | None = None,
    ):
        if not isinstance(name, str) or not name:
            raise ConfigurationError("Projection 'name' must be a string")
        if not events:
            raise ConfigurationError("Missing 'events' property from Projection creation")

        configs = list(events)
        missing_on_complete = [
            str(config.get("name")) for config in configs if not callable(config.get("on_complete"))
        ]
        if missing_on_complete:
            raise ConfigurationError(
                f"These event handlers are missing an on_complete method: [{','.join(missing_on_complete)}]"
            )

        self.name = name
        self.projector = Projector(configs, validator)
        self.event_list: List[str] = self.projector.event_registry.names()
        self._states: Dict[str, Dict[str, Any]] = {}
        self.bus = bus
        if bus is not None:
            self.subscribe(bus)

    def subscribe(self, bus: MessageBus):
        self.bus = bus
        for name in self.event_list:
            bus.on_event(name, self.handle_event)

    def get_events(self) -> List[str]:
        return list(self.event_list)

    def get_state(self, event: Event) -> Dict[str, Any]:
        aggregate_id = event.meta.get("aggregate_id")
        return self._states.get(aggregate_id, {"aggregate_id": aggregate_id})

    def set_state(self, event: Event, state: Dict[str, Any]):
        self._states[event.meta.get("aggregate_id")] = state

    async def handle_event(self, event: Event) -> Dict[str, Any] | None:
        """Applies one event; events this projection has no handler for are ignored."""
        handler = self.projector.get_event_handler(event)
        if handler is None:
            logging.debug(f"Projection {self.name} ignoring {event.name} v{event.event_version}")
            return None

        current_state = self.get_state(event)
        new_state = await handler.execute(event.payload, current_state)
        if new_state is None:
            new_state = current_state
        self.set_state(event, new_state)

        await handler.on_complete(new_state, event)
        await self.on_complete(new_state, event)
        return new_state

    async def on_complete(self, state: Dict[str, Any], event: Event):
        """Hook run after every handled event. Override in subclasses."""
