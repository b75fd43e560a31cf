"""
Deterministic state derivation: folds a stream's events over its seed state
through the registered event handlers.
"""
from typing import Any, Dict, Iterable, List, Mapping

from .errors import HandlerNotFoundError
from .handlers import EVENT, Handler, HandlerRegistry
from .models import Event
from .protocols import SchemaValidator
from .stream import Stream


class Projector:
    def __init__(
        self,
        events: Iterable[Mapping[str, Any]] | None = None,
        validator: SchemaValidator | None = None,
    ):
        self.event_registry = HandlerRegistry(EVENT, validator)
        if events:
            self.load_event_handlers(events)

    def register_event(self, config: Mapping[str, Any]) -> Handler:
        return self.event_registry.register(config)

    def load_event_handlers(self, configs: Iterable[Mapping[str, Any]]) -> List[Handler]:
        return self.event_registry.load_handlers(configs)

    def get_event_handler(self, event: Event) -> Handler | None:
        return self.event_registry.get_handler(event)

    def has_event_handler(self, name: str) -> bool:
        return self.event_registry.has_handler(name)

    def get_event_version(self, name: str) -> int | None:
        return self.event_registry.get_version(name)

    def get_event_handlers(self) -> List[Handler]:
        return self.event_registry.get_handlers()

    async def project(self, stream: Stream) -> Dict[str, Any]:
        """
        Replays every event of `stream`, committed and uncommitted, in order.
        A handler returning None keeps the current state. An event without a
        matching handler makes the stream unreplayable and raises.
        """
        state = stream.get_current_state()
        for event in stream.get_events():
            handler = self.get_event_handler(event)
            if handler is None:
                raise HandlerNotFoundError(
                    f"Could not find event handler for {event.name} version {event.event_version}"
                )
            new_state = await handler.execute(event.payload, state)
            if new_state is not None:
                state = new_state
        return state
