import logging
from collections import defaultdict
from typing import Dict, List

from .models import Event
from .protocols import EventCallback, MessageBus


class InMemoryMessageBus(MessageBus):
    """
    Delivers published events to the callbacks subscribed to their name,
    in subscription order. A failing subscriber fails the publish.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[EventCallback]] = defaultdict(list)

    def on_event(self, name: str, callback: EventCallback):
        self._subscribers[name].append(callback)

    def off_event(self, name: str, callback: EventCallback):
        if name in self._subscribers and callback in self._subscribers[name]:
            self._subscribers[name].remove(callback)
            if not self._subscribers[name]:
                del self._subscribers[name]

    def subscriber_count(self, name: str) -> int:
        return len(self._subscribers.get(name, []))

    async def publish(self, event: Event):
        callbacks = list(self._subscribers.get(event.name, []))
        logging.debug(f"Publishing {event.name} v{event.version} to {len(callbacks)} subscriber(s)")
        for callback in callbacks:
            await callback(event)
