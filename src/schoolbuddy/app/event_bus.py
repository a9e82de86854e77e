import logging
from typing import Callable, Dict, List

from src.schoolbuddy.models.events import Event

logger = logging.getLogger(__name__)


class EventBus:
    """
    A simple event bus for decoupled communication between components.

    Dispatch is synchronous and happens on the caller's thread, which for this
    application is always the event-loop thread.
    """
    def __init__(self):
        """Initializes the EventBus."""
        self._subscribers: Dict[str, List[Callable[[Event], None]]] = {}

    def subscribe(self, event_type: str, callback: Callable[[Event], None]):
        """
        Subscribe a callback function to a specific event type.

        Args:
            event_type: The type of event to subscribe to.
            callback: The function to call when the event is dispatched.
        """
        self._subscribers.setdefault(event_type, []).append(callback)
        logger.debug("Subscribed %s to event '%s'", getattr(callback, "__name__", callback), event_type)

    def unsubscribe(self, event_type: str, callback: Callable[[Event], None]):
        callbacks = self._subscribers.get(event_type, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def dispatch(self, event: Event):
        """
        Dispatch an event to all subscribed callbacks.

        A failing subscriber is logged and does not prevent delivery to the others.

        Args:
            event: The Event object to dispatch.
        """
        logger.debug("Dispatching event '%s' with payload: %s", event.event_type, event.payload)
        for callback in list(self._subscribers.get(event.event_type, [])):
            try:
                callback(event)
            except Exception as exc:
                logger.error(
                    "Error in callback %s for event '%s': %s",
                    getattr(callback, "__name__", callback),
                    event.event_type,
                    exc,
                    exc_info=True,
                )
