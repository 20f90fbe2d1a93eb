"""
Event Publisher

Fans export job events out to side-effect handlers (logging, notification
hooks) after the orchestrator and runner have persisted a transition.
"""

import logging
from collections import defaultdict
from threading import Lock
from typing import Callable, DefaultDict, List, Type

from export_engine.domain.events import DomainEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[DomainEvent], None]


def _handler_name(handler: EventHandler) -> str:
    return getattr(handler, "__name__", repr(handler))


class EventPublisher:
    """
    Routes each event to the handlers subscribed to its concrete class,
    then to the catch-all handlers subscribed to DomainEvent.

    A handler that raises is logged and skipped; the job transition that
    produced the event has already been saved and must not be undone by a
    broken side effect.
    """

    def __init__(self):
        self._subscriptions: DefaultDict[Type[DomainEvent], List[EventHandler]] = defaultdict(list)
        self._lock = Lock()

    def subscribe(self, event_type: Type[DomainEvent], handler: EventHandler) -> None:
        """
        Attach a handler to an event class.

        Example:
            publisher.subscribe(JobCompletedEvent, notify_owner)
        """
        with self._lock:
            self._subscriptions[event_type].append(handler)
        logger.debug(f"{_handler_name(handler)} subscribed to {event_type.__name__}")

    def _handlers_for(self, event: DomainEvent) -> List[EventHandler]:
        event_type = type(event)
        with self._lock:
            matched = list(self._subscriptions.get(event_type, ()))
            if event_type is not DomainEvent:
                matched += self._subscriptions.get(DomainEvent, ())
        return matched

    def publish(self, event: DomainEvent) -> None:
        handlers = self._handlers_for(event)
        if not handlers:
            logger.debug(f"{type(event).__name__} for job {event.aggregate_id} has no subscribers")
            return

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    f"{_handler_name(handler)} failed on {type(event).__name__} "
                    f"for job {event.aggregate_id}: {e}",
                    exc_info=True,
                )

    def clear_handlers(self) -> None:
        with self._lock:
            self._subscriptions.clear()
