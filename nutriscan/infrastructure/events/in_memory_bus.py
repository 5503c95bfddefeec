"""In-memory scan event bus.

Implements the IScanEventSink port. Handlers are stored in memory and
called in subscription order; every published event is also kept in a
bounded history.
"""

from collections import deque
from typing import Awaitable, Callable, Type, TypeVar

import structlog

from nutriscan.domain.scan.events import ScanEvent

logger = structlog.get_logger(__name__)

TEvent = TypeVar("TEvent", bound=ScanEvent)

Handler = Callable[[ScanEvent], Awaitable[None]]


class InMemoryScanEventBus:
    """
    In-memory implementation of IScanEventSink.

    A handler subscribed to a base class receives every subclass event,
    so subscribing to ScanEvent observes the whole stream.

    Error handling: failed handlers log errors but don't prevent other
    handlers and never propagate into the publisher.

    Example:
        >>> bus = InMemoryScanEventBus()
        >>>
        >>> async def show_card(event: PendingCreated) -> None:
        ...     print(f"New card: {event.local_id}")
        >>>
        >>> bus.subscribe(PendingCreated, show_card)
        >>> await bus.publish(PendingCreated(...))
    """

    def __init__(self, history_size: int = 1000) -> None:
        """Initialize event bus with empty handler registry.

        Args:
            history_size: Max events kept in history
        """
        self._handlers: list[tuple[Type[ScanEvent], Handler]] = []
        self._history: deque[ScanEvent] = deque(maxlen=history_size)

    def subscribe(self, event_type: Type[TEvent], handler: Callable[[TEvent], Awaitable[None]]) -> None:
        """
        Subscribe a handler to an event type (and its subclasses).

        Args:
            event_type: Type of event to listen for
            handler: Async function to call when event is published
        """
        self._handlers.append((event_type, handler))  # type: ignore[arg-type]
        logger.debug(
            "Handler subscribed",
            event_type=event_type.__name__,
            handler=getattr(handler, "__name__", repr(handler)),
        )

    def unsubscribe(self, event_type: Type[TEvent], handler: Callable[[TEvent], Awaitable[None]]) -> bool:
        """
        Unsubscribe a handler.

        Returns:
            True if handler was found and removed, False otherwise
        """
        try:
            self._handlers.remove((event_type, handler))  # type: ignore[arg-type]
        except ValueError:
            return False
        return True

    async def publish(self, event: ScanEvent) -> None:
        """
        Publish an event to all matching handlers.

        Args:
            event: Scan event to publish
        """
        self._history.append(event)

        handlers = [h for event_type, h in self._handlers if isinstance(event, event_type)]
        logger.debug(
            "Publishing event",
            event_type=event.event_type,
            handler_count=len(handlers),
        )

        for handler in handlers:
            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    "Event handler failed",
                    event_type=event.event_type,
                    handler=getattr(handler, "__name__", repr(handler)),
                    error=str(e),
                    exc_info=True,
                )

    def history(self, event_type: Type[TEvent] = ScanEvent) -> list[TEvent]:  # type: ignore[assignment]
        """Published events of the given type, oldest first."""
        return [e for e in self._history if isinstance(e, event_type)]

    def get_handler_count(self, event_type: Type[ScanEvent]) -> int:
        """Number of handlers registered exactly for event_type."""
        return sum(1 for t, _ in self._handlers if t is event_type)

    def clear(self) -> None:
        """Remove all subscriptions and history."""
        self._handlers.clear()
        self._history.clear()
        logger.debug("All event handlers cleared")
