"""Handlers for consumed calculation events.

Event Flow:
    Kafka record → EventDispatcher.dispatch() → deserialize by eventType
                                                      ↓
                                      [CalculationLogHandler, custom handlers]

Handlers are the business extension point of the background consumer.
They must be idempotent: delivery is at-least-once, so the same event
can be handled more than once. Unlike publishing, handler failures are
NOT isolated: they propagate so the consumer leaves the record
uncommitted.
"""

import logging
from abc import ABC, abstractmethod

from pydantic import ValidationError

from calculator_service.events.types import (
    CalculationCompletedEvent,
    CalculationStartedEvent,
    EventType,
)

logger = logging.getLogger(__name__)

CalculationEvent = CalculationStartedEvent | CalculationCompletedEvent

EVENT_MODELS: dict[EventType, type[CalculationStartedEvent]] = {
    EventType.CALCULATION_STARTED: CalculationStartedEvent,
    EventType.CALCULATION_COMPLETED: CalculationCompletedEvent,
}


class DeserializationError(Exception):
    """A record payload that does not match its declared event type."""

    def __init__(self, event_type: EventType, reason: str) -> None:
        self.event_type = event_type
        self.reason = reason
        super().__init__(f"Failed to deserialize {event_type.value}: {reason}")


def deserialize_event(event_type: EventType, payload: bytes | str | None) -> CalculationEvent:
    """Parse a record payload into the event model for ``event_type``.

    Raises:
        DeserializationError: Empty, malformed or schema-violating payload
    """
    if payload is None or len(payload) == 0:
        raise DeserializationError(event_type, "empty payload")
    model = EVENT_MODELS[event_type]
    try:
        return model.model_validate_json(payload)
    except (ValidationError, ValueError) as e:
        raise DeserializationError(event_type, str(e)) from e


# -----------------------------------------------------------------------------
# Handler Base Class
# -----------------------------------------------------------------------------


class EventHandler(ABC):
    """Abstract base class for calculation event handlers."""

    @abstractmethod
    def handles(self, event_type: EventType) -> bool:
        """Check if this handler handles the given event type."""

    @abstractmethod
    async def process(self, event_type: EventType, event: CalculationEvent) -> None:
        """Process a deserialized event.

        Raises:
            Exception: Any failure; the record will not be committed
        """


class CalculationLogHandler(EventHandler):
    """Default handler: records each event in the service log.

    This is where status tracking, notifications or analytics would hook in.
    """

    def handles(self, event_type: EventType) -> bool:
        return event_type in EVENT_MODELS

    async def process(self, event_type: EventType, event: CalculationEvent) -> None:
        if isinstance(event, CalculationCompletedEvent):
            logger.info(
                f"Calculation completed for operation {event.operation_id}",
                extra={
                    "operation_id": event.operation_id,
                    "success": event.success,
                    "result": event.result,
                    "execution_time_ms": event.execution_time_ms,
                    "cache_hit": event.cache_hit,
                },
            )
            return

        logger.info(
            f"Calculation started for operation {event.operation_id}: "
            f"{event.operation}({event.x}, {event.y})",
            extra={"operation_id": event.operation_id, "user_id": event.user_id},
        )


# -----------------------------------------------------------------------------
# Event Dispatcher - Routes records to handlers by eventType header
# -----------------------------------------------------------------------------


class EventDispatcher:
    """Routes consumed records to registered handlers."""

    def __init__(self, handlers: list[EventHandler] | None = None) -> None:
        """Initialize the dispatcher.

        Args:
            handlers: Handlers to register (default: CalculationLogHandler)
        """
        self._handlers: list[EventHandler] = (
            list(handlers) if handlers is not None else [CalculationLogHandler()]
        )

    def register(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    async def dispatch(self, event_type_header: str | None, payload: bytes | None) -> bool:
        """Deserialize and hand a record to every interested handler.

        Args:
            event_type_header: Value of the ``eventType`` header, if any
            payload: Raw record value

        Returns:
            True if the record was handled, False for an unknown event type

        Raises:
            DeserializationError: Payload does not match the event type
            Exception: Any handler failure
        """
        try:
            event_type = EventType(event_type_header)
        except ValueError:
            logger.warning(
                f"Unknown event type: {event_type_header}",
                extra={"event_type": event_type_header},
            )
            return False

        try:
            event = deserialize_event(event_type, payload)
        except DeserializationError as e:
            logger.error(
                f"Failed to deserialize {event_type.value}",
                extra={"event_type": event_type.value, "reason": e.reason},
            )
            raise

        for handler in self._handlers:
            if handler.handles(event_type):
                await handler.process(event_type, event)
        return True
