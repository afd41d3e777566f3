"""Calculation event streaming.

Components:
- types.py: Event kinds, payload models and header names
- publisher.py: Idempotent Kafka producer for lifecycle events
- consumers.py: Handlers invoked by the background consumer
"""

from calculator_service.events.types import (
    CalculationCompletedEvent,
    CalculationStartedEvent,
    EventType,
)
from calculator_service.events.publisher import EventPublisher
from calculator_service.events.consumers import (
    CalculationLogHandler,
    DeserializationError,
    EventDispatcher,
    EventHandler,
)

__all__ = [
    # Types
    "EventType",
    "CalculationStartedEvent",
    "CalculationCompletedEvent",
    # Publisher
    "EventPublisher",
    # Consumers
    "EventHandler",
    "EventDispatcher",
    "CalculationLogHandler",
    "DeserializationError",
]
