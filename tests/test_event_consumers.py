"""Tests for event deserialization and handler dispatch.

These tests exercise the handler layer without a Kafka broker.
"""

import json
import math

import pytest

from calculator_service.events.consumers import (
    CalculationLogHandler,
    DeserializationError,
    EventDispatcher,
    EventHandler,
    deserialize_event,
)
from calculator_service.events.types import (
    CalculationCompletedEvent,
    CalculationStartedEvent,
    EventType,
)


class RecordingHandler(EventHandler):
    """Handler that remembers what it processed."""

    def __init__(self, event_types=None, error=None):
        self.event_types = set(event_types or EventType)
        self.error = error
        self.processed = []

    def handles(self, event_type):
        return event_type in self.event_types

    async def process(self, event_type, event):
        if self.error is not None:
            raise self.error
        self.processed.append((event_type, event))


def started_payload(**overrides) -> bytes:
    event = CalculationStartedEvent(operation_id="Add", operation="Add", x=10.0, y=5.0)
    payload = json.loads(event.to_json())
    payload.update(overrides)
    return json.dumps(payload).encode()


class TestEventTypes:
    """Test event type definitions."""

    def test_all_event_types_defined(self):
        """Header values match the event kinds on the wire."""
        assert EventType.CALCULATION_STARTED == "CalculationStarted"
        assert EventType.CALCULATION_COMPLETED == "CalculationCompleted"


class TestDeserializeEvent:
    """Test payload parsing."""

    def test_started_payload(self):
        event = deserialize_event(EventType.CALCULATION_STARTED, started_payload())

        assert isinstance(event, CalculationStartedEvent)
        assert event.operation_id == "Add"
        assert event.x == 10.0

    def test_completed_payload(self):
        payload = CalculationCompletedEvent(
            operation_id="Divide", operation="Divide", x=10.0, y=0.0,
            success=False, error="Cannot perform division by zero",
        ).to_json()

        event = deserialize_event(EventType.CALCULATION_COMPLETED, payload)

        assert isinstance(event, CalculationCompletedEvent)
        assert event.success is False
        assert event.result is None

    def test_overflow_result_read_back(self):
        """Infinite results written by the publisher are consumable."""
        payload = CalculationCompletedEvent(
            operation_id="Multiply", operation="Multiply", x=1e308, y=10.0,
            result=float("inf"), success=True,
        ).to_json()

        event = deserialize_event(EventType.CALCULATION_COMPLETED, payload)

        assert event.success is True
        assert math.isinf(event.result)

    @pytest.mark.parametrize("payload", [None, b"", b"{not json", b'{"operation": "Add"}'])
    def test_invalid_payloads(self, payload):
        """Empty, malformed and incomplete payloads are rejected."""
        with pytest.raises(DeserializationError) as exc_info:
            deserialize_event(EventType.CALCULATION_STARTED, payload)

        assert exc_info.value.event_type is EventType.CALCULATION_STARTED


class TestEventDispatcher:
    """Test event dispatcher functionality."""

    def test_dispatcher_has_default_handler(self):
        """Verify dispatcher initializes with the log handler."""
        dispatcher = EventDispatcher()
        handler_names = [h.__class__.__name__ for h in dispatcher._handlers]

        assert handler_names == ["CalculationLogHandler"]

    def test_log_handler_handles_all_events(self):
        handler = CalculationLogHandler()

        assert handler.handles(EventType.CALCULATION_STARTED)
        assert handler.handles(EventType.CALCULATION_COMPLETED)

    @pytest.mark.asyncio
    async def test_dispatch_to_interested_handlers(self):
        """Only handlers that declare the event type receive it."""
        started_only = RecordingHandler([EventType.CALCULATION_STARTED])
        completed_only = RecordingHandler([EventType.CALCULATION_COMPLETED])
        dispatcher = EventDispatcher([started_only, completed_only])

        handled = await dispatcher.dispatch("CalculationStarted", started_payload())

        assert handled is True
        assert len(started_only.processed) == 1
        assert completed_only.processed == []

    @pytest.mark.asyncio
    async def test_register_handler(self):
        handler = RecordingHandler()
        dispatcher = EventDispatcher([])
        dispatcher.register(handler)

        await dispatcher.dispatch("CalculationStarted", started_payload())

        assert len(handler.processed) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("header", [None, "", "TaskCreated"])
    async def test_unknown_event_type_skipped(self, header):
        """Unknown kinds are reported as unhandled, not raised."""
        handler = RecordingHandler()
        dispatcher = EventDispatcher([handler])

        assert await dispatcher.dispatch(header, started_payload()) is False
        assert handler.processed == []

    @pytest.mark.asyncio
    async def test_deserialization_error_raised(self):
        handler = RecordingHandler()
        dispatcher = EventDispatcher([handler])

        with pytest.raises(DeserializationError):
            await dispatcher.dispatch("CalculationStarted", b"garbage")
        assert handler.processed == []

    @pytest.mark.asyncio
    async def test_handler_error_propagates(self):
        """Handler failures are not swallowed."""
        dispatcher = EventDispatcher([RecordingHandler(error=RuntimeError("boom"))])

        with pytest.raises(RuntimeError, match="boom"):
            await dispatcher.dispatch("CalculationStarted", started_payload())

    @pytest.mark.asyncio
    async def test_default_handler_processes_both_kinds(self):
        dispatcher = EventDispatcher()
        completed = CalculationCompletedEvent(
            operation_id="Add", operation="Add", x=1.0, y=2.0, result=3.0, success=True
        ).to_json()

        assert await dispatcher.dispatch("CalculationStarted", started_payload()) is True
        assert await dispatcher.dispatch("CalculationCompleted", completed) is True
