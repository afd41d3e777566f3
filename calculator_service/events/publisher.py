"""Kafka publisher for calculation lifecycle events.

The producer runs idempotent with ``acks="all"``: retried sends are
deduplicated by the broker and a send only resolves once every in-sync
replica has the record. Each record is keyed by the operation id so the
Started and Completed events of one request share a partition.

Publish methods raise on transport failure; callers decide how to
isolate the failure (see ``services.side_effects.best_effort``).
"""

import asyncio
import logging
import time

from aiokafka import AIOKafkaProducer

from calculator_service.config import Settings
from calculator_service.events.types import (
    EVENT_TYPE_HEADER,
    TIMESTAMP_HEADER,
    CalculationCompletedEvent,
    CalculationStartedEvent,
    EventType,
)

logger = logging.getLogger(__name__)


def build_headers(event_type: EventType) -> list[tuple[str, bytes]]:
    """Message headers: event kind and publish time in epoch milliseconds."""
    return [
        (EVENT_TYPE_HEADER, event_type.value.encode("utf-8")),
        (TIMESTAMP_HEADER, str(int(time.time() * 1000)).encode("utf-8")),
    ]


class EventPublisher:
    """Publishes CalculationStarted and CalculationCompleted events."""

    def __init__(
        self,
        settings: Settings,
        producer: AIOKafkaProducer | None = None,
    ) -> None:
        """Initialize the publisher.

        Args:
            settings: Application settings (broker address, topics, timeouts)
            producer: Pre-built producer, mainly for tests
        """
        self.settings = settings
        self.started_topic = settings.KAFKA_TOPIC_CALCULATION_STARTED
        self.completed_topic = settings.KAFKA_TOPIC_CALCULATION_COMPLETED
        self._producer = producer
        self._owns_producer = producer is None
        self._started = False
        self._start_lock = asyncio.Lock()

    @property
    def producer(self) -> AIOKafkaProducer:
        """Lazy-initialize the Kafka producer."""
        if self._producer is None:
            self._producer = AIOKafkaProducer(
                bootstrap_servers=self.settings.KAFKA_BOOTSTRAP_SERVERS,
                client_id=f"{self.settings.KAFKA_CLIENT_ID}-producer",
                acks="all",
                enable_idempotence=True,
                request_timeout_ms=self.settings.KAFKA_REQUEST_TIMEOUT_MS,
                compression_type=self.settings.KAFKA_COMPRESSION_TYPE,
            )
        return self._producer

    async def start(self) -> None:
        """Connect the producer to the cluster.

        Concurrent callers share a single bootstrap.
        """
        if self._started:
            return
        async with self._start_lock:
            if self._started:
                return
            try:
                await self.producer.start()
            except Exception:
                # A producer that failed to bootstrap is not restartable
                if self._owns_producer:
                    self._producer = None
                raise
            self._started = True
        logger.info(
            "Kafka producer started",
            extra={"bootstrap_servers": self.settings.KAFKA_BOOTSTRAP_SERVERS},
        )

    async def publish_started(self, event: CalculationStartedEvent) -> None:
        """Publish a CalculationStarted event.

        Raises:
            KafkaError: If the record is not acknowledged within the timeout
        """
        await self._send(
            self.started_topic, EventType.CALCULATION_STARTED, event
        )

    async def publish_completed(self, event: CalculationCompletedEvent) -> None:
        """Publish a CalculationCompleted event.

        Raises:
            KafkaError: If the record is not acknowledged within the timeout
        """
        await self._send(
            self.completed_topic, EventType.CALCULATION_COMPLETED, event
        )

    async def _send(
        self,
        topic: str,
        event_type: EventType,
        event: CalculationStartedEvent,
    ) -> None:
        await self.start()
        try:
            metadata = await self.producer.send_and_wait(
                topic,
                value=event.to_json(),
                key=event.operation_id.encode("utf-8"),
                headers=build_headers(event_type),
            )
        except Exception as e:
            logger.error(
                f"Failed to send {event_type.value} event to Kafka",
                extra={
                    "topic": topic,
                    "operation_id": event.operation_id,
                    "error": str(e),
                },
            )
            raise

        logger.info(
            f"{event_type.value} event sent to Kafka",
            extra={
                "topic": metadata.topic,
                "partition": metadata.partition,
                "offset": metadata.offset,
                "operation_id": event.operation_id,
            },
        )

    async def close(self) -> None:
        """Flush pending records and stop the producer."""
        if self._producer is not None and self._started:
            try:
                await self._producer.flush()
            finally:
                await self._producer.stop()
                self._started = False
                logger.info("Kafka producer stopped")
