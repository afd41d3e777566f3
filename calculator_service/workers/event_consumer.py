"""Background consumer for calculation lifecycle events.

State machine:

    WAITING_FOR_BROKER → SUBSCRIBED → POLLING ⇄ PROCESSING_MESSAGE
                                         ⇅
        BACKOFF_TOPIC_MISSING | BACKOFF_BROKER_DOWN | BACKOFF_GENERIC_ERROR

    STOPPED is terminal (stop requested, task cancelled or fatal error).

Offsets are committed manually, one record at a time, only after the
record's handlers return. A record whose handling fails stays
uncommitted: the consumer seeks back to it and retries after a backoff,
so later records on its partition are never committed past it. The same
record is redelivered to the group after a restart or rebalance
(at-least-once). The stop signal is checked once per poll, and a poll
blocks for at most ``poll_timeout_ms``.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from enum import Enum
from typing import Any

from aiokafka import AIOKafkaConsumer, TopicPartition
from aiokafka.admin import AIOKafkaAdminClient
from aiokafka.errors import (
    KafkaConnectionError,
    KafkaTimeoutError,
    NodeNotReadyError,
    RequestTimedOutError,
    UnknownTopicOrPartitionError,
)

from calculator_service.config import Settings
from calculator_service.events.consumers import DeserializationError, EventDispatcher
from calculator_service.events.types import EVENT_TYPE_HEADER

logger = logging.getLogger(__name__)


class ConsumerState(str, Enum):
    """Lifecycle state of the background consumer."""

    CREATED = "created"
    WAITING_FOR_BROKER = "waiting_for_broker"
    SUBSCRIBED = "subscribed"
    POLLING = "polling"
    PROCESSING_MESSAGE = "processing_message"
    BACKOFF_TOPIC_MISSING = "backoff_topic_missing"
    BACKOFF_BROKER_DOWN = "backoff_broker_down"
    BACKOFF_GENERIC_ERROR = "backoff_generic_error"
    STOPPED = "stopped"


class ErrorClass(str, Enum):
    """Consume-time error classes, each with its own backoff."""

    TOPIC_MISSING = "topic_missing"
    BROKER_DOWN = "broker_down"
    GENERIC = "generic"


BACKOFF_SECONDS: dict[ErrorClass, float] = {
    ErrorClass.TOPIC_MISSING: 10.0,
    ErrorClass.BROKER_DOWN: 10.0,
    ErrorClass.GENERIC: 2.0,
}

BACKOFF_STATES: dict[ErrorClass, ConsumerState] = {
    ErrorClass.TOPIC_MISSING: ConsumerState.BACKOFF_TOPIC_MISSING,
    ErrorClass.BROKER_DOWN: ConsumerState.BACKOFF_BROKER_DOWN,
    ErrorClass.GENERIC: ConsumerState.BACKOFF_GENERIC_ERROR,
}

TOPIC_MISSING_ERRORS: tuple[type[BaseException], ...] = (UnknownTopicOrPartitionError,)

# OSError covers ConnectionError and the builtin TimeoutError
BROKER_DOWN_ERRORS: tuple[type[BaseException], ...] = (
    KafkaConnectionError,
    NodeNotReadyError,
    RequestTimedOutError,
    KafkaTimeoutError,
    OSError,
)


def classify_error(error: BaseException) -> ErrorClass:
    """Map a consume-time exception to its error class."""
    if isinstance(error, TOPIC_MISSING_ERRORS):
        return ErrorClass.TOPIC_MISSING
    if isinstance(error, BROKER_DOWN_ERRORS):
        return ErrorClass.BROKER_DOWN
    return ErrorClass.GENERIC


def header_value(headers: Sequence[tuple[str, bytes]] | None, name: str) -> str | None:
    """Decode the first header called ``name``, if present."""
    for key, value in headers or ():
        if key == name:
            if value is None:
                return None
            return value.decode("utf-8", errors="replace")
    return None


class CalculationEventConsumer:
    """Consumes calculation events with manual commits and classified backoff.

    Usage:
        consumer = CalculationEventConsumer(settings)
        task = asyncio.create_task(consumer.run())
        ...
        consumer.request_stop()
        await task
    """

    def __init__(
        self,
        settings: Settings,
        dispatcher: EventDispatcher | None = None,
        consumer: AIOKafkaConsumer | None = None,
        admin_factory: Callable[[], AIOKafkaAdminClient] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        poll_timeout_ms: int = 1000,
        readiness_attempts: int = 30,
        readiness_interval: float = 1.0,
        readiness_timeout: float = 5.0,
    ) -> None:
        """Initialize the consumer.

        Args:
            settings: Application settings (broker address, topics, group id)
            dispatcher: Routes records to handlers (default: EventDispatcher())
            consumer: Pre-built Kafka consumer, mainly for tests
            admin_factory: Builds the admin client used for readiness probes
            sleep: Awaitable sleep used for probe intervals and backoff
            poll_timeout_ms: Maximum time a single poll blocks
            readiness_attempts: Broker readiness probes before proceeding anyway
            readiness_interval: Seconds between readiness probes
            readiness_timeout: Seconds allowed for a single readiness probe
        """
        self.settings = settings
        self.topics = settings.topics
        self.dispatcher = dispatcher or EventDispatcher()
        self._consumer = consumer
        self._admin_factory = admin_factory or self._default_admin_client
        self._sleep = sleep
        self.poll_timeout_ms = poll_timeout_ms
        self.readiness_attempts = readiness_attempts
        self.readiness_interval = readiness_interval
        self.readiness_timeout = readiness_timeout

        self.state = ConsumerState.CREATED
        self.offsets: dict[TopicPartition, int] = {}
        self._stop_event = asyncio.Event()
        self._subscribed = False

    # -------------------------------------------------------------------------
    # Construction helpers
    # -------------------------------------------------------------------------

    @property
    def consumer(self) -> AIOKafkaConsumer:
        """Lazy-initialize the Kafka consumer."""
        if self._consumer is None:
            self._consumer = AIOKafkaConsumer(
                bootstrap_servers=self.settings.KAFKA_BOOTSTRAP_SERVERS,
                group_id=self.settings.KAFKA_CONSUMER_GROUP_ID,
                client_id=f"{self.settings.KAFKA_CLIENT_ID}-consumer",
                auto_offset_reset="earliest",
                enable_auto_commit=False,
                session_timeout_ms=30000,
                heartbeat_interval_ms=10000,
                max_poll_interval_ms=300000,
                fetch_min_bytes=1,
            )
        return self._consumer

    def _default_admin_client(self) -> AIOKafkaAdminClient:
        return AIOKafkaAdminClient(
            bootstrap_servers=self.settings.KAFKA_BOOTSTRAP_SERVERS,
            client_id=f"{self.settings.KAFKA_CLIENT_ID}-readiness",
            request_timeout_ms=int(self.readiness_timeout * 1000),
        )

    def _set_state(self, state: ConsumerState) -> None:
        if state != self.state:
            logger.debug(
                "Consumer state change",
                extra={"from_state": self.state.value, "to_state": state.value},
            )
        self.state = state

    # -------------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------------

    def request_stop(self) -> None:
        """Ask the run loop to stop at the next poll boundary."""
        self._stop_event.set()

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    # -------------------------------------------------------------------------
    # Run loop
    # -------------------------------------------------------------------------

    async def run(self) -> None:
        """Run until a stop is requested, the task is cancelled or a fatal error occurs.

        Fatal errors are logged as critical and end the loop; the Kafka
        consumer is unsubscribed and closed on every exit path.
        """
        try:
            await self.wait_for_broker()
            if self.stopping:
                return

            await self.consumer.start()
            self.consumer.subscribe(topics=self.topics)
            self._subscribed = True
            self._set_state(ConsumerState.SUBSCRIBED)
            logger.info(
                "Kafka consumer started",
                extra={
                    "topics": self.topics,
                    "group_id": self.settings.KAFKA_CONSUMER_GROUP_ID,
                },
            )

            while not self.stopping:
                await self.poll_once()

        except asyncio.CancelledError:
            logger.info("Kafka consumer cancelled")
            raise
        except Exception as e:
            logger.critical(
                "Fatal error in Kafka consumer",
                extra={"error": str(e)},
                exc_info=True,
            )
        finally:
            await self._shutdown()

    async def wait_for_broker(self) -> bool:
        """Probe cluster metadata until a broker is live.

        Readiness is best effort: after the last attempt the consumer
        proceeds anyway.

        Returns:
            True if a live broker was seen, False otherwise
        """
        self._set_state(ConsumerState.WAITING_FOR_BROKER)

        for attempt in range(1, self.readiness_attempts + 1):
            if self.stopping:
                return False
            try:
                brokers = await asyncio.wait_for(
                    self._probe_brokers(), timeout=self.readiness_timeout
                )
            except Exception as e:
                brokers = 0
                logger.debug(
                    f"Broker readiness probe {attempt} failed",
                    extra={"attempt": attempt, "error": str(e)},
                )

            if brokers > 0:
                logger.info(
                    "Kafka broker is ready",
                    extra={"attempt": attempt, "brokers": brokers},
                )
                return True

            if attempt < self.readiness_attempts:
                await self._sleep(self.readiness_interval)

        logger.warning(
            "Kafka broker not ready, starting consumer anyway",
            extra={"attempts": self.readiness_attempts},
        )
        return False

    async def _probe_brokers(self) -> int:
        """Return the number of brokers reported by cluster metadata."""
        admin = self._admin_factory()
        try:
            await admin.start()
            cluster = await admin.describe_cluster()
            return len(cluster.get("brokers") or [])
        finally:
            try:
                await admin.close()
            except Exception as e:
                logger.debug("Failed to close readiness client", extra={"error": str(e)})

    async def poll_once(self) -> None:
        """Run one Polling iteration: poll, then process or back off."""
        self._set_state(ConsumerState.POLLING)

        try:
            batch = await self.consumer.getmany(
                timeout_ms=self.poll_timeout_ms, max_records=1
            )
        except Exception as e:
            await self._backoff(classify_error(e), e)
            return

        for records in batch.values():
            for record in records:
                try:
                    await self.process_record(record)
                except DeserializationError as e:
                    logger.error(
                        "Undeserializable record left uncommitted",
                        extra={
                            "topic": record.topic,
                            "partition": record.partition,
                            "offset": record.offset,
                            "reason": e.reason,
                        },
                    )
                    self._rewind(record)
                    await self._backoff(ErrorClass.GENERIC, e)
                    return
                except Exception as e:
                    logger.error(
                        "Error processing Kafka record, left uncommitted",
                        extra={
                            "topic": record.topic,
                            "partition": record.partition,
                            "offset": record.offset,
                            "error": str(e),
                        },
                    )
                    self._rewind(record)
                    await self._backoff(classify_error(e), e)
                    return

    def _rewind(self, record: Any) -> None:
        """Move the fetch position back to a failed record.

        Later records on the partition are not fetched, and so never
        committed, until the failed one has been handled.
        """
        partition = TopicPartition(record.topic, record.partition)
        try:
            self.consumer.seek(partition, record.offset)
        except Exception as e:
            logger.warning(
                "Failed to rewind Kafka consumer, relying on committed offset",
                extra={
                    "topic": record.topic,
                    "partition": record.partition,
                    "offset": record.offset,
                    "error": str(e),
                },
            )

    async def process_record(self, record: Any) -> None:
        """Dispatch one record, then commit it and advance the stored offset.

        Raises:
            DeserializationError: Payload does not match its event type
            Exception: Handler or commit failure; nothing is committed
        """
        self._set_state(ConsumerState.PROCESSING_MESSAGE)
        event_type = header_value(record.headers, EVENT_TYPE_HEADER)

        logger.debug(
            "Processing Kafka record",
            extra={
                "topic": record.topic,
                "partition": record.partition,
                "offset": record.offset,
                "event_type": event_type,
            },
        )

        handled = await self.dispatcher.dispatch(event_type, record.value)

        partition = TopicPartition(record.topic, record.partition)
        next_offset = record.offset + 1
        await self.consumer.commit({partition: next_offset})
        self.offsets[partition] = next_offset

        logger.debug(
            "Committed Kafka record",
            extra={
                "topic": record.topic,
                "partition": record.partition,
                "offset": record.offset,
                "handled": handled,
            },
        )

    async def _backoff(self, error_class: ErrorClass, error: BaseException) -> None:
        delay = BACKOFF_SECONDS[error_class]
        self._set_state(BACKOFF_STATES[error_class])

        context = {
            "error_class": error_class.value,
            "error": str(error),
            "delay_seconds": delay,
        }
        if error_class is ErrorClass.TOPIC_MISSING:
            logger.warning("Kafka topic not available yet, backing off", extra=context)
        elif error_class is ErrorClass.BROKER_DOWN:
            logger.warning("Kafka broker unavailable, backing off", extra=context)
        else:
            logger.error("Kafka consume error, backing off", extra=context, exc_info=error)

        await self._sleep(delay)

    async def _shutdown(self) -> None:
        """Unsubscribe and close the Kafka consumer."""
        if self._consumer is not None:
            if self._subscribed:
                try:
                    self._consumer.unsubscribe()
                except Exception as e:
                    logger.error("Error unsubscribing Kafka consumer", extra={"error": str(e)})
                self._subscribed = False
            try:
                await self._consumer.stop()
            except Exception as e:
                logger.error(
                    "Error closing Kafka consumer",
                    extra={"error": str(e)},
                    exc_info=True,
                )

        self._set_state(ConsumerState.STOPPED)
        logger.info("Kafka consumer stopped", extra={"offsets": len(self.offsets)})
