"""Service composition root.

Builds every component from one ``Settings`` instance and owns their
connections:

    async with CalculatorRuntime(settings) as runtime:
        response = await runtime.workflow.execute(request, "Add")
"""

import asyncio
import logging

from calculator_service.config import Settings, get_settings
from calculator_service.events.publisher import EventPublisher
from calculator_service.services.cache import CacheStore
from calculator_service.services.workflow import CalculationWorkflow
from calculator_service.workers.event_consumer import CalculationEventConsumer
from calculator_service.workers.runner import start_consumer_task, stop_consumer_task

logger = logging.getLogger(__name__)


class CalculatorRuntime:
    """Wires cache, publisher, workflow and background consumer together."""

    def __init__(
        self,
        settings: Settings | None = None,
        cache: CacheStore | None = None,
        publisher: EventPublisher | None = None,
        consumer: CalculationEventConsumer | None = None,
        start_consumer: bool | None = None,
    ) -> None:
        """Initialize the runtime.

        Args:
            settings: Application settings (default: get_settings())
            cache: Result cache (default: Redis from settings)
            publisher: Event publisher (default: Kafka from settings)
            consumer: Background consumer (default: built from settings)
            start_consumer: Run the consumer task (default: KAFKA_CONSUMER_ENABLED)
        """
        self.settings = settings or get_settings()
        self.cache = cache or CacheStore.from_settings(self.settings)
        self.publisher = publisher or EventPublisher(self.settings)
        self.workflow = CalculationWorkflow(self.cache, self.publisher, self.settings)
        self.start_consumer = (
            self.settings.KAFKA_CONSUMER_ENABLED if start_consumer is None else start_consumer
        )
        self.consumer = consumer
        self._consumer_task: asyncio.Task | None = None

    async def __aenter__(self) -> "CalculatorRuntime":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def start(self) -> None:
        """Start the background consumer if enabled.

        The producer connects lazily on first publish, so an unreachable
        broker never blocks startup.
        """
        if self.start_consumer:
            if self.consumer is None:
                self.consumer = CalculationEventConsumer(self.settings)
            self._consumer_task = start_consumer_task(self.consumer)
        logger.info(
            "Calculator runtime started",
            extra={"consumer_enabled": self.start_consumer},
        )

    async def close(self) -> None:
        """Stop the consumer, then close publisher and cache, in that order."""
        try:
            if self.consumer is not None and self._consumer_task is not None:
                await stop_consumer_task(self.consumer, self._consumer_task)
                self._consumer_task = None
        finally:
            try:
                await self.publisher.close()
            except Exception as e:
                logger.error("Error closing event publisher", extra={"error": str(e)})
            try:
                await self.cache.close()
            except Exception as e:
                logger.error("Error closing cache", extra={"error": str(e)})
        logger.info("Calculator runtime stopped")
