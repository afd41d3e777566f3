"""Runner for the background event consumer.

Provides entry points for running the consumer:
- start_consumer_task(): Background task next to request handling
- run_consumer_loop(): Foreground loop until SIGINT/SIGTERM
"""

import asyncio
import logging
import signal
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from calculator_service.config import Settings
from calculator_service.workers.event_consumer import CalculationEventConsumer

logger = logging.getLogger(__name__)


@dataclass
class ConsumerRunResult:
    """Summary of a finished consumer run.

    Attributes:
        started_at: When the run started
        completed_at: When the run ended
        final_state: Consumer state at exit
        committed_partitions: Partitions with at least one committed record
        errors: Top-level errors raised out of the run
    """

    started_at: datetime
    completed_at: datetime | None = None
    final_state: str | None = None
    committed_partitions: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": (
                (self.completed_at - self.started_at).total_seconds() * 1000
                if self.completed_at
                else None
            ),
            "final_state": self.final_state,
            "committed_partitions": self.committed_partitions,
            "errors": self.errors,
        }


def start_consumer_task(consumer: CalculationEventConsumer) -> asyncio.Task:
    """Schedule ``consumer.run()`` as a background task on the running loop."""
    task = asyncio.create_task(consumer.run(), name="calculation-event-consumer")
    logger.info("Background consumer task scheduled")
    return task


async def stop_consumer_task(
    consumer: CalculationEventConsumer,
    task: asyncio.Task,
    timeout: float = 10.0,
) -> None:
    """Request a stop and wait for the task, cancelling it after ``timeout``."""
    consumer.request_stop()
    try:
        await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Consumer did not stop in time, cancelling", extra={"timeout": timeout})
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


async def run_consumer_loop(
    settings: Settings,
    consumer: CalculationEventConsumer | None = None,
) -> ConsumerRunResult:
    """Run the consumer in the foreground until a shutdown signal.

    Args:
        settings: Application settings
        consumer: Consumer to run (default: built from settings)

    Returns:
        ConsumerRunResult with the final state
    """
    consumer = consumer or CalculationEventConsumer(settings)
    result = ConsumerRunResult(started_at=datetime.now(timezone.utc))
    _setup_signal_handlers(consumer)

    logger.info(
        "Starting consumer loop",
        extra={"topics": consumer.topics, "group_id": settings.KAFKA_CONSUMER_GROUP_ID},
    )

    try:
        await consumer.run()
    except asyncio.CancelledError:
        logger.info("Consumer loop cancelled")
    except Exception as e:
        result.errors.append(str(e))
        logger.error("Consumer loop failed", extra={"error": str(e)}, exc_info=True)

    result.completed_at = datetime.now(timezone.utc)
    result.final_state = consumer.state.value
    result.committed_partitions = len(consumer.offsets)

    logger.info("Consumer loop stopped", extra=result.to_dict())
    return result


def _setup_signal_handlers(consumer: CalculationEventConsumer) -> None:
    """Setup signal handlers for graceful shutdown."""
    loop = asyncio.get_running_loop()

    def handle_signal(signum: int) -> None:
        logger.info(f"Received signal {signum}, requesting shutdown")
        consumer.request_stop()

    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, handle_signal, signum)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform or outside the main thread
            logger.debug(f"Signal handler for {signum} not installed")


def configure_logging(level: int | str = logging.INFO) -> None:
    """Configure logging for service processes.

    Args:
        level: Logging level (default: INFO)
    """
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Set specific loggers
    logging.getLogger("calculator_service").setLevel(level)
    logging.getLogger("aiokafka").setLevel(logging.WARNING)
    logging.getLogger("redis").setLevel(logging.WARNING)
