"""Background workers.

The event consumer can be started via:
- start_consumer_task(): Background task inside a running service
- run_consumer_loop(): Foreground loop until SIGINT/SIGTERM
"""

from calculator_service.workers.event_consumer import (
    BACKOFF_SECONDS,
    CalculationEventConsumer,
    ConsumerState,
    ErrorClass,
    classify_error,
)
from calculator_service.workers.runner import (
    ConsumerRunResult,
    configure_logging,
    run_consumer_loop,
    start_consumer_task,
    stop_consumer_task,
)

__all__ = [
    # Consumer
    "CalculationEventConsumer",
    "ConsumerState",
    "ErrorClass",
    "BACKOFF_SECONDS",
    "classify_error",
    # Runner
    "ConsumerRunResult",
    "start_consumer_task",
    "stop_consumer_task",
    "run_consumer_loop",
    "configure_logging",
]
