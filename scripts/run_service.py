#!/usr/bin/env python3
"""Dev entrypoint for the calculator service.

Usage:
    # Run one calculation (cache + events) and print the response
    python scripts/run_service.py --calculate Add 10 5

    # Run the background event consumer (Ctrl+C to stop)
    python scripts/run_service.py --consume

Environment variables:
    KAFKA_BOOTSTRAP_SERVERS: Broker addresses (default: localhost:9092)
    KAFKA_TOPIC_CALCULATION_STARTED: Started topic (default: calculation-started)
    KAFKA_TOPIC_CALCULATION_COMPLETED: Completed topic (default: calculation-completed)
    KAFKA_CONSUMER_GROUP_ID: Consumer group (default: calculator-consumer-group)
    REDIS_URL: Cache URL (default: redis://localhost:6379/0)
    CACHE_TTL_SECONDS: Result lifetime (default: 30)
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from calculator_service.config import get_settings
from calculator_service.models import CalculationRequest, Operation
from calculator_service.runtime import CalculatorRuntime
from calculator_service.workers import configure_logging, run_consumer_loop


async def calculate(operation: Operation, x: float, y: float) -> int:
    """Run one request through the workflow and print the response."""
    settings = get_settings()
    request = CalculationRequest(operation=operation, x=x, y=y)

    async with CalculatorRuntime(settings, start_consumer=False) as runtime:
        response = await runtime.workflow.execute(request, operation.value)

    print(json.dumps(response.model_dump(exclude_none=True)))
    print(f"cache hit: {response.cache_hit}")
    return 0 if response.success else 1


def main() -> int:
    """Main entrypoint for the service runner."""
    parser = argparse.ArgumentParser(
        description="Run the calculator service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    # Mode selection
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument(
        "--calculate",
        nargs=3,
        metavar=("OPERATION", "X", "Y"),
        help="Run one calculation and exit",
    )
    mode.add_argument(
        "--consume",
        action="store_true",
        help="Run the event consumer until interrupted",
    )

    # Logging
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Reduce logging to warnings only",
    )

    args = parser.parse_args()

    # Configure logging
    if args.verbose:
        configure_logging(logging.DEBUG)
    elif args.quiet:
        configure_logging(logging.WARNING)
    else:
        configure_logging(get_settings().LOG_LEVEL)

    logger = logging.getLogger(__name__)

    try:
        if args.calculate:
            tag, raw_x, raw_y = args.calculate
            operation = Operation.parse(tag)
            if operation is None:
                parser.error(f"unknown operation: {tag}")
            try:
                x, y = float(raw_x), float(raw_y)
            except ValueError:
                parser.error("operands must be numbers")
            return asyncio.run(calculate(operation, x, y))

        logger.info("Starting event consumer (Ctrl+C to stop)...")
        result = asyncio.run(run_consumer_loop(get_settings()))
        return 0 if not result.errors else 1

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as e:
        logger.error(f"Service failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
