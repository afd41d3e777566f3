"""Request-level calculation workflow.

Protocol for one request:
1. Validate (failures return immediately: no events, no cache access)
2. Publish CalculationStarted (best effort)
3. Cache lookup; a hit skips to step 6
4. Compute on miss
5. Cache successful results (best effort)
6. Publish CalculationCompleted (best effort)
7. Return the response

Broker and cache availability never change the returned result: they only
affect whether results are reused and whether analytics events exist.
"""

import logging
import math
import time
from collections.abc import Callable
from datetime import timedelta
from typing import Protocol

from calculator_service.config import Settings
from calculator_service.events.types import (
    CalculationCompletedEvent,
    CalculationStartedEvent,
)
from calculator_service.models.calculation import (
    CalculationRequest,
    CalculationResponse,
    Operation,
)
from calculator_service.services.calculator import compute
from calculator_service.services.identity import get_current_user_id
from calculator_service.services.side_effects import best_effort

logger = logging.getLogger(__name__)


class ResultCache(Protocol):
    async def get(self, request: CalculationRequest) -> float | None: ...

    async def set(
        self, request: CalculationRequest, result: float, ttl: timedelta | None = None
    ) -> None: ...


class CalculationEventSink(Protocol):
    async def publish_started(self, event: CalculationStartedEvent) -> None: ...

    async def publish_completed(self, event: CalculationCompletedEvent) -> None: ...


def validate_request(request: CalculationRequest | None, operation_id: str | None) -> str | None:
    """Check a request before any side effect.

    Divide-by-zero is not a validation failure: the calculator reports it,
    so the request still produces its lifecycle events.

    Returns:
        A human-readable error message, or None when the request is valid
    """
    if request is None:
        return "Request cannot be null"
    if operation_id is None or not operation_id.strip():
        return "Operation ID is required and cannot be empty"
    if Operation.parse(operation_id) is None:
        return "Invalid operation type in operation ID"
    if request.x is None:
        return "The X field is required"
    if request.y is None:
        return "The Y field is required"
    if request.operation is None:
        return "The Operation field is required"
    if not math.isfinite(request.x):
        return "X must be a valid number"
    if not math.isfinite(request.y):
        return "Y must be a valid number"
    return None


class CalculationWorkflow:
    """Runs calculation requests through cache, calculator and event stream."""

    def __init__(
        self,
        cache: ResultCache,
        publisher: CalculationEventSink,
        settings: Settings,
        calculator: Callable[[Operation, float, float], CalculationResponse] = compute,
    ) -> None:
        """Initialize the workflow.

        Args:
            cache: Result cache
            publisher: Lifecycle event publisher
            settings: Application settings providing the cache TTL
            calculator: Arithmetic function (default: services.calculator.compute)
        """
        self._cache = cache
        self._publisher = publisher
        self._calculator = calculator
        self.cache_ttl = timedelta(seconds=settings.CACHE_TTL_SECONDS)

    async def execute(
        self,
        request: CalculationRequest | None,
        operation_id: str | None,
        user_id: str | None = None,
    ) -> CalculationResponse:
        """Execute one calculation request.

        Args:
            request: The calculation request
            operation_id: Correlation id of the request; must name an operation tag
            user_id: Caller identity (default: the authenticated user of the context)

        Returns:
            CalculationResponse; failures are reported, never raised
        """
        started_at = time.perf_counter()
        cache_hit = False
        started_event: CalculationStartedEvent | None = None
        completed_sent = False
        if user_id is None:
            user_id = get_current_user_id()

        logger.info(
            f"Starting calculation workflow for operation ID: {operation_id}",
            extra={"operation_id": operation_id},
        )

        try:
            error = validate_request(request, operation_id)
            if error is not None:
                logger.warning(
                    f"Validation failed for operation ID: {operation_id}",
                    extra={"operation_id": operation_id, "error": error},
                )
                return CalculationResponse.failed(error)

            started_event = CalculationStartedEvent(
                operation_id=operation_id,
                operation=request.operation.value,
                x=request.x,
                y=request.y,
                user_id=user_id,
            )
            await best_effort(
                "publish_started",
                self._publisher.publish_started(started_event),
                operation_id=operation_id,
            )

            cached = await self._cache.get(request)
            if cached is not None:
                logger.info(
                    f"Cache hit for operation ID: {operation_id}",
                    extra={"operation_id": operation_id},
                )
                cache_hit = True
                response = CalculationResponse.ok(cached, cache_hit=True)
            else:
                response = self._calculator(request.operation, request.x, request.y)
                if response.success:
                    await best_effort(
                        "cache_write",
                        self._cache.set(request, response.result, self.cache_ttl),
                        operation_id=operation_id,
                    )

            await self._publish_completed(started_event, response, started_at, cache_hit)
            completed_sent = True

            logger.info(
                f"Calculation workflow completed for operation ID: {operation_id}",
                extra={
                    "operation_id": operation_id,
                    "success": response.success,
                    "cache_hit": cache_hit,
                },
            )
            return response

        except Exception as e:
            logger.error(
                f"Error in calculation workflow for operation ID: {operation_id}",
                extra={"operation_id": operation_id, "error": str(e)},
                exc_info=True,
            )
            response = CalculationResponse.failed(f"Workflow error: {e}")
            if started_event is not None and not completed_sent:
                await self._publish_completed(started_event, response, started_at, cache_hit)
            return response

    async def _publish_completed(
        self,
        started_event: CalculationStartedEvent,
        response: CalculationResponse,
        started_at: float,
        cache_hit: bool,
    ) -> None:
        execution_time_ms = int((time.perf_counter() - started_at) * 1000)
        completed_event = CalculationCompletedEvent.from_response(
            started_event, response, execution_time_ms, cache_hit
        )
        await best_effort(
            "publish_completed",
            self._publisher.publish_completed(completed_event),
            operation_id=started_event.operation_id,
        )
