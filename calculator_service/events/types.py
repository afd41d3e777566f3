"""Event type definitions for calculation lifecycle events."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from calculator_service.models.calculation import CalculationResponse

EVENT_TYPE_HEADER = "eventType"
TIMESTAMP_HEADER = "timestamp"


class EventType(str, Enum):
    """Event kinds, as carried in the ``eventType`` message header."""

    CALCULATION_STARTED = "CalculationStarted"
    CALCULATION_COMPLETED = "CalculationCompleted"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CalculationStartedEvent(BaseModel):
    """Emitted once per accepted request, before the cache lookup.

    Serialized with camelCase keys (``operationId``, ``userId``). Infinite
    values are written as the JSON constants ``Infinity`` / ``-Infinity``.
    """

    model_config = ConfigDict(
        frozen=True, populate_by_name=True, ser_json_inf_nan="constants"
    )

    operation_id: str = Field(alias="operationId", description="Correlates Started/Completed")
    operation: str = Field(description="Operation tag, e.g. 'Add'")
    x: float
    y: float
    user_id: str | None = Field(default=None, alias="userId")
    timestamp: datetime = Field(default_factory=_utcnow)

    def to_json(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode("utf-8")


class CalculationCompletedEvent(CalculationStartedEvent):
    """Emitted once per accepted request, whatever the outcome."""

    result: float | None = None
    success: bool = False
    error: str | None = None
    execution_time_ms: int = Field(default=0, alias="executionTimeMs")
    cache_hit: bool = Field(default=False, alias="cacheHit")

    @classmethod
    def from_response(
        cls,
        started: CalculationStartedEvent,
        response: CalculationResponse,
        execution_time_ms: int,
        cache_hit: bool,
    ) -> "CalculationCompletedEvent":
        """Build the completion event for a started calculation."""
        return cls(
            operation_id=started.operation_id,
            operation=started.operation,
            x=started.x,
            y=started.y,
            user_id=started.user_id,
            result=response.result,
            success=response.success,
            error=response.error,
            execution_time_ms=execution_time_ms,
            cache_hit=cache_hit,
        )
