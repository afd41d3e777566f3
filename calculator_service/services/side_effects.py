"""Best-effort side effects.

A best-effort call runs an awaitable and always returns an outcome: its
failure is logged and reported, never raised into the caller's control
flow. Cancellation is not a failure and still propagates.
"""

import logging
from collections.abc import Awaitable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SideEffectOutcome:
    """Result of a best-effort side effect.

    Attributes:
        name: Side effect name for logging (e.g. "publish_started")
        succeeded: Whether the awaitable completed without error
        error: Error message when it failed
        context: Log context supplied by the caller
    """

    name: str
    succeeded: bool
    error: str | None = None
    context: dict[str, Any] = field(default_factory=dict)


async def best_effort(
    name: str,
    operation: Awaitable[Any],
    **context: Any,
) -> SideEffectOutcome:
    """Await ``operation`` and convert any failure into an outcome.

    Args:
        name: Side effect name for logging
        operation: The awaitable to run
        **context: Extra fields attached to the failure log entry

    Returns:
        SideEffectOutcome describing success or failure
    """
    try:
        await operation
    except Exception as e:
        logger.error(
            f"Best-effort side effect failed: {name}",
            extra={"side_effect": name, "error": str(e), **context},
            exc_info=True,
        )
        return SideEffectOutcome(
            name=name, succeeded=False, error=str(e), context=context
        )

    return SideEffectOutcome(name=name, succeeded=True, context=context)
