"""Pure arithmetic for calculation requests."""

import logging

from calculator_service.models.calculation import CalculationResponse, Operation

logger = logging.getLogger(__name__)


class CalculationError(Exception):
    """A calculation that cannot produce a result."""


class DivisionByZeroError(CalculationError):
    def __init__(self) -> None:
        super().__init__("Cannot perform division by zero")


class UnsupportedOperationError(CalculationError):
    def __init__(self, operation: object) -> None:
        super().__init__(f"Unsupported operation: {operation}")


def apply_operation(operation: Operation, x: float, y: float) -> float:
    """Apply ``operation`` to the operands.

    Raises:
        DivisionByZeroError: Divide with y == 0, checked before dividing
        UnsupportedOperationError: Operation outside the four supported tags
    """
    if operation == Operation.ADD:
        return x + y
    if operation == Operation.SUBTRACT:
        return x - y
    if operation == Operation.MULTIPLY:
        return x * y
    if operation == Operation.DIVIDE:
        if y == 0:
            raise DivisionByZeroError()
        return x / y
    raise UnsupportedOperationError(operation)


def compute(operation: Operation, x: float, y: float) -> CalculationResponse:
    """Compute a calculation and report the outcome as a response.

    Results are returned as-is, so overflow to infinity on finite inputs is a
    success. Domain errors become a failed response and are never raised.
    """
    try:
        result = apply_operation(operation, x, y)
    except CalculationError as e:
        logger.warning(
            "Calculation rejected",
            extra={"operation": str(operation), "x": x, "y": y, "error": str(e)},
        )
        return CalculationResponse.failed(str(e))

    logger.debug(
        "Calculation completed",
        extra={"operation": operation.value, "x": x, "y": y, "result": result},
    )
    return CalculationResponse.ok(result)
