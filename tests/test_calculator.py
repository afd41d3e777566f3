"""Tests for the arithmetic core and the calculation models."""

import math
import sys

import pytest
from pydantic import ValidationError

from calculator_service.models.calculation import (
    CalculationRequest,
    CalculationResponse,
    Operation,
)
from calculator_service.services.calculator import (
    DivisionByZeroError,
    UnsupportedOperationError,
    apply_operation,
    compute,
)

MAX_FLOAT = sys.float_info.max


class TestCompute:
    """Test compute() for every operation."""

    @pytest.mark.parametrize(
        "operation, x, y, expected",
        [
            (Operation.ADD, 10, 5, 15),
            (Operation.SUBTRACT, 10, 3, 7),
            (Operation.MULTIPLY, 4, 3, 12),
            (Operation.DIVIDE, 20, 4, 5),
            (Operation.ADD, 10.5, 5.5, 16.0),
            (Operation.DIVIDE, -9, 2, -4.5),
        ],
    )
    def test_exact_results(self, operation, x, y, expected):
        """Finite operands produce the exact IEEE result."""
        response = compute(operation, x, y)

        assert response.success is True
        assert response.result == expected
        assert response.error is None

    @pytest.mark.parametrize("x", [0.0, 10.0, -7.25, MAX_FLOAT, -MAX_FLOAT])
    def test_divide_by_zero_fails(self, x):
        """Divide with y == 0 fails for any finite x."""
        response = compute(Operation.DIVIDE, x, 0.0)

        assert response.success is False
        assert response.result is None
        assert "division by zero" in response.error

    def test_divide_by_negative_zero_fails(self):
        """-0.0 is zero too."""
        response = compute(Operation.DIVIDE, 1.0, -0.0)

        assert response.success is False
        assert "division by zero" in response.error

    def test_overflow_passes_through_as_success(self):
        """Extreme finite operands never raise; infinity is a valid result."""
        response = compute(Operation.MULTIPLY, MAX_FLOAT, 10.0)

        assert response.success is True
        assert math.isinf(response.result)

    def test_unsupported_operation_fails(self):
        """Unknown operations are reported, not raised."""
        response = compute("Modulo", 1.0, 2.0)

        assert response.success is False
        assert "Unsupported operation" in response.error


class TestApplyOperation:
    """Test the raising variant used by compute()."""

    def test_division_by_zero_raises(self):
        with pytest.raises(DivisionByZeroError):
            apply_operation(Operation.DIVIDE, 1.0, 0.0)

    def test_unsupported_operation_raises(self):
        with pytest.raises(UnsupportedOperationError):
            apply_operation("Power", 2.0, 3.0)


class TestOperationParsing:
    """Test operation tag parsing."""

    @pytest.mark.parametrize(
        "tag, expected",
        [
            ("Add", Operation.ADD),
            ("subtract", Operation.SUBTRACT),
            (" MULTIPLY ", Operation.MULTIPLY),
            ("Divide", Operation.DIVIDE),
        ],
    )
    def test_known_tags(self, tag, expected):
        assert Operation.parse(tag) is expected

    @pytest.mark.parametrize("tag", [None, "", "Modulo", "op-123"])
    def test_unknown_tags(self, tag):
        assert Operation.parse(tag) is None


class TestCalculationResponse:
    """Test the result/error exclusivity of responses."""

    def test_ok_response(self):
        response = CalculationResponse.ok(42.0)

        assert response.success is True
        assert response.model_dump(exclude_none=True) == {"success": True, "result": 42.0}

    def test_failed_response(self):
        response = CalculationResponse.failed("boom")

        assert response.model_dump(exclude_none=True) == {"success": False, "error": "boom"}

    def test_cache_hit_not_serialized(self):
        """cache_hit is diagnostic only."""
        response = CalculationResponse.ok(1.0, cache_hit=True)

        assert response.cache_hit is True
        assert "cache_hit" not in response.model_dump()

    def test_result_and_error_are_exclusive(self):
        with pytest.raises(ValidationError):
            CalculationResponse(success=True, result=1.0, error="nope")
        with pytest.raises(ValidationError):
            CalculationResponse(success=False, result=1.0, error="nope")
        with pytest.raises(ValidationError):
            CalculationResponse(success=False)

    def test_request_allows_missing_fields(self):
        """Incomplete requests reach the workflow validation."""
        request = CalculationRequest(operation=Operation.ADD)

        assert request.x is None
        assert request.y is None
