"""Calculation data models."""

from calculator_service.models.calculation import (
    CalculationRequest,
    CalculationResponse,
    Operation,
)

__all__ = [
    "CalculationRequest",
    "CalculationResponse",
    "Operation",
]
