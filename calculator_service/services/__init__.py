"""Calculation services: arithmetic, result cache and request workflow."""

from calculator_service.services.cache import CacheStore, cache_key
from calculator_service.services.calculator import (
    CalculationError,
    DivisionByZeroError,
    UnsupportedOperationError,
    compute,
)
from calculator_service.services.side_effects import SideEffectOutcome, best_effort
from calculator_service.services.workflow import CalculationWorkflow, validate_request

__all__ = [
    "CacheStore",
    "cache_key",
    "CalculationError",
    "DivisionByZeroError",
    "UnsupportedOperationError",
    "compute",
    "SideEffectOutcome",
    "best_effort",
    "CalculationWorkflow",
    "validate_request",
]
