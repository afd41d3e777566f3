"""Calculation request and response models."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Operation(str, Enum):
    """Supported arithmetic operations."""

    ADD = "Add"
    SUBTRACT = "Subtract"
    MULTIPLY = "Multiply"
    DIVIDE = "Divide"

    @classmethod
    def parse(cls, tag: str | None) -> "Operation | None":
        """Resolve an operation tag such as ``"Add"`` or ``"divide"``.

        Returns:
            The matching Operation, or None when the tag names no operation
        """
        if not tag:
            return None
        normalized = tag.strip().lower()
        for operation in cls:
            if operation.value.lower() == normalized:
                return operation
        return None


class CalculationRequest(BaseModel):
    """Binary arithmetic request.

    Fields are optional at the model level so that incomplete requests
    reach the workflow, which reports them as validation failures.
    """

    model_config = ConfigDict(frozen=True)

    operation: Operation | None = Field(default=None, description="Operation tag")
    x: float | None = Field(default=None, description="Left operand")
    y: float | None = Field(default=None, description="Right operand")


class CalculationResponse(BaseModel):
    """Outcome of a calculation: a result on success, an error otherwise.

    ``cache_hit`` is diagnostic and excluded from serialization; the wire
    shape is ``{success, result?, error?}``.
    """

    success: bool
    result: float | None = None
    error: str | None = None
    cache_hit: bool = Field(default=False, exclude=True)

    @model_validator(mode="after")
    def _result_xor_error(self) -> "CalculationResponse":
        if self.success and (self.error is not None or self.result is None):
            raise ValueError("A successful response carries a result and no error")
        if not self.success and self.result is not None:
            raise ValueError("A failed response cannot carry a result")
        if not self.success and not self.error:
            raise ValueError("A failed response must carry an error")
        return self

    @classmethod
    def ok(cls, result: float, cache_hit: bool = False) -> "CalculationResponse":
        return cls(success=True, result=result, cache_hit=cache_hit)

    @classmethod
    def failed(cls, error: str) -> "CalculationResponse":
        return cls(success=False, error=error)
