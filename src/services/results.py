from typing import Generic, List, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel

T = TypeVar("T")

NOT_FOUND = "NOT_FOUND"
VALIDATION_ERROR = "VALIDATION_ERROR"
INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorDetail(BaseModel):
    code: str
    message: str
    field: Optional[str] = None


class OrderWorkflowError(Exception):
    """Expected failure of a workflow operation, reported to the caller as an ErrorDetail"""

    code = VALIDATION_ERROR

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_detail(self) -> ErrorDetail:
        return ErrorDetail(code=self.code, message=self.message, field=self.field)


class NotFoundError(OrderWorkflowError):
    code = NOT_FOUND


class ValidationFailedError(OrderWorkflowError):
    code = VALIDATION_ERROR


class InsufficientStockError(OrderWorkflowError):
    code = INSUFFICIENT_STOCK

    def __init__(
        self,
        car_model_id: UUID,
        requested: int,
        available: int,
        field: Optional[str] = "quantity",
    ):
        super().__init__(
            f"Insufficient stock for car model {car_model_id}. "
            f"Requested: {requested}, Available: {available}",
            field,
        )
        self.car_model_id = car_model_id
        self.requested = requested
        self.available = available


class OperationResult(Generic[T]):
    """Either a value or one or more errors; never both"""

    def __init__(self, value: Optional[T] = None, errors: Optional[List[ErrorDetail]] = None):
        self.value = value
        self.errors = errors or []

    @property
    def is_success(self) -> bool:
        return not self.errors

    @classmethod
    def success(cls, value: T) -> "OperationResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, *errors: ErrorDetail) -> "OperationResult[T]":
        return cls(errors=list(errors))

    def has_error(self, code: str) -> bool:
        return any(error.code == code for error in self.errors)

    def __repr__(self) -> str:
        if self.is_success:
            return f"OperationResult(value={self.value!r})"
        return f"OperationResult(errors={self.errors!r})"
