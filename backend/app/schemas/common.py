"""Common schemas used across the application."""

from decimal import Decimal
from typing import Annotated, Generic, TypeVar

from pydantic import BaseModel, BeforeValidator

T = TypeVar("T")


def _as_float(value):
    if isinstance(value, Decimal):
        return float(value)
    return value


# Monetary values are Decimal in the ORM and plain JSON numbers on the wire
Amount = Annotated[float, BeforeValidator(_as_float)]


class ApiResponse(BaseModel, Generic[T]):
    """Success envelope returned by every billing operation.

    Usage:
        response_model=ApiResponse[InvoiceOut]

    Returns:
        {
            "data": {...},
            "message": "Invoice created successfully"
        }
    """
    data: T
    message: str
