"""Common API response schemas."""

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Consistent JSON envelope for API responses."""

    data: T


class ErrorDetail(BaseModel):
    """Body of every non-2xx response raised by the messaging services."""

    detail: str


ERROR_RESPONSES: dict[int | str, dict[str, object]] = {
    401: {"model": ErrorDetail, "description": "Missing or invalid token"},
    403: {"model": ErrorDetail, "description": "Caller may not access this conversation"},
    422: {"model": ErrorDetail, "description": "Empty message or unknown conversation"},
    503: {"model": ErrorDetail, "description": "Message storage unavailable"},
}
