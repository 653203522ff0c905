"""Uniform success/failure wrapper returned by every domain service.

Expected business conditions (bad input, missing rows, ownership checks)
come back as a failed Result instead of an exception. Routes turn a Result
into the ``{success, message, data}`` JSON envelope.
"""

import enum
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

T = TypeVar("T")


class ErrorType(str, enum.Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    ERROR = "error"


STATUS_BY_ERROR = {
    ErrorType.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorType.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorType.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorType.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorType.ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


@dataclass
class Result(Generic[T]):
    success: bool
    value: T | None = None
    error: str | None = None
    error_type: ErrorType | None = None

    @classmethod
    def ok(cls, value: T = None) -> "Result[T]":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: str, error_type: ErrorType = ErrorType.ERROR) -> "Result[T]":
        return cls(success=False, error=error, error_type=error_type)

    @classmethod
    def invalid(cls, error: str) -> "Result[T]":
        return cls.fail(error, ErrorType.VALIDATION)

    @classmethod
    def not_found(cls, error: str) -> "Result[T]":
        return cls.fail(error, ErrorType.NOT_FOUND)

    @classmethod
    def forbidden(cls, error: str) -> "Result[T]":
        return cls.fail(error, ErrorType.FORBIDDEN)


def envelope(success: bool, message: str, data: Any = None) -> dict:
    return {"success": success, "message": message, "data": jsonable_encoder(data)}


def to_response(result: Result, message: str = "OK"):
    """Convert a Result into a JSON envelope (plain dict on success)."""
    if result.success:
        return envelope(True, message, result.value)
    return JSONResponse(
        status_code=STATUS_BY_ERROR.get(result.error_type, status.HTTP_500_INTERNAL_SERVER_ERROR),
        content=envelope(False, result.error or "Request failed"),
    )
