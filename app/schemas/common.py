from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    """``{success, message, data}`` wrapper used by every JSON endpoint."""
    success: bool
    message: str
    data: T | None = None
