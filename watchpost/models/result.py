"""Uniform result shape returned by lifecycle operations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from watchpost.errors import AuthenticationError, WatchpostError

T = TypeVar("T")


@dataclass
class Result(Generic[T]):
    """
    Outcome of a component operation.

    Classified failures (see ``watchpost.errors``) are reported here instead of
    being raised past the component boundary; ``error`` keeps the original
    exception so callers can react to its class (e.g. forced logout on
    authentication failures).
    """

    success: bool
    data: T | None = None
    message: str | None = None
    error: WatchpostError | None = None

    @classmethod
    def ok(cls, data: Any = None, message: str | None = None) -> Result:
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(cls, message: str, error: WatchpostError | None = None, data: Any = None) -> Result:
        return cls(success=False, data=data, message=message, error=error)

    @classmethod
    def from_error(cls, error: WatchpostError, data: Any = None) -> Result:
        return cls(success=False, data=data, message=error.message, error=error)

    @property
    def auth_expired(self) -> bool:
        return isinstance(self.error, AuthenticationError)
