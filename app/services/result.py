# app/services/result.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

T = TypeVar("T")
U = TypeVar("U")


class ReviewApiError(RuntimeError):
    """Base class for every failure the review API client reports."""


class TransportError(ReviewApiError):
    """Network / IO failure before a response was received."""


class HttpError(ReviewApiError):
    def __init__(self, status_code: int, message: str = "") -> None:
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}: {message}" if message else f"HTTP {status_code}")


class NotFoundError(ReviewApiError):
    """The request succeeded but no row matched where one was expected."""


class DecodeError(ReviewApiError):
    """The response body could not be decoded into the expected records."""


# Failures worth another attempt; the rest are terminal.
RETRYABLE_ERRORS = (TransportError, HttpError)


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Success/failure container returned by every client call.

    Exactly one of `value` / `error` is meaningful, decided by `ok`.
    """

    ok: bool
    value: Optional[T] = None
    error: Optional[ReviewApiError] = None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: ReviewApiError) -> "Result[Any]":
        return cls(ok=False, error=error)

    def map(self, fn: Callable[[T], U]) -> "Result[U]":
        if not self.ok:
            return Result(ok=False, error=self.error)
        return Result(ok=True, value=fn(self.value))  # type: ignore[arg-type]

    def unwrap(self) -> T:
        if not self.ok:
            assert self.error is not None
            raise self.error
        return self.value  # type: ignore[return-value]
