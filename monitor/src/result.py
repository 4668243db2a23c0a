"""
Success/failure result type shared by source clients and the query services.

Remote failures and lookup misses are routine in this system, so they travel
as values instead of exceptions. Every failure carries a human-readable
message and an :class:`ErrorKind` that the HTTP layer maps to a status code.

CHANGELOG:
- 2026-10-02: Initial creation (STORY-001)

TODO:
- None
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Generic, TypeVar

T = TypeVar("T")


class ErrorKind(StrEnum):
    """Failure categories.

    Attributes:
        VALIDATION: Caller supplied an invalid id or range.
        NOT_SYNCED: The cache is empty because no poll cycle has completed.
        NOT_FOUND: A specific plant/device/snapshot key has no cached value.
        TRANSPORT: Network, timeout, or protocol failure in a source client.
        DECODE: Malformed register response.
        UNSUPPORTED: Capability that is deliberately not implemented.
    """

    VALIDATION = "validation"
    NOT_SYNCED = "not_synced"
    NOT_FOUND = "not_found"
    TRANSPORT = "transport"
    DECODE = "decode"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True, slots=True)
class Result(Generic[T]):
    """Outcome of an operation that can fail without raising.

    Attributes:
        value: Payload on success, ``None`` on failure.
        error: Human-readable failure message, ``None`` on success.
        kind: Failure category, ``None`` on success.
    """

    value: T | None = None
    error: str | None = None
    kind: ErrorKind | None = None

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def is_failure(self) -> bool:
        return self.error is not None

    @classmethod
    def ok(cls, value: T | None = None) -> Result[T]:
        return cls(value=value)

    @classmethod
    def fail(cls, error: str, kind: ErrorKind = ErrorKind.TRANSPORT) -> Result[T]:
        return cls(error=error, kind=kind)
