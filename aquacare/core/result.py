"""Typed error kinds and the Result type returned at the service boundary."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Failure categories callers branch on."""

    NOT_FOUND = "NotFound"
    CONFLICT = "Conflict"
    QUOTA_EXHAUSTED = "QuotaExhausted"
    AMBIGUOUS_IDENTITY = "AmbiguousIdentity"
    SYNC_DRIFT = "SyncDrift"


class ContractError(Exception):
    """Base class for recoverable domain failures."""

    kind: ErrorKind = ErrorKind.CONFLICT

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class NotFoundError(ContractError):
    """Customer, account, contract or ticket id does not resolve."""

    kind = ErrorKind.NOT_FOUND


class ConflictError(ContractError):
    """Duplicate creation or an illegal state transition."""

    kind = ErrorKind.CONFLICT


class QuotaExhaustedError(ContractError):
    """No service visits left on the contract."""

    kind = ErrorKind.QUOTA_EXHAUSTED

    RENEWAL_PROMPT = "All service visits have been used. Please renew your contract."

    def __init__(self, message: str | None = None, **details: Any) -> None:
        super().__init__(message or self.RENEWAL_PROMPT, **details)


@dataclass
class ServiceError:
    """Structured error carried by a failed Result."""

    kind: ErrorKind
    message: str
    details: dict[str, Any] | None = None


@dataclass
class Result(Generic[T]):
    """Outcome of a service call: either a value or a ServiceError."""

    value: T | None = None
    error: ServiceError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str, details: dict[str, Any] | None = None) -> "Result[T]":
        return cls(error=ServiceError(kind=kind, message=message, details=details or None))

    @classmethod
    def from_error(cls, exc: ContractError) -> "Result[T]":
        return cls.fail(exc.kind, exc.message, exc.details)

    def unwrap(self) -> T:
        """Return the value or raise the carried error as a ContractError."""
        if self.error is not None:
            error_cls = _ERROR_CLASSES.get(self.error.kind, ContractError)
            raise error_cls(self.error.message, **(self.error.details or {}))
        return self.value  # type: ignore[return-value]


_ERROR_CLASSES: dict[ErrorKind, type[ContractError]] = {
    ErrorKind.NOT_FOUND: NotFoundError,
    ErrorKind.CONFLICT: ConflictError,
    ErrorKind.QUOTA_EXHAUSTED: QuotaExhaustedError,
}
