"""
Operation Results

Tagged result type returned by every operation of the access facade.
Exactly one of `value` / `error_kind` is meaningful, selected by `ok`.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Optional, TypeVar

from .types import ErrorKind, FamVaultError, STATUS_BY_KIND

T = TypeVar("T")


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """
    Outcome of a core operation

    Attributes:
        ok: True on success
        value: Operation payload when ok
        error_kind: ErrorKind when not ok
        message: Human-readable failure message
        details: Structured context (ids involved, offending status)
    """
    ok: bool
    value: Optional[T] = None
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, value: T = None) -> "OperationResult[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: FamVaultError) -> "OperationResult[T]":
        return cls(
            ok=False,
            error_kind=error.kind,
            message=error.message,
            details=dict(error.details),
        )

    def unwrap(self) -> T:
        """Return the value or raise a FamVaultError rebuilt from the failure"""
        if self.ok:
            return self.value
        raise FamVaultError(
            self.message or "operation failed",
            self.error_kind,
            status_code=STATUS_BY_KIND.get(self.error_kind, 500),
            details=self.details,
        )
