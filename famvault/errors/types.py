"""
Error Types - Error kinds and exception classes for the permission core

Contains:
- ErrorKind enum (one member per failure category the core can report)
- Exception classes (FamVaultError and subclasses)

Components raise these; the access facade turns them into OperationResult
values and the HTTP layer turns them into ErrorResponse bodies.
"""

from typing import Optional, Dict, Any
from enum import Enum


class ErrorKind(str, Enum):
    """Standard error kinds"""
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    INVALID_TRANSITION = "invalid_transition"
    STRUCTURAL_CONFLICT = "structural_conflict"
    STORAGE_FAILURE = "storage_failure"
    VALIDATION = "validation"


# HTTP status per kind, used when a failure is rebuilt from an OperationResult
STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.PERMISSION_DENIED: 403,
    ErrorKind.INVALID_TRANSITION: 409,
    ErrorKind.STRUCTURAL_CONFLICT: 409,
    ErrorKind.STORAGE_FAILURE: 503,
    ErrorKind.VALIDATION: 400,
}


class FamVaultError(Exception):
    """Base exception for famvault"""

    def __init__(
        self,
        message: str,
        kind: ErrorKind,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.kind = kind
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(FamVaultError):
    """A request, permission, member or resource id did not resolve"""

    def __init__(self, resource: str, identifier: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        if identifier:
            message = f"{resource} not found: {identifier}"
        else:
            message = f"{resource} not found"
        details = dict(details or {})
        details.setdefault("resource", resource)
        if identifier:
            details.setdefault("id", identifier)
        super().__init__(
            message=message,
            kind=ErrorKind.NOT_FOUND,
            status_code=404,
            details=details
        )


class PermissionDeniedError(FamVaultError):
    """Actor lacks authority for the requested mutation"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            kind=ErrorKind.PERMISSION_DENIED,
            status_code=403,
            details=details
        )


class InvalidTransitionError(FamVaultError):
    """
    State machine rule violated

    Covers a wrong starting status, self-delegation and cross-family targets.
    `status` is the offending current status when there is one.
    """

    def __init__(self, message: str, status: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        if status is not None:
            details["status"] = status
        self.status = status
        super().__init__(
            message=message,
            kind=ErrorKind.INVALID_TRANSITION,
            status_code=409,
            details=details
        )


class StructuralConflictError(FamVaultError):
    """Hierarchy cycle, or a duplicate request for something already requested"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            kind=ErrorKind.STRUCTURAL_CONFLICT,
            status_code=409,
            details=details
        )


class StorageFailureError(FamVaultError):
    """Persistence collaborator failed; the original exception is kept as __cause__"""

    def __init__(self, operation: str, error: Exception):
        self.operation = operation
        self.original = error
        super().__init__(
            message=f"Storage failure during {operation}: {error}",
            kind=ErrorKind.STORAGE_FAILURE,
            status_code=503,
            details={"operation": operation, "original_error": str(error)}
        )


class ValidationError(FamVaultError):
    """Input rejected before any state was touched"""

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        if field:
            details["field"] = field
        super().__init__(
            message=message,
            kind=ErrorKind.VALIDATION,
            status_code=400,
            details=details
        )


__all__ = [
    # Enum
    "ErrorKind",
    "STATUS_BY_KIND",
    # Exception classes
    "FamVaultError",
    "NotFoundError",
    "PermissionDeniedError",
    "InvalidTransitionError",
    "StructuralConflictError",
    "StorageFailureError",
    "ValidationError",
]
