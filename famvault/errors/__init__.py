"""
famvault error taxonomy

Exceptions raised inside the core and the OperationResult returned at its boundary.
"""

from famvault.errors.types import (
    ErrorKind,
    STATUS_BY_KIND,
    FamVaultError,
    NotFoundError,
    PermissionDeniedError,
    InvalidTransitionError,
    StructuralConflictError,
    StorageFailureError,
    ValidationError,
)
from famvault.errors.results import OperationResult

__all__ = [
    "ErrorKind",
    "STATUS_BY_KIND",
    "FamVaultError",
    "NotFoundError",
    "PermissionDeniedError",
    "InvalidTransitionError",
    "StructuralConflictError",
    "StorageFailureError",
    "ValidationError",
    "OperationResult",
]
