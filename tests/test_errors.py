"""
Error taxonomy, OperationResult and storage failure wrapping
"""

import sqlite3

import pytest

from famvault.db import storage_errors
from famvault.errors import (
    ErrorKind,
    InvalidTransitionError,
    FamVaultError,
    NotFoundError,
    OperationResult,
    StorageFailureError,
)
from famvault.errors.handler import ErrorHandler


def test_not_found_details():
    error = NotFoundError("request", "r1")

    assert error.kind == ErrorKind.NOT_FOUND
    assert error.status_code == 404
    assert "r1" in error.message


def test_invalid_transition_carries_status():
    error = InvalidTransitionError("already decided", status="approved", details={"request_id": "r1"})

    assert error.status == "approved"
    assert error.details == {"request_id": "r1", "status": "approved"}


def test_storage_errors_wraps_sqlite_error():
    original = sqlite3.OperationalError("database is locked")

    with pytest.raises(StorageFailureError) as exc_info:
        with storage_errors("approve_request"):
            raise original

    assert exc_info.value.__cause__ is original
    assert exc_info.value.kind == ErrorKind.STORAGE_FAILURE
    assert exc_info.value.details["operation"] == "approve_request"


def test_storage_errors_passes_other_errors():
    with pytest.raises(NotFoundError):
        with storage_errors("load"):
            raise NotFoundError("member", "m1")


def test_operation_result_failure_round_trip():
    result = OperationResult.failure(InvalidTransitionError("nope", status="rejected"))

    assert not result.ok
    assert result.error_kind == ErrorKind.INVALID_TRANSITION
    with pytest.raises(FamVaultError) as exc_info:
        result.unwrap()
    assert exc_info.value.status_code == 409


def test_operation_result_success():
    assert OperationResult.success(42).unwrap() == 42


def test_error_response_body():
    response = ErrorHandler.to_error_response(NotFoundError("permission", "p1"))
    body = response.model_dump()

    assert body["success"] is False
    assert body["error_code"] == "NOT_FOUND"
    assert isinstance(body["timestamp"], str)
