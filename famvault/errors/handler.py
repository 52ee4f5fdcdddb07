"""
Error Handler for famvault HTTP routes

Converts FamVaultError into the standard ErrorResponse body.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from famvault.errors.types import FamVaultError, ErrorKind
from famvault.routes.schemas import ErrorResponse

logger = logging.getLogger(__name__)


class ErrorHandler:
    """Centralized error handling"""

    @staticmethod
    def to_error_response(error: FamVaultError) -> ErrorResponse:
        """Convert FamVaultError to ErrorResponse"""
        return ErrorResponse(
            error_code=error.kind.value.upper(),
            message=error.message,
            details=error.details or None,
        )


async def famvault_error_handler(request: Request, exc: FamVaultError) -> JSONResponse:
    """FastAPI exception handler for FamVaultError"""
    if exc.kind == ErrorKind.STORAGE_FAILURE:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.kind.value}")

    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorHandler.to_error_response(exc).model_dump(),
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(FamVaultError, famvault_error_handler)


__all__ = [
    "ErrorHandler",
    "famvault_error_handler",
    "register_error_handlers",
]
