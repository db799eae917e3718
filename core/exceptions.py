"""Domain exceptions and the HTTP handlers that surface them.

Errors fall into three groups:
- DataStoreError: the record store failed; the message is kept verbatim
- ValidationFailed: input rejected before any write
- PermissionDenied: the acting user lacks the role for the operation

RecordNotFound covers single-row lookups that found nothing.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from core.logging import get_logger

logger = get_logger(__name__)


class TrackerError(Exception):
    """Base class for all tracker errors."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DataStoreError(TrackerError):
    status_code = 502


class ValidationFailed(TrackerError):
    status_code = 422


class PermissionDenied(TrackerError):
    status_code = 403


class RecordNotFound(TrackerError):
    status_code = 404

    def __init__(self, table: str, key: str):
        super().__init__(f"{table} record not found: {key}")
        self.table = table
        self.key = key


def setup_exception_handlers(app: FastAPI) -> None:
    """Register a handler that turns TrackerError into a JSON response."""

    @app.exception_handler(TrackerError)
    async def tracker_error_handler(request: Request, exc: TrackerError) -> JSONResponse:
        if isinstance(exc, DataStoreError):
            logger.error("data_store_error", path=request.url.path, error=exc.message)
        else:
            logger.info(
                "request_rejected",
                path=request.url.path,
                error_type=type(exc).__name__,
                error=exc.message,
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "error_type": type(exc).__name__},
        )
