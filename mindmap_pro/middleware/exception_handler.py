"""Exception handlers producing structured error responses."""

import logging

import sqlalchemy.exc
from fastapi import Request
from fastapi.responses import JSONResponse

from ..exceptions import MindmapProException, StorageError

logger = logging.getLogger(__name__)


async def mindmap_exception_handler(request: Request, exc: MindmapProException) -> JSONResponse:
    """
    Convert a MindmapProException into its JSON body and HTTP status.

    Client errors are logged at WARNING, server errors at ERROR.
    """
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"MindmapProException: {exc.error_code.value}",
        extra={
            "error_code": exc.error_code.value,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details,
            "status_code": exc.status_code
        }
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


async def storage_exception_handler(request: Request, exc: sqlalchemy.exc.SQLAlchemyError) -> JSONResponse:
    """Store failures that escaped ``commit_or_raise`` (e.g. during a query)."""
    logger.error(
        f"Unhandled store error: {type(exc).__name__}",
        exc_info=exc,
        extra={"path": request.url.path, "method": request.method},
    )
    error = StorageError("Storage operation failed", original_error=exc)
    return JSONResponse(status_code=error.status_code, content=error.to_dict())
