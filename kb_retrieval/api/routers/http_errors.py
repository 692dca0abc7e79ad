"""Translate service errors into HTTP responses."""
import logging

from fastapi import HTTPException

from ..services.errors import (
    AlreadyExistsError,
    BackendCallError,
    ConfigurationError,
    InvalidInputError,
    NotFoundError,
    RetrievalCancelledError,
    UnsupportedBackendError,
)

logger = logging.getLogger(__name__)


def to_http_exception(error: Exception, action: str) -> HTTPException:
    if isinstance(error, HTTPException):
        return error
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, (ConfigurationError, UnsupportedBackendError, InvalidInputError)):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, RetrievalCancelledError):
        return HTTPException(status_code=504, detail=str(error))
    if isinstance(error, BackendCallError):
        logger.error(f"Failed to {action}: {error}")
        return HTTPException(status_code=502, detail=str(error))
    if isinstance(error, AlreadyExistsError):
        return HTTPException(status_code=409, detail=str(error))
    logger.error(f"Failed to {action}: {error}", exc_info=True)
    return HTTPException(status_code=500, detail=str(error))
