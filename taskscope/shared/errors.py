"""Error taxonomy shared by the core services and the HTTP layer."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from taskscope.shared.models import ErrorResponse

logger = logging.getLogger(__name__)


class ServiceError(HTTPException):
    """Base class for every failure the core reports to its caller."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "error"
    default_detail: str = "Request failed"

    def __init__(self, detail: Optional[str] = None, headers: Optional[dict[str, str]] = None) -> None:
        super().__init__(
            status_code=type(self).status_code,
            detail=detail or self.default_detail,
            headers=headers,
        )


class UnauthenticatedError(ServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "unauthenticated"
    default_detail = "Not authenticated"

    def __init__(self, detail: Optional[str] = None) -> None:
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class ForbiddenError(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "forbidden"
    default_detail = "Forbidden"


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "not_found"
    default_detail = "Not found"


class InvalidInputError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "invalid_input"
    default_detail = "Invalid input"


class ConflictError(InvalidInputError):
    """Duplicate resource; reported as invalid input (400)."""

    error_code = "conflict"
    default_detail = "Resource already exists"


# Exception handlers

async def _service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    body = ErrorResponse(detail=exc.detail, error_code=exc.error_code)
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(),
        headers=exc.headers,
    )


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    body = ErrorResponse(detail="; ".join(messages) or "Invalid input", error_code="invalid_input")
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body.model_dump())


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(detail="Internal server error", error_code="internal_error").model_dump(),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, _service_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
