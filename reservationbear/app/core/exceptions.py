"""Domain errors and their mapping onto HTTP responses."""

from collections.abc import Iterable
from uuid import UUID

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger


class DomainError(Exception):
    """Base domain error with a message and the HTTP status it maps to."""

    status_code: int = 400

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    @property
    def extra(self) -> dict:
        return {}


class ValidationError(DomainError):
    """Malformed or empty input, e.g. an empty table set."""

    status_code = 400


class UnauthorizedError(DomainError):
    """Confirmation token mismatch."""

    status_code = 401


class NotFoundError(DomainError):
    status_code = 404


class ConflictError(DomainError):
    """Requested tables are already booked (or held) for an overlapping interval."""

    status_code = 409

    def __init__(self, message: str, table_ids: Iterable[UUID] = ()):
        self.table_ids = sorted(set(table_ids), key=str)
        super().__init__(message)

    @property
    def extra(self) -> dict:
        return {"tables": [str(table_id) for table_id in self.table_ids]}


class ServiceUnavailableError(DomainError):
    status_code = 503


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, **exc.extra},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
