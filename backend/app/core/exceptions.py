"""
Domain error taxonomy and the handlers that render it.

Workflow errors subclass HTTPException so services can raise them directly
and FastAPI answers with {"detail": message}. Provider failures raise
UpstreamError, which callers catch and degrade on.
"""

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.logging import get_logger

logger = get_logger(__name__)


class DomainError(HTTPException):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str):
        super().__init__(status_code=self.status_code, detail=detail)


class ValidationError(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND


class InvalidStateError(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST


class GoneError(InvalidStateError):
    status_code = status.HTTP_410_GONE


class UnauthorizedError(DomainError):
    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN


class DuplicateBookingError(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST


class AlreadyOnListError(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidTokenError(ValidationError):
    pass


class EventMismatchError(ValidationError):
    pass


class UpstreamError(Exception):
    """A payment, email or other provider call failed."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        self.message = message
        super().__init__(f"{provider}: {message}")


def _describe_validation_error(exc: RequestValidationError) -> str:
    missing = []
    messages = []
    for error in exc.errors():
        field = str(error["loc"][-1]) if error.get("loc") else "body"
        if error.get("type") in ("missing", "string_too_short"):
            missing.append(field)
        elif field.endswith("email"):
            messages.append("Invalid email format")
        else:
            message = str(error.get("msg", "Invalid value"))
            messages.append(message.removeprefix("Value error, "))
    if missing:
        return f"Missing required fields: {', '.join(missing)}"
    return messages[0] if messages else "Invalid request"


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    logger.info("request_rejected", status_code=exc.status_code, detail=exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    detail = _describe_validation_error(exc)
    logger.info("request_invalid", detail=detail)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": detail})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
