from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.features.scan.exceptions import RateLimitExceededError, ScanError
from app.platform.logger import get_logger
from app.platform.response import api_response

logger = get_logger(__name__)


def add_exception_handlers(app):
    @app.exception_handler(ScanError)
    async def scan_error_handler(request: Request, exc: ScanError):
        """Domain errors raised by routes and the gateway, rendered with their code."""
        data = {"code": exc.code}
        headers = None
        if isinstance(exc, RateLimitExceededError):
            data["retryAfter"] = exc.retry_after
            headers = {"Retry-After": str(exc.retry_after)}

        if exc.http_status >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.reason}")
        else:
            logger.info(f"{request.method} {request.url.path} rejected ({exc.http_status}): {exc.reason}")

        return api_response(
            data=data,
            message=exc.message,
            status_code=exc.http_status,
            headers=headers,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return api_response(
            message=str(exc.detail) or "Error",
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return api_response(
            message="Validation failed",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            data={"errors": exc.errors()},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception on {request.url.path}: {exc}")
        return api_response(
            message="Internal server error",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
