# api/errors.py
import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from services.errors import (
    AlreadyRegisteredError,
    ConcurrentUpdateError,
    ExchangeError,
    InternalFailure,
    NoLiquidityError,
    NotFoundError,
    PermissionDeniedError,
    RateUnavailableError,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_CODES = {
    ValidationError: 400,
    PermissionDeniedError: 403,
    NotFoundError: 404,
    NoLiquidityError: 409,
    AlreadyRegisteredError: 409,
    ConcurrentUpdateError: 409,
    RateUnavailableError: 502,
}


def register_error_handlers(app):
    @app.exception_handler(ExchangeError)
    async def handle_exchange_error(request: Request, e: ExchangeError):
        status = STATUS_CODES.get(type(e))
        if status is None or isinstance(e, InternalFailure):
            logger.error("%s %s failed: %r", request.method, request.url.path, e)
            return JSONResponse(
                status_code=500,
                content={"error": "Internal Server Error", "message": "The request could not be completed."},
            )
        logger.info("%s %s -> %s: %s", request.method, request.url.path, status, e)
        return JSONResponse(
            status_code=status,
            content={"error": type(e).__name__, "message": str(e)},
        )

    @app.exception_handler(Exception)
    async def handle_exception(request: Request, e: Exception):
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal Server Error", "message": "An unexpected error occurred."},
        )
