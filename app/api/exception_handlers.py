# app/api/exception_handlers.py

import logging
from typing import TYPE_CHECKING
from fastapi import Request
from fastapi.responses import JSONResponse
from exceptions.domain_exceptions import DomainException, TransientException

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    """
    Global exception handler for domain exceptions in FastAPI

    Returns a consistent JSON response format for all domain exceptions
    """
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.__class__.__name__,
            "kind": exc.kind.value,
            "message": exc.message,
            "details": exc.details,
            "path": request.url.path
        }
    )


async def transient_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render database/transport outages as a retryable TransientException"""
    logger.warning(f"Transient failure on {request.url.path}: {exc}")
    return await domain_exception_handler(
        request,
        TransientException(message="Service temporarily unavailable, please retry")
    )


def register_exception_handlers(app: "FastAPI") -> None:
    """
    Register all domain exception handlers with FastAPI app

    Usage:
        from api.exception_handlers import register_exception_handlers

        app = FastAPI()
        register_exception_handlers(app)
    """
    from sqlalchemy.exc import InterfaceError, OperationalError
    from redis.exceptions import ConnectionError as RedisConnectionError

    # Subclasses resolve to the DomainException handler through the MRO
    app.add_exception_handler(DomainException, domain_exception_handler)
    app.add_exception_handler(OperationalError, transient_error_handler)
    app.add_exception_handler(InterfaceError, transient_error_handler)
    app.add_exception_handler(RedisConnectionError, transient_error_handler)
