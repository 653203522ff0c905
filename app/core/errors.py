"""Exception handlers registered on the FastAPI app.

Expected failures travel as Result objects. The handlers here cover what
escapes a service: HTTP errors raised by dependencies, request validation,
optimistic-concurrency conflicts, and database errors raised by a lookup that
runs ahead of a service's own guarded block.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from app.core.result import envelope

logger = logging.getLogger(__name__)

CONCURRENCY_MESSAGE = "The record was modified by another request. Reload it and try again."


def stale_data_exception_handler(request: Request, exc: StaleDataError):
    logger.warning(f"Concurrency conflict on {request.method} {request.url.path} | error={exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=envelope(False, CONCURRENCY_MESSAGE),
    )


def database_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Database error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=envelope(False, f"Request failed: {exc}"),
    )


def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded):
    logger.warning(f"Rate limit hit on {request.method} {request.url.path} | limit={exc.detail}")
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=envelope(False, f"Rate limit exceeded: {exc.detail}"),
    )


def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=envelope(False, str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=envelope(False, "Invalid request", jsonable_encoder(exc.errors())),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StaleDataError, stale_data_exception_handler)
    app.add_exception_handler(SQLAlchemyError, database_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
