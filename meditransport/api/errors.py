"""
Exception handlers
==================

Every failure leaves the API in one envelope::

    {"error": "...", "status": 404, "timestamp": "...", "path": "/api/v1/..."}

Validation failures add ``details``.  Storage and provider failures are
reported as 500 with ``Retry-After`` so clients know the request may be
repeated.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from meditransport.domain.errors import AppError, ServiceError

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = "5"


def error_body(
    request: Request, status: int, message: str, details: Any = None
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "error": message,
        "status": status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "path": request.url.path,
    }
    if details is not None:
        body["details"] = details
    return body


def _respond(
    request: Request,
    status: int,
    message: str,
    details: Any = None,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content=jsonable_encoder(error_body(request, status, message, details)),
        headers=headers,
    )


def _integrity_status(exc: IntegrityError) -> tuple[int, str]:
    text = str(exc.orig).lower()
    if "unique" in text or "duplicate" in text:
        return 409, "Resource already exists"
    if "foreign key" in text:
        return 400, "Referenced resource does not exist"
    if "not null" in text or "not-null" in text:
        return 400, "Required field missing"
    return 400, "Constraint violation"


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    headers = None
    if isinstance(exc, ServiceError):
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        headers = {"Retry-After": RETRY_AFTER_SECONDS}
    return _respond(request, exc.status_code, exc.message, exc.details, headers)


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())[1:]),
            "message": err.get("msg"),
        }
        for err in exc.errors()
    ]
    return _respond(request, 400, "Validation Error", details)


async def http_error_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return _respond(
        request, exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None)
    )


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    status, message = _integrity_status(exc)
    logger.info("Integrity error on %s: %s", request.url.path, exc.orig)
    return _respond(request, status, message)


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return _respond(
        request,
        500,
        "Service temporarily unavailable",
        headers={"Retry-After": RETRY_AFTER_SECONDS},
    )


async def timeout_error_handler(request: Request, exc: TimeoutError) -> JSONResponse:
    logger.error("Timeout on %s %s", request.method, request.url.path)
    return _respond(
        request,
        500,
        "Service temporarily unavailable",
        headers={"Retry-After": RETRY_AFTER_SECONDS},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
    app.add_exception_handler(TimeoutError, timeout_error_handler)
