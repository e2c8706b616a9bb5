"""Rate limiting (slowapi) and request logging."""

import logging
import time

from fastapi import FastAPI, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from meditransport.config import settings

logger = logging.getLogger("meditransport.requests")

limiter = Limiter(
    key_func=get_remote_address,
    enabled=settings.rate_limit_enabled,
)

RATE_LIMIT = settings.rate_limit


def register_request_logging(app: FastAPI) -> None:
    @app.middleware("http")
    async def _log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "%s %s -> %s (%.1f ms)",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
        return response
