"""
FastAPI application factory.

* Registers routes for auth, users, drivers, vehicles, rides, payments and
  the per-ride WebSocket channel.
* Verifies the database on startup and closes the broadcaster and payment
  client on shutdown via lifespan events.
* Applies rate limiting, CORS and request logging.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from meditransport.api.dependencies import close_payment_provider
from meditransport.api.errors import register_exception_handlers
from meditransport.api.middleware import limiter, register_request_logging
from meditransport.api.routes import auth, drivers, payments, realtime, rides, users, vehicles
from meditransport.api.schemas import HealthResponse
from meditransport.config import settings
from meditransport.infrastructure.broadcast import close_broadcaster
from meditransport.infrastructure.database import check_connection, create_schema

logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Refuse to start without storage; release shared clients on shutdown."""
    await check_connection()
    if settings.auto_create_schema:
        await create_schema()
    yield
    await close_broadcaster()
    await close_payment_provider()


def health() -> dict:
    return {
        "status": "OK",
        "service": settings.app_name,
        "timestamp": datetime.now(timezone.utc),
    }


def create_app() -> FastAPI:
    app = FastAPI(
        title="MediTransport API",
        description=(
            "Non-emergency medical transportation: patients book rides, "
            "admins assign drivers, drivers report progress and position, "
            "and payments settle through the card provider."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    register_exception_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_request_logging(app)

    # Routers
    for module in (auth, users, drivers, vehicles, rides, payments):
        app.include_router(module.router, prefix="/api/v1")
    app.include_router(realtime.router)

    app.add_api_route("/health", health, response_model=HealthResponse, tags=["health"])
    app.add_api_route(
        "/api/v1/health", health, response_model=HealthResponse, tags=["health"]
    )

    return app

