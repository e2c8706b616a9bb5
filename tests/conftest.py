"""
Shared test fixtures.

Uses a throw-away SQLite database file (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  A file rather than ``:memory:`` lets several
sessions hold their own connections, which the concurrent-assignment tests
rely on.  The environment is set before ``meditransport`` is imported
because the engine and settings are built at import time.
"""

import os
import tempfile
import uuid
from typing import AsyncGenerator

_DB_DIR = tempfile.mkdtemp(prefix="meditransport-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["BROADCAST_BACKEND"] = "memory"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["PAYMENT_WEBHOOK_SECRET"] = "whsec_test"
os.environ["PAYMENT_SECRET_KEY"] = "sk_test"
os.environ["AUTO_CREATE_SCHEMA"] = "false"

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from meditransport.api import dependencies  # noqa: E402
from meditransport.api.app import create_app  # noqa: E402
from meditransport.infrastructure import models  # noqa: E402,F401
from meditransport.infrastructure.broadcast import InMemoryBroadcaster  # noqa: E402
from meditransport.infrastructure.database import (  # noqa: E402
    Base,
    async_session_factory,
    engine,
)
from meditransport.infrastructure.payments import PaymentProvider  # noqa: E402

from tests.helpers import PASSWORD, auth, future_date  # noqa: E402


# ── Fake payment provider ─────────────────────────────────────────────


class FakeProviderAPI:
    """In-process stand-in for the provider's REST API (httpx MockTransport)."""

    def __init__(self):
        self.intents: dict[str, dict] = {}
        self.fail_with: int | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, json={"error": {"message": "boom"}})
        path = request.url.path
        if request.method == "POST" and path == "/v1/payment_intents":
            form = dict(httpx.QueryParams(request.content.decode()))
            intent_id = f"pi_{uuid.uuid4().hex[:16]}"
            intent = {
                "id": intent_id,
                "status": "requires_payment_method",
                "amount": int(form["amount"]),
                "currency": form["currency"],
                "client_secret": f"{intent_id}_secret",
                "metadata": {
                    key[len("metadata["):-1]: value
                    for key, value in form.items()
                    if key.startswith("metadata[")
                },
            }
            self.intents[intent_id] = intent
            return httpx.Response(200, json=intent)
        if request.method == "GET" and path.startswith("/v1/payment_intents/"):
            intent = self.intents.get(path.rsplit("/", 1)[1])
            if intent is None:
                return httpx.Response(404, json={"error": {"message": "No such intent"}})
            return httpx.Response(200, json=intent)
        return httpx.Response(404, json={"error": {"message": "Unknown route"}})

    def set_status(self, intent_id: str, status: str) -> None:
        self.intents[intent_id]["status"] = status


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def tables() -> AsyncGenerator[None, None]:
    """Create tables, run the test, then drop everything."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    # Pooled aiosqlite connections belong to this test's event loop.
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(tables) -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        yield session


@pytest.fixture
def broadcaster() -> InMemoryBroadcaster:
    return InMemoryBroadcaster()


@pytest.fixture
def provider_api() -> FakeProviderAPI:
    return FakeProviderAPI()


@pytest_asyncio.fixture
async def provider(provider_api) -> AsyncGenerator[PaymentProvider, None]:
    client = PaymentProvider(
        api_base="https://payments.test",
        secret_key="sk_test",
        timeout=2.0,
        transport=httpx.MockTransport(provider_api.handler),
    )
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def client(tables, broadcaster, provider) -> AsyncGenerator[AsyncClient, None]:
    app = create_app()
    app.dependency_overrides[dependencies.get_broadcaster] = lambda: broadcaster
    app.dependency_overrides[dependencies.get_payment_provider] = lambda: provider
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac


# ── Helpers ───────────────────────────────────────────────────────────


@pytest.fixture
def register(client):
    """Register an account; returns ``(access_token, user_json)``."""

    async def _register(role: str = "patient", **overrides):
        suffix = uuid.uuid4().hex[:8]
        body = {
            "name": overrides.pop("name", f"Test {role.title()}"),
            "email": overrides.pop("email", f"{role}-{suffix}@example.com"),
            "password": PASSWORD,
            "role": role,
        }
        if role == "driver":
            body["licenseNumber"] = overrides.pop("licenseNumber", f"LIC-{suffix}")
            body["vehicleType"] = overrides.pop("vehicleType", "car")
        body.update(overrides)
        resp = await client.post("/api/v1/auth/register", json=body)
        assert resp.status_code == 201, resp.text
        data = resp.json()
        return data["tokens"]["accessToken"], data["user"]

    return _register


@pytest.fixture
def book_ride(client):
    """Book a ride as *token*; returns the ride JSON."""

    async def _book(token: str, **overrides):
        body = {
            "startLocation": "12 Oak St",
            "endLocation": "City General Hospital",
            "rideDate": future_date(),
        }
        body.update(overrides)
        resp = await client.post("/api/v1/rides", json=body, headers=auth(token))
        assert resp.status_code == 201, resp.text
        return resp.json()["ride"]

    return _book


@pytest.fixture
def driver_id_of(client):
    """Driver profile id for a driver's access token."""

    async def _driver_id(token: str) -> int:
        resp = await client.get("/api/v1/users/profile", headers=auth(token))
        assert resp.status_code == 200, resp.text
        return resp.json()["user"]["driverInfo"]["id"]

    return _driver_id
