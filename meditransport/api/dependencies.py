"""FastAPI dependency injection helpers."""

from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from meditransport.domain.entities import Identity
from meditransport.domain.errors import Unauthorized
from meditransport.infrastructure.broadcast import Broadcaster
from meditransport.infrastructure.broadcast import get_broadcaster as _get_broadcaster
from meditransport.infrastructure.database import async_session_factory
from meditransport.infrastructure.payments import PaymentProvider
from meditransport.infrastructure.security import decode_token
from meditransport.services.accounts import AccountService

bearer_scheme = HTTPBearer(auto_error=False)

_provider: Optional[PaymentProvider] = None


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_broadcaster() -> Broadcaster:
    return _get_broadcaster()


def get_payment_provider() -> PaymentProvider:
    global _provider
    if _provider is None:
        _provider = PaymentProvider()
    return _provider


async def close_payment_provider() -> None:
    global _provider
    if _provider is not None:
        await _provider.aclose()
        _provider = None


async def identity_from_token(token: str, db: AsyncSession) -> Identity:
    payload = decode_token(token)
    return await AccountService(db).resolve(payload["sub"])


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> Identity:
    """Resolve the bearer token to the caller; 401 when missing or invalid."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise Unauthorized("Access token required")
    return await identity_from_token(credentials.credentials, db)
