"""
Auth endpoints
==============

POST /api/v1/auth/register -- create a patient, driver or admin account
POST /api/v1/auth/login    -- exchange credentials for a token pair
POST /api/v1/auth/refresh  -- exchange a refresh token for a new pair
POST /api/v1/auth/logout   -- stateless acknowledgement
GET  /api/v1/auth/verify   -- echo the identity behind a bearer token
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from meditransport.api.dependencies import get_current_identity, get_db
from meditransport.api.middleware import RATE_LIMIT, limiter
from meditransport.api.schemas import (
    AuthResponse,
    LoginRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    TokenRefreshResponse,
    VerifyResponse,
)
from meditransport.domain.entities import Identity
from meditransport.services.accounts import AccountService, tokens_for

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", status_code=201, response_model=AuthResponse)
@limiter.limit(RATE_LIMIT)
async def register(
    request: Request,
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db),
):
    user = await AccountService(db).register(
        name=body.name,
        email=body.email,
        password=body.password,
        role=body.role,
        phone=body.phone,
        license_number=body.license_number,
        vehicle_type=body.vehicle_type,
    )
    return {
        "message": "User registered successfully",
        "user": user,
        "tokens": tokens_for(user),
    }


@router.post("/login", response_model=AuthResponse)
@limiter.limit(RATE_LIMIT)
async def login(
    request: Request,
    body: LoginRequest,
    db: AsyncSession = Depends(get_db),
):
    user = await AccountService(db).login(body.email, body.password)
    return {"message": "Login successful", "user": user, "tokens": tokens_for(user)}


@router.post("/refresh", response_model=TokenRefreshResponse)
@limiter.limit(RATE_LIMIT)
async def refresh(
    request: Request,
    body: RefreshRequest,
    db: AsyncSession = Depends(get_db),
):
    user = await AccountService(db).refresh(body.refresh_token)
    return {"message": "Token refreshed successfully", "tokens": tokens_for(user)}


@router.post("/logout", response_model=MessageResponse)
async def logout():
    # Tokens are stateless; clients discard them.
    return {"message": "Logout successful"}


@router.get("/verify", response_model=VerifyResponse)
async def verify(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    user = await AccountService(db).users.get_by_id(identity.id)
    return {"valid": True, "user": user}
