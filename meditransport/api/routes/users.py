"""
User endpoints
==============

GET   /api/v1/users/profile -- own profile (drivers also get driverInfo)
PATCH /api/v1/users/profile -- update name / phone
GET   /api/v1/users         -- admin listing with role filter
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from meditransport.api.dependencies import get_current_identity, get_db
from meditransport.api.middleware import RATE_LIMIT, limiter
from meditransport.api.schemas import (
    DriverInfoResponse,
    ProfileEnvelope,
    ProfileResponse,
    ProfileUpdateRequest,
    UserEnvelope,
    UserListEnvelope,
    VehicleResponse,
)
from meditransport.domain.entities import Identity
from meditransport.domain.enums import Role
from meditransport.services.accounts import AccountService

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/profile", response_model=ProfileEnvelope)
@limiter.limit(RATE_LIMIT)
async def get_profile(
    request: Request,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    found = await AccountService(db).profile(identity)
    profile = ProfileResponse.model_validate(found["user"])
    info = found["driver_info"]
    if info is not None:
        driver, vehicle = info["driver"], info["vehicle"]
        profile.driver_info = DriverInfoResponse.model_validate(driver)
        if vehicle is not None:
            profile.driver_info.vehicle = VehicleResponse.model_validate(vehicle)
    return {"user": profile}


@router.patch("/profile", response_model=UserEnvelope)
@limiter.limit(RATE_LIMIT)
async def update_profile(
    request: Request,
    body: ProfileUpdateRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    user = await AccountService(db).update_profile(
        identity, name=body.name, phone=body.phone
    )
    return {"message": "Profile updated successfully", "user": user}


@router.get("", response_model=UserListEnvelope)
@limiter.limit(RATE_LIMIT)
async def list_users(
    request: Request,
    role: Optional[Role] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    users, total = await AccountService(db).list_users(identity, role, limit, offset)
    return {
        "users": users,
        "pagination": {"limit": limit, "offset": offset, "total": total},
    }
