"""
Driver endpoints
================

GET   /api/v1/drivers/available    -- available drivers, best rated first
PATCH /api/v1/drivers/availability -- driver toggles own availability
GET   /api/v1/drivers/stats        -- driver's own ride statistics
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from meditransport.api.dependencies import get_current_identity, get_db
from meditransport.api.middleware import RATE_LIMIT, limiter
from meditransport.api.schemas import (
    AvailabilityRequest,
    AvailableDriverResponse,
    AvailableDriversEnvelope,
    DriverEnvelope,
    DriverStatsEnvelope,
    VehicleResponse,
)
from meditransport.domain.entities import Identity
from meditransport.domain.enums import VehicleType
from meditransport.services.fleet import FleetService

router = APIRouter(prefix="/drivers", tags=["drivers"])


def available_driver(row) -> AvailableDriverResponse:
    driver, name, email, phone, vehicle = row
    out = AvailableDriverResponse.model_validate(
        {
            "id": driver.id,
            "user_id": driver.user_id,
            "license_number": driver.license_number,
            "vehicle_type": driver.vehicle_type,
            "availability": driver.availability,
            "rating": driver.rating,
            "name": name,
            "email": email,
            "phone": phone,
        }
    )
    if vehicle is not None:
        out.vehicle = VehicleResponse.model_validate(vehicle)
    return out


@router.get("/available", response_model=AvailableDriversEnvelope)
@limiter.limit(RATE_LIMIT)
async def list_available(
    request: Request,
    vehicle_type: Optional[VehicleType] = Query(None, alias="vehicleType"),
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    rows = await FleetService(db).available_drivers(vehicle_type)
    return {"drivers": [available_driver(row) for row in rows]}


@router.patch("/availability", response_model=DriverEnvelope)
@limiter.limit(RATE_LIMIT)
async def set_availability(
    request: Request,
    body: AvailabilityRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    driver = await FleetService(db).set_availability(identity, body.availability)
    return {"message": "Availability updated successfully", "driver": driver}


@router.get("/stats", response_model=DriverStatsEnvelope)
@limiter.limit(RATE_LIMIT)
async def driver_stats(
    request: Request,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return {"stats": await FleetService(db).stats(identity)}
