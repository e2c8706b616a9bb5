"""
Vehicle endpoints
=================

GET    /api/v1/vehicles      -- admins see all, drivers their own
POST   /api/v1/vehicles      -- driver registers their vehicle (one each)
PATCH  /api/v1/vehicles/{id} -- owning driver edits it
DELETE /api/v1/vehicles/{id} -- admin removes it
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from meditransport.api.dependencies import get_current_identity, get_db
from meditransport.api.middleware import RATE_LIMIT, limiter
from meditransport.api.schemas import (
    MessageResponse,
    OwnedVehicleResponse,
    VehicleCreateRequest,
    VehicleEnvelope,
    VehicleListEnvelope,
    VehicleUpdateRequest,
)
from meditransport.domain.entities import Identity
from meditransport.services.fleet import FleetService

router = APIRouter(prefix="/vehicles", tags=["vehicles"])


@router.get("", response_model=VehicleListEnvelope)
@limiter.limit(RATE_LIMIT)
async def list_vehicles(
    request: Request,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    vehicles = []
    for vehicle, owner_user_id, driver_name in await FleetService(db).list_vehicles(identity):
        out = OwnedVehicleResponse.model_validate(vehicle)
        out.owner_user_id = owner_user_id
        out.driver_name = driver_name
        vehicles.append(out)
    return {"vehicles": vehicles}


@router.post("", status_code=201, response_model=VehicleEnvelope)
@limiter.limit(RATE_LIMIT)
async def add_vehicle(
    request: Request,
    body: VehicleCreateRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    vehicle = await FleetService(db).add_vehicle(identity, **body.model_dump())
    return {"message": "Vehicle added successfully", "vehicle": vehicle}


@router.patch("/{vehicle_id}", response_model=VehicleEnvelope)
@limiter.limit(RATE_LIMIT)
async def update_vehicle(
    request: Request,
    vehicle_id: int,
    body: VehicleUpdateRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    vehicle = await FleetService(db).update_vehicle(
        identity, vehicle_id, **body.model_dump(exclude_unset=True)
    )
    return {"message": "Vehicle updated successfully", "vehicle": vehicle}


@router.delete("/{vehicle_id}", response_model=MessageResponse)
@limiter.limit(RATE_LIMIT)
async def delete_vehicle(
    request: Request,
    vehicle_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    await FleetService(db).delete_vehicle(identity, vehicle_id)
    return {"message": "Vehicle deleted successfully"}
