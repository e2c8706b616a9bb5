"""
Ride endpoints
==============

GET   /api/v1/rides                  -- rides visible to the caller
POST  /api/v1/rides                  -- book a ride (patients; admins for a patient)
GET   /api/v1/rides/{ride_id}        -- one ride, 404 outside the caller's scope
PATCH /api/v1/rides/{ride_id}        -- status / fare / distance / duration
POST  /api/v1/rides/{ride_id}/assign -- admin assigns a pending ride to a driver
GET   /api/v1/rides/{ride_id}/tracking -- latest position samples
POST  /api/v1/rides/{ride_id}/tracking -- assigned driver appends a sample
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from meditransport.api.dependencies import get_broadcaster, get_current_identity, get_db
from meditransport.api.middleware import RATE_LIMIT, limiter
from meditransport.api.schemas import (
    AssignRequest,
    CandidateDriver,
    CreatedRideEnvelope,
    CreatedRideResponse,
    RideCreateRequest,
    RideEnvelope,
    RideListEnvelope,
    RideUpdateRequest,
    TrackingCreateRequest,
    TrackingEnvelope,
    TrackingRecordedEnvelope,
)
from meditransport.domain.entities import Identity, Location
from meditransport.domain.enums import RideStatus
from meditransport.infrastructure.broadcast import Broadcaster
from meditransport.services.rides import RideService
from meditransport.services.tracking import TrackingService

router = APIRouter(prefix="/rides", tags=["rides"])


def _candidate(row) -> CandidateDriver:
    driver, name = row[0], row[1]
    return CandidateDriver(
        id=driver.id,
        user_id=driver.user_id,
        name=name,
        vehicle_type=driver.vehicle_type,
        rating=driver.rating,
    )


@router.get("", response_model=RideListEnvelope, summary="List visible rides")
@limiter.limit(RATE_LIMIT)
async def list_rides(
    request: Request,
    status: Optional[RideStatus] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    page = await RideService(db, broadcaster).list(identity, status, limit, offset)
    return {
        "rides": page.items,
        "pagination": {"limit": page.limit, "offset": page.offset, "total": page.total},
    }


@router.post(
    "",
    status_code=201,
    response_model=CreatedRideEnvelope,
    summary="Book a ride",
    description=(
        "Creates a pending ride with an estimated fare. When vehicleType is "
        "given, up to five available drivers of that type are suggested; "
        "nothing is reserved."
    ),
)
@limiter.limit(RATE_LIMIT)
async def create_ride(
    request: Request,
    body: RideCreateRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    ride, candidates = await RideService(db, broadcaster).create(
        identity,
        start_location=body.start_location,
        end_location=body.end_location,
        start=Location(body.start_latitude, body.start_longitude),
        end=Location(body.end_latitude, body.end_longitude),
        ride_date=body.ride_date,
        special_requirements=body.special_requirements,
        emergency_contact=body.emergency_contact,
        vehicle_type=body.vehicle_type,
        patient_id=body.patient_id,
    )
    out = CreatedRideResponse.model_validate(ride)
    if candidates is not None:
        out.available_drivers = [_candidate(row) for row in candidates]
    return {"message": "Ride booked successfully", "ride": out}


@router.get("/{ride_id}", response_model=RideEnvelope, summary="Get one ride")
@limiter.limit(RATE_LIMIT)
async def get_ride(
    request: Request,
    ride_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    ride = await RideService(db, broadcaster).get(identity, ride_id)
    return {"ride": ride}


@router.patch(
    "/{ride_id}",
    response_model=RideEnvelope,
    summary="Update a ride",
    description=(
        "Drivers update rides assigned to them, admins any ride. Status "
        "changes must follow accepted -> in-progress -> completed, with "
        "cancel allowed before the ride starts; anything else is 409. "
        "Only assignment moves a pending ride to accepted."
    ),
)
@limiter.limit(RATE_LIMIT)
async def update_ride(
    request: Request,
    ride_id: int,
    body: RideUpdateRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    ride = await RideService(db, broadcaster).update(
        identity,
        ride_id,
        status=body.status,
        fare=body.fare,
        distance=body.distance,
        duration_minutes=body.duration_minutes,
    )
    return {"message": "Ride updated successfully", "ride": ride}


@router.post(
    "/{ride_id}/assign",
    response_model=RideEnvelope,
    summary="Assign a pending ride to a driver",
)
@limiter.limit(RATE_LIMIT)
async def assign_ride(
    request: Request,
    ride_id: int,
    body: AssignRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    ride = await RideService(db, broadcaster).assign(identity, ride_id, body.driver_id)
    return {"message": "Driver assigned successfully", "ride": ride}


# ── Tracking ──────────────────────────────────────────────────────────


@router.get(
    "/{ride_id}/tracking",
    response_model=TrackingEnvelope,
    summary="Latest tracking samples, newest first",
)
@limiter.limit(RATE_LIMIT)
async def get_tracking(
    request: Request,
    ride_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    samples = await TrackingService(db, broadcaster).history(identity, ride_id)
    return {"ride_id": ride_id, "tracking": samples}


@router.post(
    "/{ride_id}/tracking",
    status_code=201,
    response_model=TrackingRecordedEnvelope,
    summary="Record a position sample",
)
@limiter.limit(RATE_LIMIT)
async def record_tracking(
    request: Request,
    ride_id: int,
    body: TrackingCreateRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    sample = await TrackingService(db, broadcaster).record(
        identity,
        ride_id,
        latitude=body.latitude,
        longitude=body.longitude,
        speed=body.speed,
        heading=body.heading,
    )
    return {"message": "Tracking data recorded", "sample": sample}
