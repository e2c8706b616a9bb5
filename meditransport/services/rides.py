"""
Ride lifecycle service
======================

Booking, scoped reads, driver/admin updates and admin assignment.

Concurrency safety
------------------
* **Assignment** is a compare-and-swap on ``status = 'pending'``: two
  concurrent assignments of the same ride yield one success and one
  ``Conflict``; nothing is written for the loser.
* **Status updates** are also conditional on the status the caller read,
  so a payment-driven completion landing in between is never overwritten.

Status changes are committed first and broadcast afterwards, so
subscribers never observe a state that was later rolled back.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from meditransport.config import settings
from meditransport.domain.entities import Identity, Location, check_transition
from meditransport.domain.enums import Capability, RideStatus, Role, VehicleType
from meditransport.domain.errors import (
    Conflict,
    Forbidden,
    InvalidStateTransition,
    NotFound,
)
from meditransport.domain.pricing import FareEngine
from meditransport.domain.visibility import Page, RideCriteria, ride_scope
from meditransport.infrastructure.broadcast import Broadcaster, publish_safely
from meditransport.infrastructure.models import RideModel
from meditransport.infrastructure.repositories import (
    DriverRepository,
    RideRepository,
    UserRepository,
)

logger = logging.getLogger(__name__)


def status_event(ride: RideModel) -> dict[str, Any]:
    return {
        "type": "status-update",
        "rideId": ride.id,
        "status": RideStatus(ride.status).value,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


class RideService:
    def __init__(
        self,
        session: AsyncSession,
        broadcaster: Broadcaster,
        fare_engine: Optional[FareEngine] = None,
    ):
        self.session = session
        self.broadcaster = broadcaster
        self.fares = fare_engine or FareEngine(settings.base_fare, settings.rate_per_mile)
        self.rides = RideRepository(session)
        self.drivers = DriverRepository(session)
        self.users = UserRepository(session)

    # ── Booking ───────────────────────────────────────────────────

    async def create(
        self,
        identity: Identity,
        *,
        start_location: str,
        end_location: str,
        start: Location,
        end: Location,
        ride_date: datetime,
        special_requirements: Optional[str] = None,
        emergency_contact: Optional[str] = None,
        vehicle_type: Optional[VehicleType] = None,
        patient_id: Optional[str] = None,
    ) -> tuple[RideModel, Optional[list[Any]]]:
        """Book a ride; returns the ride and, if asked, advisory candidates."""
        if not identity.can(Capability.BOOK_RIDE):
            raise Forbidden("Required role: patient or admin")
        requester_id = identity.id
        if patient_id is not None and patient_id != identity.id:
            if not identity.can(Capability.BOOK_FOR_PATIENT):
                raise Forbidden("Only admins may book on behalf of a patient")
            patient = await self.users.get_by_id(patient_id)
            if patient is None or Role(patient.role) is not Role.PATIENT:
                raise NotFound("Patient not found")
            requester_id = patient.id

        estimate = self.fares.estimate(start, end)
        ride = await self.rides.create(
            RideModel(
                user_id=requester_id,
                start_location=start_location,
                end_location=end_location,
                start_latitude=start.latitude,
                start_longitude=start.longitude,
                end_latitude=end.latitude,
                end_longitude=end.longitude,
                ride_date=ride_date,
                status=RideStatus.PENDING,
                fare=estimate.fare,
                distance=estimate.distance_miles,
                special_requirements=special_requirements,
                emergency_contact=emergency_contact,
            )
        )

        candidates = None
        if vehicle_type is not None:
            candidates = await self.drivers.list_available(
                vehicle_type, limit=settings.candidate_driver_limit
            )

        await self.session.commit()
        logger.info("Ride %s booked for %s (fare %.2f)", ride.id, requester_id, ride.fare)
        return ride, candidates

    # ── Reads ─────────────────────────────────────────────────────

    async def list(
        self,
        identity: Identity,
        status: Optional[RideStatus] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Page:
        criteria = RideCriteria(
            scope=ride_scope(identity), status=status, limit=limit, offset=offset
        )
        if criteria.scope.is_empty:
            return Page(limit=limit, offset=offset, total=0, items=[])
        items = await self.rides.list(criteria)
        total = await self.rides.count(criteria)
        return Page(limit=limit, offset=offset, total=total, items=items)

    async def get(self, identity: Identity, ride_id: int) -> RideModel:
        ride = await self.rides.get_visible(ride_id, ride_scope(identity))
        if ride is None:
            raise NotFound("Ride not found")
        return ride

    # ── Driver / admin updates ────────────────────────────────────

    async def update(
        self,
        identity: Identity,
        ride_id: int,
        *,
        status: Optional[RideStatus] = None,
        fare: Optional[float] = None,
        distance: Optional[float] = None,
        duration_minutes: Optional[int] = None,
    ) -> RideModel:
        if not identity.can(Capability.UPDATE_RIDE):
            raise Forbidden("Required role: driver or admin")

        ride = await self.rides.get_visible(ride_id, ride_scope(identity))
        if ride is None:
            raise NotFound("Ride not found or no permission")

        current = RideStatus(ride.status)
        status_changed = status is not None and status != current
        if status_changed:
            # Acceptance binds a driver, which only assignment does.
            if status is RideStatus.ACCEPTED:
                raise InvalidStateTransition(
                    "Rides are accepted by assigning a driver"
                )
            check_transition(current, status)
            if not await self.rides.set_status_if(ride_id, status, expected=current):
                await self.session.rollback()
                raise Conflict("Ride status changed concurrently; reload and retry")

        if fare is not None:
            ride.fare = fare
        if distance is not None:
            ride.distance = distance
        if duration_minutes is not None:
            ride.duration_minutes = duration_minutes
        await self.session.flush()
        await self.session.commit()

        ride = await self.rides.reload(ride_id)
        if status_changed:
            logger.info("Ride %s: %s -> %s by %s", ride_id, current.value, status.value, identity.id)
            await publish_safely(self.broadcaster, ride_id, status_event(ride))
        return ride

    # ── Assignment ────────────────────────────────────────────────

    async def assign(self, identity: Identity, ride_id: int, driver_id: int) -> RideModel:
        if not identity.can(Capability.ASSIGN_RIDE):
            raise Forbidden("Required role: admin")

        ride = await self.rides.get_by_id(ride_id)
        if ride is None:
            raise NotFound("Ride not found")
        if RideStatus(ride.status) is not RideStatus.PENDING:
            raise Conflict("Ride is not available for assignment")

        found = await self.drivers.get_with_vehicle(driver_id)
        if found is None or not found[0].availability:
            raise NotFound("Driver not found or not available")
        driver, vehicle = found

        won = await self.rides.assign(
            ride_id, driver.id, vehicle.id if vehicle is not None else None
        )
        if not won:
            await self.session.rollback()
            raise Conflict("Ride is not available for assignment")
        await self.session.commit()

        ride = await self.rides.reload(ride_id)
        logger.info("Ride %s assigned to driver %s", ride_id, driver.id)
        await publish_safely(self.broadcaster, ride_id, status_event(ride))
        return ride
