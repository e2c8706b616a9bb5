"""Tracking feed: append-only position samples per ride, broadcast live."""

from __future__ import annotations

from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from meditransport.config import settings
from meditransport.domain.entities import Identity
from meditransport.domain.enums import Capability
from meditransport.domain.errors import Forbidden, NotFound
from meditransport.domain.visibility import RideScope, ScopeKind, can_view_tracking
from meditransport.infrastructure.broadcast import Broadcaster, publish_safely
from meditransport.infrastructure.models import TrackingSampleModel
from meditransport.infrastructure.repositories import RideRepository, TrackingRepository


def location_event(sample: TrackingSampleModel) -> dict[str, Any]:
    return {
        "type": "location-update",
        "rideId": sample.ride_id,
        "latitude": sample.latitude,
        "longitude": sample.longitude,
        "speed": sample.speed,
        "heading": sample.heading,
        "timestamp": sample.timestamp.isoformat(),
    }


class TrackingService:
    def __init__(self, session: AsyncSession, broadcaster: Broadcaster):
        self.session = session
        self.broadcaster = broadcaster
        self.rides = RideRepository(session)
        self.samples = TrackingRepository(session)

    async def record(
        self,
        identity: Identity,
        ride_id: int,
        *,
        latitude: float,
        longitude: float,
        speed: Optional[float] = None,
        heading: Optional[float] = None,
    ) -> TrackingSampleModel:
        """Append a sample; only the driver assigned to the ride may do so."""
        if not identity.can(Capability.RECORD_TRACKING):
            raise Forbidden("Required role: driver")
        if identity.driver_id is None:
            raise NotFound("Driver record not found")

        own_rides = RideScope(ScopeKind.DRIVER, driver_id=identity.driver_id)
        if await self.rides.get_visible(ride_id, own_rides) is None:
            raise NotFound("Ride not found or not assigned to you")

        sample = await self.samples.append(
            ride_id=ride_id,
            latitude=latitude,
            longitude=longitude,
            speed=speed,
            heading=heading,
        )
        await self.session.commit()
        await publish_safely(self.broadcaster, ride_id, location_event(sample))
        return sample

    async def history(
        self, identity: Identity, ride_id: int
    ) -> list[TrackingSampleModel]:
        ride = await self.rides.get_by_id(ride_id)
        if ride is None:
            raise NotFound("Ride not found")
        if not can_view_tracking(identity, ride.user_id, ride.driver_id):
            raise Forbidden("No permission to view this ride tracking")
        return await self.samples.latest(ride_id, settings.tracking_history_limit)
