"""Driver availability, driver statistics and vehicle management."""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from meditransport.domain.entities import Identity
from meditransport.domain.enums import Capability, VehicleType
from meditransport.domain.errors import Conflict, Forbidden, NotFound
from meditransport.infrastructure.models import DriverModel, VehicleModel
from meditransport.infrastructure.repositories import DriverRepository, VehicleRepository

logger = logging.getLogger(__name__)


class FleetService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.drivers = DriverRepository(session)
        self.vehicles = VehicleRepository(session)

    def _own_driver_id(self, identity: Identity, capability: Capability) -> int:
        if not identity.can(capability):
            raise Forbidden("Required role: driver")
        if identity.driver_id is None:
            raise NotFound("Driver record not found")
        return identity.driver_id

    # ── Drivers ───────────────────────────────────────────────────

    async def available_drivers(
        self, vehicle_type: Optional[VehicleType] = None
    ) -> list[Any]:
        return await self.drivers.list_available(vehicle_type)

    async def set_availability(self, identity: Identity, availability: bool) -> DriverModel:
        driver_id = self._own_driver_id(identity, Capability.SET_AVAILABILITY)
        driver = await self.drivers.get_by_id(driver_id)
        if driver is None:
            raise NotFound("Driver record not found")
        driver.availability = availability
        await self.session.flush()
        await self.session.commit()
        logger.info("Driver %s availability -> %s", driver.id, availability)
        return driver

    async def stats(self, identity: Identity) -> dict[str, Any]:
        driver_id = self._own_driver_id(identity, Capability.VIEW_DRIVER_STATS)
        return await self.drivers.ride_stats(driver_id)

    # ── Vehicles ──────────────────────────────────────────────────

    async def list_vehicles(self, identity: Identity) -> list[Any]:
        """All vehicles for admins; a driver sees only their own."""
        if not identity.can(Capability.VIEW_VEHICLES):
            raise Forbidden("Required role: driver or admin")
        if identity.is_admin:
            return await self.vehicles.list_all()
        if identity.driver_id is None:
            return []
        vehicle = await self.vehicles.get_by_driver_id(identity.driver_id)
        if vehicle is None:
            return []
        return [(vehicle, identity.id, identity.name)]

    async def add_vehicle(self, identity: Identity, **fields: Any) -> VehicleModel:
        driver_id = self._own_driver_id(identity, Capability.MANAGE_OWN_VEHICLE)
        if await self.vehicles.get_by_driver_id(driver_id) is not None:
            raise Conflict("Driver already has a vehicle registered")
        vehicle = await self.vehicles.create(VehicleModel(driver_id=driver_id, **fields))
        await self.session.commit()
        logger.info("Vehicle %s registered for driver %s", vehicle.id, driver_id)
        return vehicle

    async def update_vehicle(
        self, identity: Identity, vehicle_id: int, **fields: Any
    ) -> VehicleModel:
        driver_id = self._own_driver_id(identity, Capability.MANAGE_OWN_VEHICLE)
        vehicle = await self.vehicles.get_by_id(vehicle_id)
        if vehicle is None or vehicle.driver_id != driver_id:
            raise NotFound("Vehicle not found or no permission")
        for key, value in fields.items():
            if value is not None:
                setattr(vehicle, key, value)
        await self.session.flush()
        await self.session.commit()
        return vehicle

    async def delete_vehicle(self, identity: Identity, vehicle_id: int) -> None:
        if not identity.can(Capability.DELETE_VEHICLE):
            raise Forbidden("Required role: admin")
        if not await self.vehicles.delete(vehicle_id):
            raise NotFound("Vehicle not found")
        await self.session.commit()
        logger.info("Vehicle %s deleted by %s", vehicle_id, identity.id)
