"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  Ride queries take typed criteria from
``meditransport.domain.visibility`` and translate the caller's scope into
predicates; no SQL is assembled from strings.

State changes that must not race (assignment, payment settlement, payment
driven completion) are issued as conditional ``UPDATE ... WHERE status``
statements and report whether *this* call won.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import Select, case, delete, false, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    DriverModel,
    PaymentEventModel,
    PaymentModel,
    RideModel,
    TrackingSampleModel,
    UserModel,
    VehicleModel,
)
from meditransport.domain.enums import (
    PaymentStatus,
    RideStatus,
    Role,
    VehicleType,
)
from meditransport.domain.visibility import RideCriteria, RideScope, ScopeKind


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: str) -> Optional[UserModel]:
        return await self.session.get(UserModel, user_id)

    async def get_by_email(self, email: str) -> Optional[UserModel]:
        result = await self.session.execute(
            select(UserModel).where(UserModel.email == email)
        )
        return result.scalar_one_or_none()

    async def create(self, user: UserModel) -> UserModel:
        self.session.add(user)
        await self.session.flush()
        await self.session.refresh(user)
        return user

    async def list(
        self, role: Optional[Role], limit: int, offset: int
    ) -> tuple[list[UserModel], int]:
        query = select(UserModel)
        count = select(func.count()).select_from(UserModel)
        if role is not None:
            query = query.where(UserModel.role == role)
            count = count.where(UserModel.role == role)
        result = await self.session.execute(
            query.order_by(UserModel.created_at.desc(), UserModel.id)
            .limit(limit)
            .offset(offset)
        )
        total = (await self.session.execute(count)).scalar() or 0
        return list(result.scalars().all()), total


class DriverRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, driver: DriverModel) -> DriverModel:
        self.session.add(driver)
        await self.session.flush()
        await self.session.refresh(driver)
        return driver

    async def get_by_id(self, driver_id: int) -> Optional[DriverModel]:
        return await self.session.get(DriverModel, driver_id)

    async def get_by_user_id(self, user_id: str) -> Optional[DriverModel]:
        result = await self.session.execute(
            select(DriverModel).where(DriverModel.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_with_vehicle(
        self, driver_id: int
    ) -> Optional[tuple[DriverModel, Optional[VehicleModel]]]:
        """Driver row plus its vehicle (if any) in one round-trip."""
        result = await self.session.execute(
            select(DriverModel, VehicleModel)
            .outerjoin(VehicleModel, VehicleModel.driver_id == DriverModel.id)
            .where(DriverModel.id == driver_id)
        )
        row = result.first()
        return (row[0], row[1]) if row else None

    async def list_available(
        self, vehicle_type: Optional[VehicleType] = None, limit: Optional[int] = None
    ) -> list[Any]:
        """Available drivers with identity and vehicle columns, best rated first."""
        query = (
            select(
                DriverModel,
                UserModel.name,
                UserModel.email,
                UserModel.phone,
                VehicleModel,
            )
            .join(UserModel, UserModel.id == DriverModel.user_id)
            .outerjoin(VehicleModel, VehicleModel.driver_id == DriverModel.id)
            .where(DriverModel.availability.is_(True))
        )
        if vehicle_type is not None:
            query = query.where(DriverModel.vehicle_type == vehicle_type)
        query = query.order_by(DriverModel.rating.desc(), DriverModel.id)
        if limit is not None:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return list(result.all())

    async def ride_stats(self, driver_id: int) -> dict[str, Any]:
        completed = RideModel.status == RideStatus.COMPLETED
        result = await self.session.execute(
            select(
                func.count(RideModel.id),
                func.count(case((completed, 1))),
                func.count(case((RideModel.status == RideStatus.CANCELED, 1))),
                func.avg(case((completed, RideModel.fare))),
                func.sum(case((completed, RideModel.fare))),
            ).where(RideModel.driver_id == driver_id)
        )
        total, done, canceled, avg_fare, earnings = result.one()
        return {
            "total_rides": total or 0,
            "completed_rides": done or 0,
            "canceled_rides": canceled or 0,
            "average_fare": float(avg_fare) if avg_fare is not None else None,
            "total_earnings": float(earnings) if earnings is not None else 0.0,
        }


class VehicleRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, vehicle: VehicleModel) -> VehicleModel:
        self.session.add(vehicle)
        await self.session.flush()
        await self.session.refresh(vehicle)
        return vehicle

    async def get_by_id(self, vehicle_id: int) -> Optional[VehicleModel]:
        return await self.session.get(VehicleModel, vehicle_id)

    async def get_by_driver_id(self, driver_id: int) -> Optional[VehicleModel]:
        result = await self.session.execute(
            select(VehicleModel).where(VehicleModel.driver_id == driver_id)
        )
        return result.scalar_one_or_none()

    async def list_all(self) -> list[Any]:
        result = await self.session.execute(
            select(VehicleModel, DriverModel.user_id, UserModel.name)
            .join(DriverModel, VehicleModel.driver_id == DriverModel.id)
            .join(UserModel, DriverModel.user_id == UserModel.id)
            .order_by(VehicleModel.created_at.desc(), VehicleModel.id.desc())
        )
        return list(result.all())

    async def delete(self, vehicle_id: int) -> bool:
        # Detach the vehicle from historical rides first; they are never deleted.
        await self.session.execute(
            update(RideModel)
            .where(RideModel.vehicle_id == vehicle_id)
            .values(vehicle_id=None)
        )
        result = await self.session.execute(
            delete(VehicleModel).where(VehicleModel.id == vehicle_id)
        )
        return result.rowcount > 0


class RideRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _scoped(query: Select, scope: RideScope) -> Select:
        if scope.kind is ScopeKind.REQUESTER:
            return query.where(RideModel.user_id == scope.requester_id)
        if scope.kind is ScopeKind.DRIVER:
            return query.where(RideModel.driver_id == scope.driver_id)
        if scope.kind is ScopeKind.NONE:
            return query.where(false())
        return query

    def _filtered(self, query: Select, criteria: RideCriteria) -> Select:
        query = self._scoped(query, criteria.scope)
        if criteria.status is not None:
            query = query.where(RideModel.status == criteria.status)
        return query

    async def create(self, ride: RideModel) -> RideModel:
        self.session.add(ride)
        await self.session.flush()
        await self.session.refresh(ride)
        return ride

    async def get_by_id(self, ride_id: int) -> Optional[RideModel]:
        return await self.session.get(RideModel, ride_id)

    async def reload(self, ride_id: int) -> Optional[RideModel]:
        """Fetch bypassing the identity map (after a conditional UPDATE)."""
        return await self.session.get(RideModel, ride_id, populate_existing=True)

    async def get_visible(
        self, ride_id: int, scope: RideScope
    ) -> Optional[RideModel]:
        query = self._scoped(select(RideModel).where(RideModel.id == ride_id), scope)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list(self, criteria: RideCriteria) -> list[RideModel]:
        query = self._filtered(select(RideModel), criteria)
        result = await self.session.execute(
            query.order_by(RideModel.created_at.desc(), RideModel.id.desc())
            .limit(criteria.limit)
            .offset(criteria.offset)
        )
        return list(result.scalars().all())

    async def count(self, criteria: RideCriteria) -> int:
        query = self._filtered(select(func.count()).select_from(RideModel), criteria)
        return (await self.session.execute(query)).scalar() or 0

    async def assign(
        self, ride_id: int, driver_id: int, vehicle_id: Optional[int]
    ) -> bool:
        """Compare-and-swap ``pending -> accepted``.  True iff this call won."""
        result = await self.session.execute(
            update(RideModel)
            .where(
                RideModel.id == ride_id,
                RideModel.status == RideStatus.PENDING,
            )
            .values(
                driver_id=driver_id,
                vehicle_id=vehicle_id,
                status=RideStatus.ACCEPTED,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def set_status_if(
        self, ride_id: int, new_status: RideStatus, expected: RideStatus
    ) -> bool:
        result = await self.session.execute(
            update(RideModel)
            .where(RideModel.id == ride_id, RideModel.status == expected)
            .values(status=new_status)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def complete_unless_final(self, ride_id: int) -> bool:
        """Force ``completed`` unless the ride is already completed or canceled."""
        result = await self.session.execute(
            update(RideModel)
            .where(
                RideModel.id == ride_id,
                RideModel.status.not_in(
                    [RideStatus.COMPLETED, RideStatus.CANCELED]
                ),
            )
            .values(status=RideStatus.COMPLETED)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class TrackingRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(
        self,
        *,
        ride_id: int,
        latitude: float,
        longitude: float,
        speed: Optional[float] = None,
        heading: Optional[float] = None,
    ) -> TrackingSampleModel:
        sample = TrackingSampleModel(
            ride_id=ride_id,
            latitude=latitude,
            longitude=longitude,
            speed=speed,
            heading=heading,
            timestamp=_utcnow(),
        )
        self.session.add(sample)
        await self.session.flush()
        return sample

    async def latest(self, ride_id: int, limit: int) -> list[TrackingSampleModel]:
        result = await self.session.execute(
            select(TrackingSampleModel)
            .where(TrackingSampleModel.ride_id == ride_id)
            .order_by(
                TrackingSampleModel.timestamp.desc(), TrackingSampleModel.id.desc()
            )
            .limit(limit)
        )
        return list(result.scalars().all())


class PaymentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, payment: PaymentModel) -> PaymentModel:
        self.session.add(payment)
        await self.session.flush()
        await self.session.refresh(payment)
        return payment

    async def get_by_reference(self, reference: str) -> Optional[PaymentModel]:
        result = await self.session.execute(
            select(PaymentModel)
            .where(PaymentModel.external_reference == reference)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def settle(
        self,
        reference: str,
        status: PaymentStatus,
        from_statuses: tuple[PaymentStatus, ...] = (PaymentStatus.PENDING,),
    ) -> bool:
        """Move a payment out of ``from_statuses``.  True iff this call did it."""
        values: dict[str, Any] = {"status": status}
        if status is PaymentStatus.COMPLETED:
            values["payment_date"] = _utcnow()
        result = await self.session.execute(
            update(PaymentModel)
            .where(
                PaymentModel.external_reference == reference,
                PaymentModel.status.in_(from_statuses),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def history(
        self, user_id: str, limit: int, offset: int
    ) -> tuple[list[Any], int]:
        result = await self.session.execute(
            select(
                PaymentModel,
                RideModel.start_location,
                RideModel.end_location,
                RideModel.ride_date,
            )
            .join(RideModel, PaymentModel.ride_id == RideModel.id)
            .where(PaymentModel.user_id == user_id)
            .order_by(PaymentModel.created_at.desc(), PaymentModel.id.desc())
            .limit(limit)
            .offset(offset)
        )
        total = (
            await self.session.execute(
                select(func.count())
                .select_from(PaymentModel)
                .where(PaymentModel.user_id == user_id)
            )
        ).scalar() or 0
        return list(result.all()), total


class PaymentEventRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def seen(self, event_id: str) -> bool:
        result = await self.session.execute(
            select(PaymentEventModel.id).where(PaymentEventModel.event_id == event_id)
        )
        return result.first() is not None

    async def record(self, event_id: str, event_type: str) -> None:
        self.session.add(PaymentEventModel(event_id=event_id, event_type=event_type))
        await self.session.flush()
