"""
SQLAlchemy ORM models.

Tables
------
* ``users``          -- identities (patient / driver / admin)
* ``drivers``        -- driver profiles, 1:1 with a driver identity
* ``vehicles``       -- at most one per driver
* ``rides``          -- bookings and their lifecycle status
* ``ride_tracking``  -- append-only position samples
* ``payments``       -- provider payment intents linked to rides
* ``payment_events`` -- provider webhook deliveries already applied

Indexes
-------
* **B-Tree** on ``rides.status``, ``rides.user_id``, ``rides.driver_id``,
  ``ride_tracking(ride_id, timestamp)`` and ``payments.ride_id`` for the
  role-scoped listings.
"""

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)

from .database import Base
from meditransport.domain.enums import (
    PaymentMethod,
    PaymentStatus,
    RideStatus,
    Role,
    VehicleType,
)


def _enum(enum_cls, name: str) -> Enum:
    # Persist the lowercase values ("in-progress"), not the member names.
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


def _new_id() -> str:
    return str(uuid.uuid4())


class UserModel(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    phone = Column(String(32), unique=True, nullable=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(_enum(Role, "userrole"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (Index("idx_users_role", "role"),)


class DriverModel(Base):
    __tablename__ = "drivers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    license_number = Column(String(64), unique=True, nullable=False)
    vehicle_type = Column(_enum(VehicleType, "vehicletype"), nullable=False)
    availability = Column(Boolean, default=True, nullable=False)
    rating = Column(Float, default=5.0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_drivers_availability", "availability"),
        Index("idx_drivers_vehicle_type", "vehicle_type"),
    )


class VehicleModel(Base):
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # unique: one vehicle per driver, also guarded before insert
    driver_id = Column(
        Integer,
        ForeignKey("drivers.id", ondelete="CASCADE"),
        unique=True,
        nullable=True,
    )
    license_plate = Column(String(32), unique=True, nullable=False)
    capacity = Column(Integer, nullable=False)
    vehicle_make = Column(String(64), nullable=False)
    vehicle_model = Column(String(64), nullable=False)
    vehicle_year = Column(Integer, nullable=False)
    availability = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    driver_id = Column(
        Integer, ForeignKey("drivers.id", ondelete="SET NULL"), nullable=True
    )
    vehicle_id = Column(
        Integer, ForeignKey("vehicles.id", ondelete="SET NULL"), nullable=True
    )

    start_location = Column(Text, nullable=False)
    end_location = Column(Text, nullable=False)
    start_latitude = Column(Float, nullable=True)
    start_longitude = Column(Float, nullable=True)
    end_latitude = Column(Float, nullable=True)
    end_longitude = Column(Float, nullable=True)

    ride_date = Column(DateTime(timezone=True), nullable=False)
    status = Column(
        _enum(RideStatus, "ridestatus"), default=RideStatus.PENDING, nullable=False
    )
    fare = Column(Float, nullable=True)
    distance = Column(Float, nullable=True)
    duration_minutes = Column(Integer, nullable=True)
    special_requirements = Column(String(500), nullable=True)
    emergency_contact = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_rides_status", "status"),
        Index("idx_rides_user", "user_id"),
        Index("idx_rides_driver", "driver_id"),
    )


class TrackingSampleModel(Base):
    __tablename__ = "ride_tracking"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ride_id = Column(Integer, ForeignKey("rides.id"), nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    speed = Column(Float, nullable=True)
    heading = Column(Float, nullable=True)
    # Set by the application with sub-second precision so newest-first
    # ordering is stable even for bursts of samples.
    timestamp = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("idx_ride_tracking_ride_ts", "ride_id", "timestamp"),)


class PaymentModel(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ride_id = Column(Integer, ForeignKey("rides.id"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    amount = Column(Float, nullable=False)
    method = Column(
        _enum(PaymentMethod, "paymentmethod"),
        default=PaymentMethod.CREDIT_CARD,
        nullable=False,
    )
    status = Column(
        _enum(PaymentStatus, "paymentstatus"),
        default=PaymentStatus.PENDING,
        nullable=False,
    )
    external_reference = Column(String(255), unique=True, nullable=False)
    payment_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_payments_ride", "ride_id"),
        Index("idx_payments_user", "user_id"),
    )


class PaymentEventModel(Base):
    __tablename__ = "payment_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(String(255), unique=True, nullable=False)
    event_type = Column(String(100), nullable=False)
    received_at = Column(DateTime(timezone=True), server_default=func.now())
