"""Pydantic request / response schemas for the REST API (camelCase on the wire)."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    StrictBool,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from meditransport.domain.enums import (
    PaymentMethod,
    PaymentStatus,
    RideStatus,
    Role,
    VehicleType,
)

PHONE_PATTERN = r"^\+?[\d\s\-()]+$"


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ── Requests ──────────────────────────────────────────────────────────


class RegisterRequest(CamelModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN, max_length=32)
    role: Role = Role.PATIENT
    license_number: Optional[str] = Field(None, min_length=1, max_length=64)
    vehicle_type: Optional[VehicleType] = None

    @model_validator(mode="after")
    def _driver_fields(self) -> "RegisterRequest":
        if self.role is Role.DRIVER:
            if not self.license_number or self.vehicle_type is None:
                raise ValueError("licenseNumber and vehicleType are required for drivers")
        elif self.license_number is not None or self.vehicle_type is not None:
            raise ValueError("licenseNumber and vehicleType are only allowed for drivers")
        return self


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RefreshRequest(CamelModel):
    refresh_token: str = Field(..., min_length=1)


class ProfileUpdateRequest(CamelModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN, max_length=32)


class RideCreateRequest(CamelModel):
    start_location: str = Field(..., min_length=1)
    end_location: str = Field(..., min_length=1)
    start_latitude: Optional[float] = Field(None, ge=-90, le=90)
    start_longitude: Optional[float] = Field(None, ge=-180, le=180)
    end_latitude: Optional[float] = Field(None, ge=-90, le=90)
    end_longitude: Optional[float] = Field(None, ge=-180, le=180)
    ride_date: datetime
    special_requirements: Optional[str] = Field(None, max_length=500)
    emergency_contact: Optional[str] = Field(None, max_length=255)
    vehicle_type: Optional[VehicleType] = None
    patient_id: Optional[str] = Field(
        None, description="Admins only: book on behalf of this patient."
    )

    @field_validator("ride_date")
    @classmethod
    def _not_in_past(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        if value < datetime.now(timezone.utc):
            raise ValueError("rideDate must not be in the past")
        return value


class RideUpdateRequest(CamelModel):
    status: Optional[RideStatus] = None
    fare: Optional[float] = Field(None, ge=0)
    distance: Optional[float] = Field(None, ge=0)
    duration_minutes: Optional[int] = Field(None, ge=0)


class AssignRequest(CamelModel):
    driver_id: int


class TrackingCreateRequest(CamelModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    speed: Optional[float] = Field(None, ge=0)
    heading: Optional[float] = Field(None, ge=0, le=360)


class AvailabilityRequest(CamelModel):
    availability: StrictBool


def _max_vehicle_year() -> int:
    return datetime.now(timezone.utc).year + 1


class VehicleCreateRequest(CamelModel):
    license_plate: str = Field(..., min_length=1, max_length=32)
    capacity: int = Field(..., ge=1, le=20)
    vehicle_make: str = Field(..., min_length=1, max_length=64)
    vehicle_model: str = Field(..., min_length=1, max_length=64)
    vehicle_year: int = Field(..., ge=1990)

    @field_validator("vehicle_year")
    @classmethod
    def _not_future(cls, value: int) -> int:
        if value > _max_vehicle_year():
            raise ValueError("vehicleYear is too far in the future")
        return value


class VehicleUpdateRequest(CamelModel):
    license_plate: Optional[str] = Field(None, min_length=1, max_length=32)
    capacity: Optional[int] = Field(None, ge=1, le=20)
    vehicle_make: Optional[str] = Field(None, min_length=1, max_length=64)
    vehicle_model: Optional[str] = Field(None, min_length=1, max_length=64)
    vehicle_year: Optional[int] = Field(None, ge=1990)
    availability: Optional[StrictBool] = None

    @field_validator("vehicle_year")
    @classmethod
    def _not_future(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value > _max_vehicle_year():
            raise ValueError("vehicleYear is too far in the future")
        return value


class PaymentIntentRequest(CamelModel):
    ride_id: int
    amount: float = Field(..., gt=0)
    method: PaymentMethod = PaymentMethod.CREDIT_CARD


# ── Responses ─────────────────────────────────────────────────────────


class Pagination(CamelModel):
    limit: int
    offset: int
    total: int


class TokenPair(CamelModel):
    access_token: str
    refresh_token: str


class UserResponse(CamelModel):
    id: str
    name: str
    email: str
    phone: Optional[str] = None
    role: Role
    created_at: Optional[datetime] = None


class VehicleResponse(CamelModel):
    id: int
    driver_id: Optional[int] = None
    license_plate: str
    capacity: int
    vehicle_make: str
    vehicle_model: str
    vehicle_year: int
    availability: bool
    created_at: Optional[datetime] = None


class DriverResponse(CamelModel):
    id: int
    user_id: str
    license_number: str
    vehicle_type: VehicleType
    availability: bool
    rating: float


class DriverInfoResponse(DriverResponse):
    vehicle: Optional[VehicleResponse] = None


class ProfileResponse(UserResponse):
    driver_info: Optional[DriverInfoResponse] = None


class AvailableDriverResponse(DriverResponse):
    name: str
    email: str
    phone: Optional[str] = None
    vehicle: Optional[VehicleResponse] = None


class CandidateDriver(CamelModel):
    id: int
    user_id: str
    name: str
    vehicle_type: VehicleType
    rating: float


class DriverStats(CamelModel):
    total_rides: int
    completed_rides: int
    canceled_rides: int
    average_fare: Optional[float] = None
    total_earnings: float


class OwnedVehicleResponse(VehicleResponse):
    owner_user_id: Optional[str] = None
    driver_name: Optional[str] = None


class RideResponse(CamelModel):
    id: int
    user_id: str
    driver_id: Optional[int] = None
    vehicle_id: Optional[int] = None
    start_location: str
    end_location: str
    start_latitude: Optional[float] = None
    start_longitude: Optional[float] = None
    end_latitude: Optional[float] = None
    end_longitude: Optional[float] = None
    ride_date: datetime
    status: RideStatus
    fare: Optional[float] = None
    distance: Optional[float] = None
    duration_minutes: Optional[int] = None
    special_requirements: Optional[str] = None
    emergency_contact: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CreatedRideResponse(RideResponse):
    available_drivers: Optional[list[CandidateDriver]] = None


class TrackingSampleResponse(CamelModel):
    id: int
    ride_id: int
    latitude: float
    longitude: float
    speed: Optional[float] = None
    heading: Optional[float] = None
    timestamp: datetime


class PaymentResponse(CamelModel):
    id: int
    ride_id: int
    user_id: str
    amount: float
    method: PaymentMethod
    status: PaymentStatus
    external_reference: str
    payment_date: Optional[datetime] = None
    created_at: Optional[datetime] = None


class PaymentHistoryItem(PaymentResponse):
    start_location: str
    end_location: str
    ride_date: datetime


# ── Envelopes ─────────────────────────────────────────────────────────


class MessageResponse(CamelModel):
    message: str


class AuthResponse(CamelModel):
    message: str
    user: UserResponse
    tokens: TokenPair


class TokenRefreshResponse(CamelModel):
    message: str
    tokens: TokenPair


class VerifyResponse(CamelModel):
    valid: bool
    user: UserResponse


class ProfileEnvelope(CamelModel):
    user: ProfileResponse


class UserEnvelope(CamelModel):
    message: str
    user: UserResponse


class UserListEnvelope(CamelModel):
    users: list[UserResponse]
    pagination: Pagination


class AvailableDriversEnvelope(CamelModel):
    drivers: list[AvailableDriverResponse]


class DriverEnvelope(CamelModel):
    message: str
    driver: DriverResponse


class DriverStatsEnvelope(CamelModel):
    stats: DriverStats


class VehicleListEnvelope(CamelModel):
    vehicles: list[OwnedVehicleResponse]


class VehicleEnvelope(CamelModel):
    message: str
    vehicle: VehicleResponse


class RideEnvelope(CamelModel):
    message: Optional[str] = None
    ride: RideResponse


class CreatedRideEnvelope(CamelModel):
    message: str
    ride: CreatedRideResponse


class RideListEnvelope(CamelModel):
    rides: list[RideResponse]
    pagination: Pagination


class TrackingEnvelope(CamelModel):
    ride_id: int
    tracking: list[TrackingSampleResponse]


class TrackingRecordedEnvelope(CamelModel):
    message: str
    sample: TrackingSampleResponse


class PaymentIntentResponse(CamelModel):
    client_secret: Optional[str] = None
    payment_intent_id: str


class PaymentConfirmResponse(CamelModel):
    message: str
    payment: PaymentResponse
    provider_status: str


class PaymentHistoryEnvelope(CamelModel):
    payments: list[PaymentHistoryItem]
    pagination: Pagination


class WebhookAck(CamelModel):
    received: bool = True
    duplicate: bool = False


class HealthResponse(CamelModel):
    status: str = "OK"
    service: str
    timestamp: datetime
