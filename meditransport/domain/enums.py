"""Domain enumerations, role capabilities and state-transition rules."""

import enum


class Role(str, enum.Enum):
    PATIENT = "patient"
    DRIVER = "driver"
    ADMIN = "admin"


class Capability(str, enum.Enum):
    BOOK_RIDE = "book_ride"
    BOOK_FOR_PATIENT = "book_for_patient"
    UPDATE_RIDE = "update_ride"
    ASSIGN_RIDE = "assign_ride"
    RECORD_TRACKING = "record_tracking"
    SEE_ALL_RIDES = "see_all_rides"
    PAY_FOR_RIDE = "pay_for_ride"
    MANAGE_OWN_VEHICLE = "manage_own_vehicle"
    VIEW_VEHICLES = "view_vehicles"
    DELETE_VEHICLE = "delete_vehicle"
    SET_AVAILABILITY = "set_availability"
    VIEW_DRIVER_STATS = "view_driver_stats"
    LIST_USERS = "list_users"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.PATIENT: frozenset(
        {
            Capability.BOOK_RIDE,
            Capability.PAY_FOR_RIDE,
        }
    ),
    Role.DRIVER: frozenset(
        {
            Capability.UPDATE_RIDE,
            Capability.RECORD_TRACKING,
            Capability.MANAGE_OWN_VEHICLE,
            Capability.VIEW_VEHICLES,
            Capability.SET_AVAILABILITY,
            Capability.VIEW_DRIVER_STATS,
        }
    ),
    Role.ADMIN: frozenset(
        {
            Capability.BOOK_RIDE,
            Capability.BOOK_FOR_PATIENT,
            Capability.UPDATE_RIDE,
            Capability.ASSIGN_RIDE,
            Capability.SEE_ALL_RIDES,
            Capability.VIEW_VEHICLES,
            Capability.DELETE_VEHICLE,
            Capability.LIST_USERS,
        }
    ),
}


class RideStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELED = "canceled"


# State machine: maps current status -> set of valid next statuses
RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.PENDING: {RideStatus.ACCEPTED, RideStatus.CANCELED},
    RideStatus.ACCEPTED: {RideStatus.IN_PROGRESS, RideStatus.CANCELED},
    RideStatus.IN_PROGRESS: {RideStatus.COMPLETED},
    RideStatus.COMPLETED: set(),
    RideStatus.CANCELED: set(),
}

TERMINAL_STATUSES = frozenset({RideStatus.COMPLETED, RideStatus.CANCELED})


class VehicleType(str, enum.Enum):
    CAR = "car"
    VAN = "van"
    WHEELCHAIR_ACCESSIBLE = "wheelchair-accessible"
    STRETCHER_ENABLED = "stretcher-enabled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, enum.Enum):
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    CASH = "cash"
    INSURANCE = "insurance"
