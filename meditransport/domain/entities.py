"""
Domain entities and the ride lifecycle rules.

Patterns used
-------------
- **Capability set** on ``Identity``: every permission decision is a lookup
  in ``ROLE_CAPABILITIES`` rather than a role-string comparison.
- **State table** for rides: ``check_transition`` enforces the lifecycle
  (pending -> accepted -> in-progress -> completed, canceled from
  pending/accepted).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .enums import (
    RIDE_TRANSITIONS,
    ROLE_CAPABILITIES,
    Capability,
    RideStatus,
    Role,
)
from .errors import InvalidStateTransition


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass(frozen=True)
class Identity:
    """The authenticated caller of a request."""

    id: str
    role: Role
    email: str = ""
    name: str = ""
    # Driver profile id; only ever set for drivers that own a profile.
    driver_id: Optional[int] = None

    def can(self, capability: Capability) -> bool:
        return capability in ROLE_CAPABILITIES[self.role]

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


# ── Ride lifecycle ────────────────────────────────────────────────────


def check_transition(current: RideStatus, new: RideStatus) -> None:
    """Raise unless moving from *current* to *new* is legal.

    Re-stating the current status is accepted as a no-op.
    """
    if current == new:
        return
    if new not in RIDE_TRANSITIONS.get(current, set()):
        raise InvalidStateTransition(
            f"Cannot transition ride from {current.value} to {new.value}"
        )


def completion_target(current: RideStatus) -> Optional[RideStatus]:
    """Status a ride moves to when its payment completes, or ``None``.

    Completed rides need nothing; canceled rides are never re-opened.
    """
    if current in (RideStatus.COMPLETED, RideStatus.CANCELED):
        return None
    return RideStatus.COMPLETED
