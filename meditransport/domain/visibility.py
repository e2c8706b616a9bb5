"""
Visibility Filter
=================

Computes, from the caller's identity alone, which rides the caller may
read or modify.  The result is a ``RideScope`` value that the repository
layer translates into SQL predicates; nothing here touches storage.

Rules
-----
* patient -- rides they requested
* driver  -- rides assigned to their driver profile; no profile => nothing
* admin   -- everything

An empty scope is a valid, empty result.  It is never turned into an
authorization error for listings.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional

from .entities import Identity
from .enums import Capability, RideStatus, Role


class ScopeKind(str, enum.Enum):
    ALL = "all"
    REQUESTER = "requester"
    DRIVER = "driver"
    NONE = "none"


@dataclass(frozen=True)
class RideScope:
    kind: ScopeKind
    requester_id: Optional[str] = None
    driver_id: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return self.kind is ScopeKind.NONE

    def admits(self, requester_id: str, driver_id: Optional[int]) -> bool:
        """In-memory twin of the SQL predicate, for already-loaded rides."""
        if self.kind is ScopeKind.ALL:
            return True
        if self.kind is ScopeKind.REQUESTER:
            return requester_id == self.requester_id
        if self.kind is ScopeKind.DRIVER:
            return driver_id is not None and driver_id == self.driver_id
        return False


@dataclass(frozen=True)
class RideCriteria:
    """Typed filter consumed by ``RideRepository``."""

    scope: RideScope
    status: Optional[RideStatus] = None
    limit: int = 20
    offset: int = 0


@dataclass(frozen=True)
class Page:
    limit: int
    offset: int
    total: int
    items: list = field(default_factory=list)


def ride_scope(identity: Identity) -> RideScope:
    if identity.can(Capability.SEE_ALL_RIDES):
        return RideScope(ScopeKind.ALL)
    if identity.role is Role.PATIENT:
        return RideScope(ScopeKind.REQUESTER, requester_id=identity.id)
    if identity.role is Role.DRIVER and identity.driver_id is not None:
        return RideScope(ScopeKind.DRIVER, driver_id=identity.driver_id)
    return RideScope(ScopeKind.NONE)


def can_view_tracking(
    identity: Identity, requester_id: str, driver_id: Optional[int]
) -> bool:
    """Requester, assigned driver or admin -- regardless of role tag."""
    if identity.can(Capability.SEE_ALL_RIDES):
        return True
    if requester_id == identity.id:
        return True
    return identity.driver_id is not None and identity.driver_id == driver_id
