"""
Fare Estimation  (Strategy Pattern)
===================================

Formula
-------
Fare = Base_Fare + Distance_miles x Rate_Per_Mile

* The distance term applies only when both endpoints carry coordinates;
  otherwise the ride is quoted at the base fare.
* Distance is the great-circle estimate from ``distance.haversine_miles``.

Complexity: O(1) per estimate.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from .distance import haversine_miles
from .entities import Location


# ── Strategy hierarchy ────────────────────────────────────────────────


class FareStrategy(ABC):
    @abstractmethod
    def calculate(
        self, distance_miles: float, base_fare: float, rate_per_mile: float
    ) -> float: ...


class FlatFare(FareStrategy):
    def calculate(
        self, distance_miles: float, base_fare: float, rate_per_mile: float
    ) -> float:
        return base_fare


class DistanceFare(FareStrategy):
    def calculate(
        self, distance_miles: float, base_fare: float, rate_per_mile: float
    ) -> float:
        return base_fare + distance_miles * rate_per_mile


# ── Engine facade ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class FareEstimate:
    fare: float
    distance_miles: Optional[float] = None


class FareEngine:
    """High-level API used when a ride is booked."""

    def __init__(self, base_fare: float = 15.0, rate_per_mile: float = 2.5):
        self.base_fare = base_fare
        self.rate_per_mile = rate_per_mile

    def estimate(self, start: Location, end: Location) -> FareEstimate:
        if not (start.has_coordinates and end.has_coordinates):
            fare = FlatFare().calculate(0.0, self.base_fare, self.rate_per_mile)
            return FareEstimate(fare=round(fare, 2))

        distance = haversine_miles(
            start.latitude, start.longitude, end.latitude, end.longitude
        )
        fare = DistanceFare().calculate(distance, self.base_fare, self.rate_per_mile)
        return FareEstimate(fare=round(fare, 2), distance_miles=round(distance, 2))
