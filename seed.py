"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 1 admin, 4 patients and 4 drivers (password: ``password123``)
  - one vehicle per driver
  - 6 sample rides (mix of pending, accepted, in-progress, completed)
"""

import asyncio
from datetime import datetime, timedelta, timezone

from sqlalchemy import text

from meditransport.config import settings
from meditransport.domain.entities import Location
from meditransport.domain.enums import RideStatus, Role, VehicleType
from meditransport.domain.pricing import FareEngine
from meditransport.infrastructure.database import async_session_factory, engine
from meditransport.infrastructure.models import (
    DriverModel,
    RideModel,
    UserModel,
    VehicleModel,
)
from meditransport.infrastructure.security import hash_password

PASSWORD = "password123"

ADMIN = {"name": "Dispatch Admin", "email": "admin@meditransport.example"}

PATIENTS = [
    {"name": "Alice Moreno", "email": "alice@example.com", "phone": "+1 555 0101"},
    {"name": "Ben Okafor", "email": "ben@example.com", "phone": "+1 555 0102"},
    {"name": "Chen Li", "email": "chen@example.com", "phone": "+1 555 0103"},
    {"name": "Dana Whitfield", "email": "dana@example.com", "phone": "+1 555 0104"},
]

DRIVERS = [
    {"name": "Eli Novak", "email": "eli@example.com", "license": "D-1001",
     "type": VehicleType.CAR, "rating": 4.9,
     "vehicle": ("MT-101", 4, "Toyota", "Camry", 2022)},
    {"name": "Fatima Haddad", "email": "fatima@example.com", "license": "D-1002",
     "type": VehicleType.WHEELCHAIR_ACCESSIBLE, "rating": 4.8,
     "vehicle": ("MT-102", 3, "Ford", "Transit", 2021)},
    {"name": "Gus Lindqvist", "email": "gus@example.com", "license": "D-1003",
     "type": VehicleType.VAN, "rating": 4.6,
     "vehicle": ("MT-103", 7, "Honda", "Odyssey", 2020)},
    {"name": "Hana Sato", "email": "hana@example.com", "license": "D-1004",
     "type": VehicleType.STRETCHER_ENABLED, "rating": 4.7,
     "vehicle": ("MT-104", 2, "Mercedes", "Sprinter", 2023)},
]

# (patient index, driver index or None, status, start, end)
RIDES = [
    (0, None, RideStatus.PENDING,
     ("12 Oak St", 40.7128, -74.0060), ("City General Hospital", 40.7411, -73.9897)),
    (1, None, RideStatus.PENDING,
     ("88 Pine Ave", 40.7306, -73.9352), ("Riverside Dialysis Center", 40.7851, -73.9683)),
    (2, 0, RideStatus.ACCEPTED,
     ("5 Elm Ct", 40.6782, -73.9442), ("St. Mary's Clinic", 40.6892, -73.9857)),
    (3, 1, RideStatus.IN_PROGRESS,
     ("301 Birch Rd", 40.7580, -73.9855), ("Northside Rehab", 40.8075, -73.9626)),
    (0, 2, RideStatus.COMPLETED,
     ("12 Oak St", 40.7128, -74.0060), ("Eastview Imaging", 40.7484, -73.9857)),
    (1, 3, RideStatus.COMPLETED,
     ("88 Pine Ave", 40.7306, -73.9352), ("City General Hospital", 40.7411, -73.9897)),
]


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM users"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        password_hash = hash_password(PASSWORD)

        # ── Users ─────────────────────────────────────────────────────
        session.add(UserModel(password_hash=password_hash, role=Role.ADMIN, **ADMIN))
        patients = []
        for p in PATIENTS:
            m = UserModel(password_hash=password_hash, role=Role.PATIENT, **p)
            session.add(m)
            patients.append(m)
        await session.flush()
        print(f"  Created 1 admin and {len(patients)} patients")

        # ── Drivers + vehicles ────────────────────────────────────────
        drivers = []
        for d in DRIVERS:
            user = UserModel(
                name=d["name"],
                email=d["email"],
                password_hash=password_hash,
                role=Role.DRIVER,
            )
            session.add(user)
            await session.flush()
            driver = DriverModel(
                user_id=user.id,
                license_number=d["license"],
                vehicle_type=d["type"],
                rating=d["rating"],
            )
            session.add(driver)
            await session.flush()
            plate, capacity, make, model, year = d["vehicle"]
            vehicle = VehicleModel(
                driver_id=driver.id,
                license_plate=plate,
                capacity=capacity,
                vehicle_make=make,
                vehicle_model=model,
                vehicle_year=year,
            )
            session.add(vehicle)
            await session.flush()
            drivers.append((driver, vehicle))
        print(f"  Created {len(drivers)} drivers with vehicles")

        # ── Rides ─────────────────────────────────────────────────────
        fares = FareEngine(settings.base_fare, settings.rate_per_mile)
        tomorrow = datetime.now(timezone.utc) + timedelta(days=1)
        for i, (patient_idx, driver_idx, status, start, end) in enumerate(RIDES):
            estimate = fares.estimate(Location(start[1], start[2]), Location(end[1], end[2]))
            assigned = drivers[driver_idx] if driver_idx is not None else (None, None)
            session.add(
                RideModel(
                    user_id=patients[patient_idx].id,
                    driver_id=assigned[0].id if assigned[0] else None,
                    vehicle_id=assigned[1].id if assigned[1] else None,
                    start_location=start[0],
                    end_location=end[0],
                    start_latitude=start[1],
                    start_longitude=start[2],
                    end_latitude=end[1],
                    end_longitude=end[2],
                    ride_date=tomorrow + timedelta(hours=i),
                    status=status,
                    fare=estimate.fare,
                    distance=estimate.distance_miles,
                )
            )
        await session.flush()
        print(f"  Created {len(RIDES)} rides")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
