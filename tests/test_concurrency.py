"""
Concurrency safety tests.

Demonstrates:
1. Two simultaneous assignments of one pending ride: exactly one wins.
2. Many simultaneous assignments of different rides all succeed.
3. A stale status update loses to a change that landed in between.
"""

import asyncio

import pytest

from meditransport.domain.entities import Identity
from meditransport.domain.enums import RideStatus, Role
from meditransport.domain.errors import Conflict
from meditransport.infrastructure.database import async_session_factory
from meditransport.infrastructure.repositories import RideRepository
from meditransport.services.rides import RideService
from tests.helpers import auth


class TestConcurrentAssignment:
    @pytest.mark.asyncio
    async def test_exactly_one_assignment_wins(
        self, client, register, book_ride, driver_id_of
    ):
        admin, _ = await register("admin")
        patient, _ = await register()
        first, _ = await register("driver")
        second, _ = await register("driver")
        ride = await book_ride(patient)
        driver_ids = [await driver_id_of(first), await driver_id_of(second)]

        responses = await asyncio.gather(
            *(
                client.post(
                    f"/api/v1/rides/{ride['id']}/assign",
                    json={"driverId": driver_id},
                    headers=auth(admin),
                )
                for driver_id in driver_ids
            )
        )
        codes = sorted(r.status_code for r in responses)
        assert codes == [200, 409]

        winner = next(r for r in responses if r.status_code == 200).json()["ride"]
        resp = await client.get(f"/api/v1/rides/{ride['id']}", headers=auth(admin))
        stored = resp.json()["ride"]
        assert stored["status"] == "accepted"
        assert stored["driverId"] == winner["driverId"]

    @pytest.mark.asyncio
    async def test_independent_rides_assign_in_parallel(
        self, client, register, book_ride, driver_id_of
    ):
        admin, _ = await register("admin")
        patient, _ = await register()
        driver, _ = await register("driver")
        driver_id = await driver_id_of(driver)
        rides = [await book_ride(patient) for _ in range(3)]

        responses = await asyncio.gather(
            *(
                client.post(
                    f"/api/v1/rides/{ride['id']}/assign",
                    json={"driverId": driver_id},
                    headers=auth(admin),
                )
                for ride in rides
            )
        )
        assert all(r.status_code == 200 for r in responses)


class TestConditionalStatusUpdate:
    @pytest.mark.asyncio
    async def test_stale_update_is_rejected(self, client, register, book_ride, broadcaster):
        admin_token, admin_user = await register("admin")
        patient, _ = await register()
        ride = await book_ride(patient)
        admin = Identity(id=admin_user["id"], role=Role.ADMIN)

        async with async_session_factory() as session:
            # Another writer cancels the ride behind this session's back.
            assert await RideRepository(session).set_status_if(
                ride["id"], RideStatus.CANCELED, expected=RideStatus.PENDING
            )
            await session.commit()

        async with async_session_factory() as session:
            service = RideService(session, broadcaster)
            with pytest.raises(Conflict):
                await service.update(admin, ride["id"], status=RideStatus.ACCEPTED)

        resp = await client.get(f"/api/v1/rides/{ride['id']}", headers=auth(admin_token))
        assert resp.json()["ride"]["status"] == "canceled"

    @pytest.mark.asyncio
    async def test_set_status_if_reports_the_loser(self, client, register, book_ride):
        patient, _ = await register()
        ride = await book_ride(patient)
        async with async_session_factory() as session:
            repo = RideRepository(session)
            assert await repo.set_status_if(
                ride["id"], RideStatus.ACCEPTED, expected=RideStatus.PENDING
            )
            assert not await repo.set_status_if(
                ride["id"], RideStatus.CANCELED, expected=RideStatus.PENDING
            )
            await session.commit()
