"""Integration tests for the per-ride tracking feed."""

import asyncio

import pytest

from tests.helpers import auth


@pytest.fixture
def assigned_ride(client, register, book_ride, driver_id_of):
    """A ride booked by a patient and assigned to a driver."""

    async def _make():
        admin, _ = await register("admin")
        patient, _ = await register()
        driver, _ = await register("driver")
        ride = await book_ride(patient)
        resp = await client.post(
            f"/api/v1/rides/{ride['id']}/assign",
            json={"driverId": await driver_id_of(driver)},
            headers=auth(admin),
        )
        assert resp.status_code == 200
        return {"ride": ride, "admin": admin, "patient": patient, "driver": driver}

    return _make


async def _post_sample(client, token, ride_id, lat=40.0, lng=-75.0, **extra):
    return await client.post(
        f"/api/v1/rides/{ride_id}/tracking",
        json={"latitude": lat, "longitude": lng, **extra},
        headers=auth(token),
    )


class TestRecording:
    @pytest.mark.asyncio
    async def test_assigned_driver_records(self, client, assigned_ride):
        ctx = await assigned_ride()
        resp = await _post_sample(
            client, ctx["driver"], ctx["ride"]["id"], speed=31.5, heading=90
        )
        assert resp.status_code == 201
        sample = resp.json()["sample"]
        assert sample["rideId"] == ctx["ride"]["id"]
        assert sample["speed"] == 31.5
        assert sample["timestamp"]

    @pytest.mark.asyncio
    async def test_other_driver_cannot_record(self, client, assigned_ride, register):
        ctx = await assigned_ride()
        stranger, _ = await register("driver")
        resp = await _post_sample(client, stranger, ctx["ride"]["id"])
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_patient_and_admin_cannot_record(self, client, assigned_ride):
        ctx = await assigned_ride()
        for token in (ctx["patient"], ctx["admin"]):
            resp = await _post_sample(client, token, ctx["ride"]["id"])
            assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_out_of_range_coordinates(self, client, assigned_ride):
        ctx = await assigned_ride()
        resp = await _post_sample(client, ctx["driver"], ctx["ride"]["id"], lat=95.0)
        assert resp.status_code == 400


class TestHistory:
    @pytest.mark.asyncio
    async def test_latest_fifty_newest_first(self, client, assigned_ride):
        ctx = await assigned_ride()
        ride_id = ctx["ride"]["id"]
        for i in range(55):
            resp = await _post_sample(client, ctx["driver"], ride_id, lat=40.0 + i / 1000)
            assert resp.status_code == 201

        resp = await client.get(f"/api/v1/rides/{ride_id}/tracking", headers=auth(ctx["patient"]))
        assert resp.status_code == 200
        samples = resp.json()["tracking"]
        assert len(samples) == 50
        assert samples[0]["latitude"] == pytest.approx(40.054)
        assert samples[-1]["latitude"] == pytest.approx(40.005)
        stamps = [s["timestamp"] for s in samples]
        assert stamps == sorted(stamps, reverse=True)

    @pytest.mark.asyncio
    async def test_requester_driver_and_admin_may_read(self, client, assigned_ride):
        ctx = await assigned_ride()
        for token in (ctx["patient"], ctx["driver"], ctx["admin"]):
            resp = await client.get(
                f"/api/v1/rides/{ctx['ride']['id']}/tracking", headers=auth(token)
            )
            assert resp.status_code == 200

    @pytest.mark.asyncio
    async def test_strangers_are_forbidden(self, client, assigned_ride, register):
        ctx = await assigned_ride()
        patient, _ = await register()
        driver, _ = await register("driver")
        for token in (patient, driver):
            resp = await client.get(
                f"/api/v1/rides/{ctx['ride']['id']}/tracking", headers=auth(token)
            )
            assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_missing_ride(self, client, register):
        admin, _ = await register("admin")
        resp = await client.get("/api/v1/rides/4242/tracking", headers=auth(admin))
        assert resp.status_code == 404


class TestBroadcast:
    @pytest.mark.asyncio
    async def test_samples_and_status_changes_reach_subscribers(
        self, client, assigned_ride, broadcaster
    ):
        ctx = await assigned_ride()
        ride_id = ctx["ride"]["id"]
        events = broadcaster.subscribe(ride_id)
        first = asyncio.ensure_future(events.__anext__())
        await asyncio.sleep(0.01)
        assert broadcaster.subscriber_count(ride_id) == 1

        await _post_sample(client, ctx["driver"], ride_id, lat=40.5, lng=-74.5)
        location = await asyncio.wait_for(first, timeout=2)
        assert location["type"] == "location-update"
        assert location["rideId"] == ride_id
        assert location["latitude"] == 40.5

        await client.patch(
            f"/api/v1/rides/{ride_id}", json={"status": "in-progress"}, headers=auth(ctx["driver"])
        )
        status = await asyncio.wait_for(events.__anext__(), timeout=2)
        assert status == {
            "type": "status-update",
            "rideId": ride_id,
            "status": "in-progress",
            "timestamp": status["timestamp"],
        }
        await events.aclose()
        assert broadcaster.subscriber_count(ride_id) == 0
