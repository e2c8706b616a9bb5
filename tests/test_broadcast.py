"""
Tests for the per-ride broadcaster and WebSocket join authorisation.
"""

import asyncio

import pytest

from meditransport.api.routes.realtime import authorize_subscription
from meditransport.domain.errors import Forbidden, NotFound, Unauthorized
from meditransport.infrastructure.broadcast import (
    Broadcaster,
    InMemoryBroadcaster,
    publish_safely,
    ride_channel,
)
from tests.helpers import auth


class ExplodingBroadcaster(Broadcaster):
    async def publish(self, ride_id, event):
        raise ConnectionError("redis is down")

    async def subscribe(self, ride_id):
        if False:
            yield {}


async def _next(events, timeout=1.0):
    return await asyncio.wait_for(events.__anext__(), timeout)


class TestInMemoryBroadcaster:
    def test_channel_name(self):
        assert ride_channel(42) == "ride:42"

    @pytest.mark.asyncio
    async def test_fan_out_to_every_subscriber_of_the_ride(self):
        hub = InMemoryBroadcaster()
        first, second, other = hub.subscribe(1), hub.subscribe(1), hub.subscribe(2)
        pending = [asyncio.ensure_future(_next(gen)) for gen in (first, second)]
        stray = asyncio.ensure_future(_next(other, timeout=0.2))
        await asyncio.sleep(0.01)
        assert hub.subscriber_count(1) == 2

        await hub.publish(1, {"type": "status-update", "rideId": 1})

        received = await asyncio.gather(*pending)
        assert received == [{"type": "status-update", "rideId": 1}] * 2
        with pytest.raises(asyncio.TimeoutError):
            await stray

        for gen in (first, second, other):
            await gen.aclose()

    @pytest.mark.asyncio
    async def test_publish_without_subscribers_is_a_no_op(self):
        hub = InMemoryBroadcaster()
        await hub.publish(7, {"type": "status-update"})
        assert hub.subscriber_count(7) == 0

    @pytest.mark.asyncio
    async def test_closing_a_subscription_unregisters_it(self):
        hub = InMemoryBroadcaster()
        events = hub.subscribe(3)
        waiter = asyncio.ensure_future(_next(events))
        await asyncio.sleep(0.01)
        assert hub.subscriber_count(3) == 1

        await hub.publish(3, {"n": 1})
        assert await waiter == {"n": 1}
        await events.aclose()
        assert hub.subscriber_count(3) == 0

    @pytest.mark.asyncio
    async def test_slow_subscriber_drops_overflow(self):
        hub = InMemoryBroadcaster(queue_size=2)
        events = hub.subscribe(5)
        waiter = asyncio.ensure_future(_next(events))
        await asyncio.sleep(0.01)

        for n in range(4):
            await hub.publish(5, {"n": n})

        assert await waiter == {"n": 0}
        assert await _next(events) == {"n": 1}
        # the third and fourth arrived while the queue was full
        with pytest.raises(asyncio.TimeoutError):
            await _next(events, timeout=0.1)


class TestPublishSafely:
    @pytest.mark.asyncio
    async def test_failure_is_logged_not_raised(self, caplog):
        ok = await publish_safely(ExplodingBroadcaster(), 9, {"type": "status-update"})
        assert ok is False
        assert "Broadcast to ride 9 failed" in caplog.text

    @pytest.mark.asyncio
    async def test_success(self):
        assert await publish_safely(InMemoryBroadcaster(), 9, {}) is True


class TestJoinAuthorisation:
    @pytest.mark.asyncio
    async def test_requester_may_join(self, db_session, register, book_ride):
        patient, user = await register()
        ride = await book_ride(patient)
        identity = await authorize_subscription(db_session, patient, ride["id"])
        assert identity.id == user["id"]

    @pytest.mark.asyncio
    async def test_admin_may_join(self, db_session, register, book_ride):
        admin, _ = await register("admin")
        patient, _ = await register()
        ride = await book_ride(patient)
        identity = await authorize_subscription(db_session, admin, ride["id"])
        assert identity.role.value == "admin"

    @pytest.mark.asyncio
    async def test_assigned_driver_may_join(
        self, client, db_session, register, book_ride, driver_id_of
    ):
        admin, _ = await register("admin")
        patient, _ = await register()
        driver, driver_user = await register("driver")
        ride = await book_ride(patient)
        resp = await client.post(
            f"/api/v1/rides/{ride['id']}/assign",
            json={"driverId": await driver_id_of(driver)},
            headers=auth(admin),
        )
        assert resp.status_code == 200
        identity = await authorize_subscription(db_session, driver, ride["id"])
        assert identity.id == driver_user["id"]

    @pytest.mark.asyncio
    async def test_unassigned_driver_is_refused(self, db_session, register, book_ride):
        patient, _ = await register()
        driver, _ = await register("driver")
        ride = await book_ride(patient)
        with pytest.raises(Forbidden):
            await authorize_subscription(db_session, driver, ride["id"])

    @pytest.mark.asyncio
    async def test_other_patient_is_refused(self, db_session, register, book_ride):
        owner, _ = await register()
        stranger, _ = await register()
        ride = await book_ride(owner)
        with pytest.raises(Forbidden):
            await authorize_subscription(db_session, stranger, ride["id"])

    @pytest.mark.asyncio
    async def test_bad_token_is_refused(self, db_session, register, book_ride):
        patient, _ = await register()
        ride = await book_ride(patient)
        with pytest.raises(Unauthorized):
            await authorize_subscription(db_session, "not-a-jwt", ride["id"])
        with pytest.raises(Unauthorized):
            await authorize_subscription(db_session, None, ride["id"])

    @pytest.mark.asyncio
    async def test_missing_ride(self, db_session, register):
        patient, _ = await register()
        with pytest.raises(NotFound):
            await authorize_subscription(db_session, patient, 999999)
