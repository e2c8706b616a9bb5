"""
Real-time ride channel
======================

WS /ws/rides/{ride_id}?token=<access token>

Only callers who may see the ride's tracking can join.  Subscribers receive
every ``status-update`` and ``location-update`` event for the ride.  The
assigned driver may also push ``{"type": "location-update", ...}`` frames,
which are recorded exactly like ``POST /rides/{id}/tracking``.
"""

import asyncio
import contextlib
import json
import logging
from typing import Any, AsyncIterator, Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from meditransport.api.dependencies import get_broadcaster, identity_from_token
from meditransport.api.schemas import TrackingCreateRequest
from meditransport.domain.entities import Identity
from meditransport.domain.errors import AppError, Forbidden, NotFound
from meditransport.domain.visibility import can_view_tracking
from meditransport.infrastructure.broadcast import Broadcaster
from meditransport.infrastructure.database import async_session_factory
from meditransport.infrastructure.repositories import RideRepository
from meditransport.services.tracking import TrackingService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


async def authorize_subscription(
    db: AsyncSession, token: Optional[str], ride_id: int
) -> Identity:
    """Identity behind *token*, provided it may watch *ride_id*."""
    identity = await identity_from_token(token or "", db)
    ride = await RideRepository(db).get_by_id(ride_id)
    if ride is None:
        raise NotFound("Ride not found")
    if not can_view_tracking(identity, ride.user_id, ride.driver_id):
        raise Forbidden("No permission to join this ride")
    return identity


async def _forward(websocket: WebSocket, events: AsyncIterator[dict[str, Any]]) -> None:
    async for event in events:
        await websocket.send_json(event)


async def _record_location(
    identity: Identity, ride_id: int, message: dict[str, Any], broadcaster: Broadcaster
) -> None:
    sample = TrackingCreateRequest.model_validate(message)
    async with async_session_factory() as db:
        await TrackingService(db, broadcaster).record(
            identity,
            ride_id,
            latitude=sample.latitude,
            longitude=sample.longitude,
            speed=sample.speed,
            heading=sample.heading,
        )


async def _receive(
    websocket: WebSocket, identity: Identity, ride_id: int, broadcaster: Broadcaster
) -> None:
    while True:
        raw = await websocket.receive_text()
        try:
            message = json.loads(raw)
            if not isinstance(message, dict):
                raise ValueError("Expected a JSON object")
            if message.get("type") == "location-update":
                await _record_location(identity, ride_id, message, broadcaster)
        except ValidationError as exc:
            await websocket.send_json(
                {
                    "type": "error",
                    "error": "Validation Error",
                    "details": exc.errors(include_url=False, include_context=False),
                }
            )
        except AppError as exc:
            await websocket.send_json({"type": "error", "error": exc.message})
        except ValueError:
            await websocket.send_json({"type": "error", "error": "Malformed message"})


@router.websocket("/ws/rides/{ride_id}")
async def ride_socket(
    websocket: WebSocket,
    ride_id: int,
    token: Optional[str] = None,
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    try:
        async with async_session_factory() as db:
            identity = await authorize_subscription(db, token, ride_id)
    except AppError as exc:
        logger.warning("Denied socket join for ride %s: %s", ride_id, exc.message)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    await websocket.send_json({"type": "subscribed", "rideId": ride_id})
    logger.info("%s joined ride %s", identity.id, ride_id)

    forwarder = asyncio.create_task(_forward(websocket, broadcaster.subscribe(ride_id)))
    receiver = asyncio.create_task(_receive(websocket, identity, ride_id, broadcaster))
    done, pending = await asyncio.wait(
        {forwarder, receiver}, return_when=asyncio.FIRST_COMPLETED
    )
    for task in pending:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    if receiver in done:
        error = receiver.exception()
        if error is not None and not isinstance(error, WebSocketDisconnect):
            raise error
        logger.info("%s left ride %s", identity.id, ride_id)
        return

    # The event stream ended while the client was still connected.
    error = forwarder.exception()
    if error is not None:
        logger.error("Event stream for ride %s failed: %r", ride_id, error)
    else:
        logger.warning("Event stream for ride %s ended", ride_id)
    with contextlib.suppress(RuntimeError, WebSocketDisconnect):
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
