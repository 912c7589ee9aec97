"""WebSocket stream of payment state changes for one browser profile.

- Sends the current state on connect, then every change seen by the profile's coordinator.
- Server sends JSON ping on idle; closes after configurable missed pongs.
"""
from __future__ import annotations

import asyncio
import contextlib

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from application.dtos.checkout import Envelope
from application.services.payment_coordinator import PaymentCoordinatorRegistry
from core.config import settings
from core.logging_config import get_logger
from domain.checkout.entity import PaymentState


logger = get_logger(__name__)


router = APIRouter(prefix="/ws", tags=["WebSocket"])


def _extract_profile_id(ws: WebSocket) -> str | None:
    # Browsers cannot set headers on a WebSocket; prefer the query param
    return ws.query_params.get("profile_id") or ws.headers.get("x-profile-id")


def _registry_from_app(ws: WebSocket) -> PaymentCoordinatorRegistry:
    registry = getattr(ws.app.state, "coordinators", None)
    if registry is None:
        raise RuntimeError("Coordinator registry not initialized. Ensure lifespan sets app.state.coordinators.")
    return registry


async def _pump(ws: WebSocket, queue: "asyncio.Queue[PaymentState]") -> None:
    while True:
        state = await queue.get()
        await ws.send_json(Envelope(type="state", data=state.to_dict()).model_dump())


@router.websocket("/payment-state")
async def payment_state_stream(ws: WebSocket) -> None:
    await ws.accept()
    profile_id = _extract_profile_id(ws)
    if not profile_id:
        await ws.close(code=1008)
        return

    coordinator = await _registry_from_app(ws).get(profile_id)
    queue: asyncio.Queue[PaymentState] = asyncio.Queue()
    unsubscribe = coordinator.subscribe_to_payment_state_changes(queue.put_nowait)
    await queue.put(await coordinator.current_state())
    sender = asyncio.create_task(_pump(ws, queue), name=f"ws-payment-state-{profile_id}")
    logger.info("ws_connected", profile_id=profile_id)

    try:
        idle_ping_interval = float(settings.REALTIME_WS_IDLE_PING_INTERVAL_S)
        pong_grace = float(settings.REALTIME_WS_PONG_GRACE_S)
        missed_limit = int(settings.REALTIME_WS_MISSED_PING_LIMIT)

        missed = 0
        while True:
            if idle_ping_interval > 0:
                try:
                    msg = await asyncio.wait_for(ws.receive_json(), timeout=idle_ping_interval)
                except asyncio.TimeoutError:
                    missed += 1
                    await ws.send_json(Envelope(type="ping").model_dump())
                    try:
                        msg = await asyncio.wait_for(ws.receive_json(), timeout=pong_grace)
                        missed = 0
                    except asyncio.TimeoutError:
                        if missed > missed_limit:
                            await ws.close(code=1001)
                            break
                        continue
            else:
                msg = await ws.receive_json()

            mtype = str(msg.get("type") or "").lower() if isinstance(msg, dict) else ""
            if mtype == "ping":
                await ws.send_json(Envelope(type="pong").model_dump())
            elif mtype == "pong":
                continue
            elif mtype == "state":
                await queue.put(await coordinator.current_state())
            else:
                await ws.send_json(Envelope(type="error", data={"message": "unknown message type"}).model_dump())
    except WebSocketDisconnect:
        logger.info("ws_disconnected", profile_id=profile_id)
    except Exception as exc:
        logger.error("ws_error", profile_id=profile_id, error=str(exc), exc_info=True)
    finally:
        unsubscribe()
        sender.cancel()
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await sender
