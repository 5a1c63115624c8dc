# provisioning/api/routers/events.py
"""
WebSocket stream of store changes for one organization.

Messages Sent (Server -> Client):
    {
        "type": "change",
        "timestamp": "2024-01-15T12:00:00Z",
        "data": {
            "table": "freelancer_platforms",
            "action": "update",
            "organization_id": "uuid",
            "key": "freelancer-uuid:amove",
            "record": {...},
            "occurred_at": "..."
        }
    }

    The table onboarding_progress carries live OnboardingProgress snapshots.

Messages Received (Client -> Server):
    {"type": "ping"}  answered with {"type": "pong"}
"""

import asyncio
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from ...services.change_feed import ChangeFeed
from ..deps import get_ws_services

logger = logging.getLogger("provisioning.api.events")

router = APIRouter(tags=["Events"])


@router.websocket("/events/{organization_id}")
async def organization_events(
    websocket: WebSocket,
    organization_id: UUID,
    table: Optional[str] = Query(None, description="Only stream changes to this table"),
):
    feed: ChangeFeed = get_ws_services(websocket).feed
    await websocket.accept()
    logger.info(f"Event stream opened for org {organization_id} table={table or '*'}")

    async def receive_messages():
        try:
            while True:
                data = await websocket.receive_json()
                if data.get("type") == "ping":
                    await websocket.send_json({"type": "pong"})
        except WebSocketDisconnect:
            pass

    async def forward_changes():
        async for event in feed.stream(organization_id, table=table):
            await websocket.send_json({
                "type": "change",
                "timestamp": event.occurred_at.isoformat(),
                "data": event.model_dump(mode="json", exclude={"origin"}),
            })

    receive_task = asyncio.create_task(receive_messages())
    forward_task = asyncio.create_task(forward_changes())
    try:
        done, pending = await asyncio.wait(
            [receive_task, forward_task],
            return_when=asyncio.FIRST_COMPLETED,
        )
        for task in pending:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        for task in done:
            if task.exception() is not None and not isinstance(task.exception(), WebSocketDisconnect):
                logger.warning(f"Event stream for org {organization_id} ended: {task.exception()}")
    finally:
        logger.info(f"Event stream closed for org {organization_id}")
