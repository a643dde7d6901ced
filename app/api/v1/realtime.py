"""Realtime WebSocket endpoint for agent clients."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.api.deps import authenticate_token, get_realtime_hub, get_session_factory
from app.services import conversation as conversation_service
from app.services.realtime import ClientEventError, RealtimeHub, handle_client_event

router = APIRouter(tags=["realtime"])
logger = logging.getLogger(__name__)


@router.websocket("/realtime")
async def realtime(
    websocket: WebSocket,
    hub: Annotated[RealtimeHub, Depends(get_realtime_hub)],
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    token: Annotated[str | None, Query()] = None,
) -> None:
    """Authenticated agent channel.

    Frames in both directions are ``{"event": ..., "data": {...}}``. The
    agent is joined to its own room and to every conversation assigned to it.
    """
    async with session_factory() as db:
        user = await authenticate_token(db, token)
        conversation_ids = (
            await conversation_service.assigned_conversation_ids(db, user.id) if user else []
        )

    if user is None:
        logger.warning("Rejected realtime connection with missing or invalid token")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    session = await hub.connect(websocket, user.id, conversation_ids)
    try:
        while True:
            frame = await websocket.receive_json()
            if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
                await websocket.send_json({"event": "error", "data": {"message": "Invalid frame"}})
                continue

            event = frame["event"]
            data = frame.get("data") if isinstance(frame.get("data"), dict) else {}
            try:
                await handle_client_event(hub, session, session_factory, event, data)
            except ClientEventError as e:
                await websocket.send_json({"event": "error", "data": {"event": event, "message": str(e)}})
            except SQLAlchemyError as e:
                logger.error(f"Database error handling {event} for session {session.session_id}: {e}")
                await websocket.send_json(
                    {"event": "error", "data": {"event": event, "message": "Could not apply event"}}
                )
    except WebSocketDisconnect:
        pass
    except ValueError as e:
        # receive_json on a non-JSON text frame
        logger.warning(f"Closing realtime session {session.session_id}: {e}")
        await websocket.close(code=status.WS_1003_UNSUPPORTED_DATA)
    finally:
        hub.disconnect(session)
