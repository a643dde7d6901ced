"""Realtime notifier - pushes inbox events to connected agent sessions.

Sessions join rooms: ``user:{id}`` for their own notifications and
``conversation:{id}`` for each conversation they are watching. Room
membership lives in process memory and is rebuilt when a client reconnects.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models import Conversation, ConversationStatus, Message, User
from app.schemas.conversation import ConversationResponse
from app.schemas.message import MessageResponse
from app.services import conversation as conversation_service
from app.services import message_store

logger = logging.getLogger(__name__)


class ClientSocket(Protocol):
    async def accept(self) -> None: ...

    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


def user_room(user_id: UUID) -> str:
    return f"user:{user_id}"


def conversation_room(conversation_id: UUID) -> str:
    return f"conversation:{conversation_id}"


@dataclass(eq=False)
class AgentSession:
    """One connected socket belonging to an agent."""

    user_id: UUID
    websocket: ClientSocket
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    rooms: set[str] = field(default_factory=set)


class RealtimeHub:
    """Room-based fan-out over agent websockets."""

    def __init__(self) -> None:
        self.sessions: dict[str, AgentSession] = {}
        self.rooms: dict[str, set[str]] = {}

    # Connection lifecycle

    async def connect(
        self, websocket: ClientSocket, user_id: UUID, conversation_ids: Iterable[UUID] = ()
    ) -> AgentSession:
        """Accept a socket and join the agent's personal and assigned rooms."""
        await websocket.accept()
        session = AgentSession(user_id=user_id, websocket=websocket)
        self.sessions[session.session_id] = session

        self.join(session, user_room(user_id))
        for conversation_id in conversation_ids:
            self.join(session, conversation_room(conversation_id))

        logger.info(
            f"Agent {user_id} connected (session {session.session_id}, {len(session.rooms)} rooms). "
            f"Active sessions: {len(self.sessions)}"
        )
        return session

    def disconnect(self, session: AgentSession) -> None:
        """Drop a session and every room membership it held."""
        for room in list(session.rooms):
            self.leave(session, room)
        self.sessions.pop(session.session_id, None)
        logger.info(f"Agent {session.user_id} disconnected. Active sessions: {len(self.sessions)}")

    def join(self, session: AgentSession, room: str) -> None:
        self.rooms.setdefault(room, set()).add(session.session_id)
        session.rooms.add(room)

    def leave(self, session: AgentSession, room: str) -> None:
        members = self.rooms.get(room)
        if members is not None:
            members.discard(session.session_id)
            if not members:
                del self.rooms[room]
        session.rooms.discard(room)

    def members(self, room: str) -> set[str]:
        return set(self.rooms.get(room, ()))

    def join_user(self, user_id: UUID, room: str) -> None:
        """Join every live session of an agent to a room."""
        for session_id in self.members(user_room(user_id)):
            session = self.sessions.get(session_id)
            if session is not None:
                self.join(session, room)

    # Fan-out

    async def emit(
        self,
        rooms: str | Iterable[str],
        event: str,
        data: dict,
        exclude: AgentSession | None = None,
    ) -> int:
        """Send an event to every session in the given rooms, once per session.

        A socket that fails to receive is disconnected; the others still get
        the event.

        Returns:
            Number of sessions the event was delivered to
        """
        room_list = [rooms] if isinstance(rooms, str) else list(rooms)
        targets: set[str] = set()
        for room in room_list:
            targets |= self.rooms.get(room, set())
        if exclude is not None:
            targets.discard(exclude.session_id)

        frame = {"event": event, "data": data}
        delivered = 0
        for session_id in targets:
            session = self.sessions.get(session_id)
            if session is None:
                continue
            try:
                await session.websocket.send_json(frame)
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping session {session_id} after failed send of {event}: {e}")
                self.disconnect(session)
        return delivered

    # Domain events

    @staticmethod
    def _rooms_for(conversation: Conversation) -> list[str]:
        rooms = [conversation_room(conversation.id)]
        if conversation.assigned_to is not None:
            rooms.append(user_room(conversation.assigned_to))
        return rooms

    async def notify_new_message(self, conversation: Conversation, message: Message) -> int:
        return await self.emit(
            self._rooms_for(conversation),
            "new_message",
            {
                "conversation_id": str(conversation.id),
                "message": MessageResponse.model_validate(message).model_dump(mode="json"),
                "conversation": ConversationResponse.model_validate(conversation).model_dump(mode="json"),
            },
        )

    async def notify_conversation_assigned(self, conversation: Conversation, assigned_by: UUID | None) -> int:
        # The new assignee watches the thread from now on
        if conversation.assigned_to is not None:
            self.join_user(conversation.assigned_to, conversation_room(conversation.id))
        return await self.emit(
            self._rooms_for(conversation),
            "conversation_assigned",
            {
                "conversation_id": str(conversation.id),
                "assigned_to": str(conversation.assigned_to) if conversation.assigned_to else None,
                "assigned_by": str(assigned_by) if assigned_by else None,
            },
        )

    async def notify_conversation_updated(self, conversation: Conversation, updated_by: UUID | None) -> int:
        return await self.emit(
            self._rooms_for(conversation),
            "conversation_status_updated",
            {
                "conversation_id": str(conversation.id),
                "status": conversation.status,
                "priority": conversation.priority,
                "updated_by": str(updated_by) if updated_by else None,
            },
        )

    async def notify_messages_read(
        self, conversation_id: UUID, read_by: UUID, message_id: UUID | None = None
    ) -> int:
        """Tell watchers that one message (or, with no id, the whole thread) was read."""
        return await self.emit(
            conversation_room(conversation_id),
            "message_read_update",
            {
                "conversation_id": str(conversation_id),
                "message_id": str(message_id) if message_id else None,
                "read_by": str(read_by),
            },
        )

    async def notify_typing(self, session: AgentSession, conversation_id: UUID, typing: bool) -> int:
        # Relayed only; typing state is never stored
        return await self.emit(
            conversation_room(conversation_id),
            "user_typing" if typing else "user_stopped_typing",
            {"conversation_id": str(conversation_id), "user_id": str(session.user_id)},
            exclude=session,
        )


class ClientEventError(Exception):
    """A client frame could not be handled."""


def _uuid(data: dict, key: str) -> UUID:
    try:
        return UUID(str(data[key]))
    except (KeyError, ValueError) as e:
        raise ClientEventError(f"'{key}' must be a valid id") from e


async def handle_client_event(
    hub: RealtimeHub,
    session: AgentSession,
    session_factory: async_sessionmaker[AsyncSession],
    event: str,
    data: dict,
) -> None:
    """Apply one client -> server frame.

    Raises ClientEventError for unknown events and bad payloads; the socket
    endpoint reports those back to the client.
    """
    if event == "join_conversation":
        hub.join(session, conversation_room(_uuid(data, "conversation_id")))
        return
    if event == "leave_conversation":
        hub.leave(session, conversation_room(_uuid(data, "conversation_id")))
        return
    if event in ("typing_start", "typing_stop"):
        await hub.notify_typing(session, _uuid(data, "conversation_id"), typing=event == "typing_start")
        return

    async with session_factory() as db:
        if event == "message_read":
            message = await message_store.mark_message_read(db, _uuid(data, "message_id"))
            if message is None:
                raise ClientEventError("Message not found")
            await db.commit()
            await hub.notify_messages_read(message.conversation_id, session.user_id, message_id=message.id)
            return

        if event == "assign_conversation":
            conversation = await _conversation(db, data)
            assignee = _uuid(data, "user_id") if data.get("user_id") else None
            if assignee is not None:
                user = await db.get(User, assignee)
                if user is None or not user.is_active:
                    raise ClientEventError("Assignee not found")
            conversation = await conversation_service.assign_conversation(db, conversation, assignee)
            await db.commit()
            await hub.notify_conversation_assigned(conversation, assigned_by=session.user_id)
            return

        if event == "update_conversation_status":
            conversation = await _conversation(db, data)
            try:
                status = ConversationStatus(data.get("status"))
            except ValueError as e:
                raise ClientEventError(f"Invalid status: {data.get('status')}") from e
            conversation = await conversation_service.update_conversation(db, conversation, status=status)
            await db.commit()
            await hub.notify_conversation_updated(conversation, updated_by=session.user_id)
            return

    raise ClientEventError(f"Unknown event: {event}")


async def _conversation(db: AsyncSession, data: dict) -> Conversation:
    conversation = await conversation_service.get_conversation(db, _uuid(data, "conversation_id"))
    if conversation is None:
        raise ClientEventError("Conversation not found")
    return conversation


@lru_cache
def get_realtime_hub() -> RealtimeHub:
    """Get the process-wide realtime hub."""
    return RealtimeHub()
