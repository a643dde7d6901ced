"""Agent replies: store, send through the platform, then notify."""

import logging

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Conversation, Message, User
from app.schemas.message import DeliveryStatus, MessageResponse, SendMessageRequest, SendMessageResponse
from app.services import message_store
from app.services.dispatch import DispatchService
from app.services.platforms.errors import PlatformError
from app.services.platforms.types import OutgoingMessage
from app.services.realtime import RealtimeHub

logger = logging.getLogger(__name__)


def _outgoing_for(conversation: Conversation, request: SendMessageRequest) -> OutgoingMessage:
    options = dict(request.options)
    # Email replies keep the thread subject unless the agent overrides it
    if conversation.platform == "email" and "subject" not in options:
        subject = (conversation.meta or {}).get("subject")
        if subject:
            options["subject"] = subject if subject.lower().startswith("re:") else f"Re: {subject}"
    return OutgoingMessage(
        to=conversation.platform_id,
        content=request.content,
        type=request.send_type,
        options=options,
    )


async def send_agent_message(
    db: AsyncSession,
    dispatch: DispatchService,
    hub: RealtimeHub,
    conversation: Conversation,
    agent: User,
    request: SendMessageRequest,
) -> SendMessageResponse:
    """Persist an agent reply and deliver it to the customer.

    The message is committed before the platform call. A failed send is
    recorded on the message's metadata and reported in the response; the
    message is never rolled back.
    """
    message: Message = await message_store.record_agent_message(
        db,
        conversation,
        agent_id=agent.id,
        content=request.content,
        message_type=request.message_type,
        metadata={"send_type": request.send_type},
    )
    await db.commit()

    outgoing = _outgoing_for(conversation, request)
    ack: dict | None = None
    error: Exception | None = None
    try:
        adapter = dispatch.adapter(conversation.platform)
        ack = await adapter.send_message(outgoing)
    except (PlatformError, httpx.HTTPError, OSError) as e:
        logger.error(
            f"Delivery of message {message.id} to {conversation.platform}:{conversation.platform_id} failed: {e}"
        )
        error = e

    try:
        if error is None:
            await message_store.attach_delivery_ack(db, message, adapter.extract_message_id(ack), ack)
        else:
            await message_store.record_delivery_failure(db, message, error)
        await db.commit()
    except SQLAlchemyError as e:
        # The message row was committed above; only the ack/failure note is lost
        logger.error(f"Could not store delivery outcome for message {message.id}: {e}")
        await db.rollback()
        await db.refresh(message)
        await db.refresh(conversation)

    await hub.notify_new_message(conversation, message)

    delivery = (
        DeliveryStatus(status="sent")
        if error is None
        else DeliveryStatus(status="failed", error=str(error) or type(error).__name__)
    )
    return SendMessageResponse(message=MessageResponse.model_validate(message), delivery=delivery)
