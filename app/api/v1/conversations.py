"""Conversation and message API endpoints for the agent inbox."""

from typing import Annotated, Literal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.deps import CurrentUser, DBSession, Dispatch, Hub, PaginationParams
from app.models import Conversation, ConversationStatus, Platform, User
from app.schemas.conversation import (
    AssignConversationRequest,
    ConversationDetail,
    ConversationListResponse,
    ConversationResponse,
    ConversationStats,
    ConversationSummary,
    ReadConversationResponse,
    UpdateConversationRequest,
)
from app.schemas.message import (
    MessageListResponse,
    MessageResponse,
    SendMessageRequest,
    SendMessageResponse,
)
from app.services import conversation as conversation_service
from app.services import message_store
from app.services.outbound import send_agent_message
from app.services.platforms.whatsapp import WhatsAppAdapter

router = APIRouter(prefix="/messages", tags=["messages"])


async def _get_conversation(db: DBSession, conversation_id: UUID) -> Conversation:
    conversation = await conversation_service.get_conversation(db, conversation_id)
    if conversation is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Conversation {conversation_id} not found",
        )
    return conversation


@router.get(
    "/conversations",
    response_model=ConversationListResponse,
    summary="List conversations",
)
async def list_conversations(
    db: DBSession,
    user: CurrentUser,
    pagination: Annotated[PaginationParams, Depends()],
    platform: Platform | None = None,
    conversation_status: Annotated[ConversationStatus | None, Query(alias="status")] = None,
    assigned_to: UUID | None = None,
    search: Annotated[str | None, Query(max_length=100)] = None,
    sort_by: str = "last_message_at",
    sort_order: Literal["asc", "desc"] = "desc",
) -> ConversationListResponse:
    """Inbox listing with filters, search and the latest message per conversation."""
    conversations, total = await conversation_service.list_conversations(
        db,
        platform=platform,
        status=conversation_status,
        assigned_to=assigned_to,
        search=search,
        page=pagination.page,
        limit=pagination.limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    latest = await conversation_service.latest_messages(db, [c.id for c in conversations])

    summaries = []
    for conversation in conversations:
        summary = ConversationSummary.model_validate(conversation)
        message = latest.get(conversation.id)
        if message is not None:
            summary.last_message = MessageResponse.model_validate(message)
        summaries.append(summary)

    return ConversationListResponse(
        conversations=summaries,
        pagination=conversation_service.pagination(total, pagination.page, pagination.limit),
    )


@router.get("/stats", response_model=ConversationStats, summary="Inbox statistics")
async def conversation_stats(db: DBSession, user: CurrentUser) -> dict:
    """Conversation counts per platform and status, plus unread totals."""
    return await conversation_service.conversation_stats(db)


@router.get(
    "/conversations/{conversation_id}",
    response_model=ConversationDetail,
    summary="Get conversation with messages",
)
async def get_conversation(conversation_id: UUID, db: DBSession, user: CurrentUser) -> Conversation:
    conversation = await conversation_service.get_conversation_detail(db, conversation_id)
    if conversation is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Conversation {conversation_id} not found",
        )
    return conversation


@router.get(
    "/conversations/{conversation_id}/messages",
    response_model=MessageListResponse,
    summary="List messages in a conversation",
)
async def list_messages(
    conversation_id: UUID,
    db: DBSession,
    user: CurrentUser,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> MessageListResponse:
    """Messages oldest first, paginated."""
    await _get_conversation(db, conversation_id)
    messages, total = await message_store.list_messages(db, conversation_id, page=page, limit=limit)
    return MessageListResponse(
        messages=[MessageResponse.model_validate(m) for m in messages],
        pagination=conversation_service.pagination(total, page, limit),
    )


@router.post(
    "/send",
    response_model=SendMessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Send an agent reply",
)
async def send_message(
    request: SendMessageRequest,
    db: DBSession,
    user: CurrentUser,
    dispatch: Dispatch,
    hub: Hub,
) -> SendMessageResponse:
    """Store the reply and deliver it through the conversation's platform.

    A platform failure does not fail the request: the message is kept and
    ``delivery.status`` is ``failed``.
    """
    conversation = await _get_conversation(db, request.conversation_id)
    return await send_agent_message(db, dispatch, hub, conversation, user, request)


@router.put(
    "/conversations/{conversation_id}/assign",
    response_model=ConversationResponse,
    summary="Assign a conversation",
)
async def assign_conversation(
    conversation_id: UUID,
    request: AssignConversationRequest,
    db: DBSession,
    user: CurrentUser,
    hub: Hub,
) -> Conversation:
    conversation = await _get_conversation(db, conversation_id)
    if request.assigned_to is not None:
        assignee = await db.get(User, request.assigned_to)
        if assignee is None or not assignee.is_active:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"User {request.assigned_to} not found",
            )

    conversation = await conversation_service.assign_conversation(db, conversation, request.assigned_to)
    await db.commit()
    await hub.notify_conversation_assigned(conversation, assigned_by=user.id)
    return conversation


@router.put(
    "/conversations/{conversation_id}/status",
    response_model=ConversationResponse,
    summary="Update conversation status or priority",
)
async def update_conversation_status(
    conversation_id: UUID,
    request: UpdateConversationRequest,
    db: DBSession,
    user: CurrentUser,
    hub: Hub,
) -> Conversation:
    if request.status is None and request.priority is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Provide a status or a priority",
        )
    conversation = await _get_conversation(db, conversation_id)
    conversation = await conversation_service.update_conversation(
        db, conversation, status=request.status, priority=request.priority
    )
    await db.commit()
    await hub.notify_conversation_updated(conversation, updated_by=user.id)
    return conversation


@router.put(
    "/conversations/{conversation_id}/read",
    response_model=ReadConversationResponse,
    summary="Mark a conversation read",
)
async def mark_conversation_read(
    conversation_id: UUID,
    db: DBSession,
    user: CurrentUser,
    hub: Hub,
) -> ReadConversationResponse:
    conversation = await _get_conversation(db, conversation_id)
    marked = await message_store.mark_conversation_read(db, conversation)
    await db.commit()
    await hub.notify_messages_read(conversation.id, read_by=user.id)
    return ReadConversationResponse(
        conversation=ConversationResponse.model_validate(conversation),
        marked_read=marked,
    )


@router.get("/whatsapp/templates", summary="List WhatsApp message templates")
async def list_whatsapp_templates(user: CurrentUser, dispatch: Dispatch) -> dict:
    adapter: WhatsAppAdapter = dispatch.adapter(Platform.WHATSAPP)
    return {"templates": await adapter.list_templates()}
