"""Webhook endpoints - platform deliveries, subscription handshakes and lead forms."""

import hmac
import json
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import Dispatch, Hub, get_db
from app.config import get_settings
from app.schemas.webhook import LeadCreatedResponse, WebhookAck, WordPressLeadPayload
from app.services import leads as lead_service
from app.services.platforms.errors import UnsupportedPlatformError
from app.services.tracing import clear_trace_context, save_pending_traces, start_trace_context

router = APIRouter(prefix="/webhooks", tags=["webhooks"])
logger = logging.getLogger(__name__)


async def _json_body(request: Request) -> dict:
    try:
        body = json.loads(await request.body())
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body") from None
    if not isinstance(body, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Expected a JSON object")
    return body


@router.get("/health")
async def webhook_health(dispatch: Dispatch) -> dict:
    """Which platforms have outbound credentials configured."""
    return {"status": "ok", "platforms": dispatch.configured()}


@router.post("/wordpress", response_model=LeadCreatedResponse)
async def receive_wordpress_lead(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    x_webhook_secret: Annotated[str | None, Header()] = None,
) -> LeadCreatedResponse:
    """Create a lead from a WordPress contact form submission."""
    secret = get_settings().wordpress_webhook_secret
    if secret and not hmac.compare_digest((x_webhook_secret or "").encode(), secret.encode()):
        logger.warning("Rejected WordPress webhook with invalid secret")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook secret")

    body = await _json_body(request)
    try:
        payload = WordPressLeadPayload.model_validate(body)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=e.errors(include_url=False, include_context=False),
        ) from None

    start_trace_context(platform="wordpress")
    try:
        lead = await lead_service.create_wordpress_lead(db, payload)
        await save_pending_traces(db)
        await db.commit()
    finally:
        clear_trace_context()

    return LeadCreatedResponse(lead_id=lead.id)


@router.get("/{platform}")
async def verify_webhook(
    platform: str,
    dispatch: Dispatch,
    hub_mode: Annotated[str | None, Query(alias="hub.mode")] = None,
    hub_verify_token: Annotated[str | None, Query(alias="hub.verify_token")] = None,
    hub_challenge: Annotated[str | None, Query(alias="hub.challenge")] = None,
):
    """Answer Meta's subscription handshake (Facebook, Instagram)."""
    try:
        adapter = dispatch.adapter(platform)
    except UnsupportedPlatformError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from None
    if not adapter.supports_verification:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{platform} does not use webhook verification",
        )

    challenge = adapter.verify_subscription(hub_mode, hub_verify_token, hub_challenge)
    if challenge is None:
        logger.warning(f"{platform} webhook verification failed")
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content={"error": "Invalid verification token"},
        )

    logger.info(f"{platform} webhook verified")
    return PlainTextResponse(challenge)


@router.post("/{platform}", response_model=WebhookAck)
async def receive_webhook(
    platform: str,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    dispatch: Dispatch,
    hub: Hub,
):
    """Ingest a platform webhook delivery.

    Individual events that fail are counted, not raised: the platform still
    gets a 200 so it does not redeliver the events that did succeed.
    """
    try:
        adapter = dispatch.adapter(platform)
    except UnsupportedPlatformError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from None

    payload = await _json_body(request)

    start_trace_context(platform=adapter.platform.value)
    try:
        result = await adapter.process_webhook(db, payload)
        await save_pending_traces(db)
        await db.commit()
    except Exception as e:
        logger.error(f"Error processing {platform} webhook: {e}", exc_info=True)
        await db.rollback()
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Webhook processing failed"},
        )
    finally:
        clear_trace_context()

    for ingested in result.ingested:
        await hub.notify_new_message(ingested.conversation, ingested.message)

    return WebhookAck(**result.as_response())
