"""
WhatsApp Webhook Endpoints
Subscription handshake and event delivery from the WhatsApp Cloud API.
"""
import logging
import secrets
from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, Query, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.shared.core.config import settings
from app.shared.core.constants import WEBHOOK_SUBSCRIBE_MODE
from app.shared.db.session import get_db
from app.shared.utils.exceptions import TransientPersistenceError, UnrecognizedPayloadError
from app.modules.whatsapp_inbox.services.ingestion_service import IngestionService
from app.modules.whatsapp_inbox.schemas.inbox_schemas import WebhookResponse

router = APIRouter()
logger = logging.getLogger("webhook_api")


@router.get("", response_class=PlainTextResponse, summary="Webhook subscription handshake")
async def verify_webhook(
    mode: Optional[str] = Query(default=None, alias="hub.mode"),
    token: Optional[str] = Query(default=None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(default=None, alias="hub.challenge")
):
    """
    Echo hub.challenge back when the verify token matches.

    - 400: hub.mode or hub.verify_token missing
    - 403: wrong mode or token
    """
    if not mode or not token:
        raise HTTPException(status_code=400, detail="Missing verification parameters")

    token_matches = secrets.compare_digest(
        token.encode("utf-8"),
        settings.WHATSAPP_VERIFY_TOKEN.encode("utf-8")
    )
    if mode != WEBHOOK_SUBSCRIBE_MODE or not token_matches:
        logger.warning(f"Webhook verification rejected (mode={mode})")
        raise HTTPException(status_code=403, detail="Verification failed")

    logger.info("Webhook verified")
    return PlainTextResponse(challenge or "")


@router.post("", response_model=WebhookResponse, summary="WhatsApp webhook handler")
async def receive_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    """
    Handle a WhatsApp Business Account webhook delivery.

    Every message and status event in the payload is applied; one bad event
    does not stop the others.

    - 200: payload processed (counters in the body)
    - 400: body is not JSON
    - 404: body is not a whatsapp_business_account payload
    - 500: a database error hit some events; the provider should redeliver
    """
    try:
        payload = await request.json()
    except ValueError as e:
        logger.error(f"Invalid webhook JSON payload: {str(e)}")
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    # Bodies are user content, keep them out of INFO logs
    logger.debug(f"Webhook payload: {payload}")

    service = IngestionService(db)
    try:
        result = await service.ingest(payload)
    except UnrecognizedPayloadError as e:
        logger.warning(e.message)
        raise HTTPException(status_code=404, detail="Not a WhatsApp Business Account payload")
    except TransientPersistenceError as e:
        logger.error(e.message)
        raise HTTPException(status_code=500, detail=e.message)

    return WebhookResponse(**result.to_dict())
