"""WhatsApp (Meta Cloud API) webhook.

  GET  /webhooks/whatsapp   subscription verification challenge
  POST /webhooks/whatsapp   delivery statuses and button clicks

Meta retries anything that is not a 2xx, so once the signature checks out
the POST handler always answers 200 and logs per-message failures.
"""
import json
import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from backoffice.core.config import settings
from backoffice.core.dedup import DedupCache
from backoffice.core.limiter import limiter
from backoffice.core.security import verify_webhook_signature
from backoffice.db.session import get_sync_session
from backoffice.services.email import MODULE_LABELS
from backoffice.services.remote_approval import RedemptionResult, redeem_token
from backoffice.services.whatsapp import WhatsAppClient

logger = logging.getLogger(__name__)

router = APIRouter()

SIGNATURE_HEADER = "X-Hub-Signature-256"


@router.get("/whatsapp", response_class=PlainTextResponse, summary="Meta webhook verification")
async def verify_subscription(
    mode: str | None = Query(None, alias="hub.mode"),
    verify_token: str | None = Query(None, alias="hub.verify_token"),
    challenge: str | None = Query(None, alias="hub.challenge"),
):
    if mode != "subscribe" or not verify_token or not challenge:
        return PlainTextResponse("Missing parameters", status_code=400)
    if not settings.WHATSAPP_VERIFY_TOKEN or verify_token != settings.WHATSAPP_VERIFY_TOKEN:
        logger.warning("WhatsApp webhook verification with an invalid verify token")
        return PlainTextResponse("Invalid verify token", status_code=403)
    return PlainTextResponse(challenge)


@router.post("/whatsapp", response_class=PlainTextResponse, summary="Meta webhook callbacks")
@limiter.limit(settings.WEBHOOK_RATE_LIMIT)
async def receive_callback(
    request: Request,
    db: Annotated[Session, Depends(get_sync_session)],
):
    body = await request.body()

    app_secret = settings.WHATSAPP_APP_SECRET
    if app_secret:
        if not verify_webhook_signature(body, request.headers.get(SIGNATURE_HEADER), app_secret):
            logger.error("WhatsApp webhook: missing or invalid signature")
            return PlainTextResponse("Invalid signature", status_code=403)
    elif settings.is_production:
        logger.error("WhatsApp webhook: WHATSAPP_APP_SECRET is not configured; refusing callback")
        return PlainTextResponse("Webhook not configured", status_code=403)
    else:
        logger.warning("WhatsApp webhook: WHATSAPP_APP_SECRET not set, skipping signature check")

    try:
        payload = json.loads(body)
    except ValueError:
        return PlainTextResponse("Invalid JSON", status_code=400)
    if not isinstance(payload, dict):
        return PlainTextResponse("Expected a JSON object", status_code=400)

    dedup: DedupCache = request.app.state.dedup
    await run_in_threadpool(process_payload, db, payload, dedup)
    return PlainTextResponse("OK")


# ─── Payload processing ───

def _button_payload(message: dict[str, Any]) -> str | None:
    if message.get("type") == "button":
        return (message.get("button") or {}).get("payload")
    if message.get("type") == "interactive":
        return ((message.get("interactive") or {}).get("button_reply") or {}).get("id")
    return None


def confirmation_text(result: RedemptionResult) -> str:
    if not result.valid:
        return f"Could not process your response: {result.error}."
    label = MODULE_LABELS.get(result.payload.entity_type, result.payload.entity_type)
    if result.payload.action == "reject":
        return f"{label} rejected. The requester will be notified."
    if result.decision and result.decision.request_status == "PENDING":
        return f"{label} approved at your level. It has moved to the next approver."
    return f"{label} approved. The requester will be notified."


def process_payload(
    db: Session,
    payload: dict[str, Any],
    dedup: DedupCache,
    client: WhatsAppClient | None = None,
) -> int:
    """Handle every button click in a webhook payload. Returns clicks processed."""
    client = client or WhatsAppClient()
    processed = 0

    for entry in payload.get("entry", []):
        for change in entry.get("changes", []):
            if change.get("field") != "messages":
                continue
            value = change.get("value", {})

            for status_update in value.get("statuses", []):
                logger.debug(
                    "WhatsApp message %s status=%s", status_update.get("id"), status_update.get("status")
                )

            for message in value.get("messages", []):
                token = _button_payload(message)
                if not token:
                    continue
                message_id = message.get("id")
                if message_id and dedup.seen_recently(message_id):
                    logger.info("WhatsApp webhook: duplicate delivery of %s dropped", message_id)
                    continue

                try:
                    result = redeem_token(db, token, channel="whatsapp")
                except Exception:
                    db.rollback()
                    if message_id:
                        dedup.forget(message_id)
                    logger.exception("WhatsApp webhook: error redeeming token from message %s", message_id)
                    continue
                processed += 1

                if result.valid:
                    logger.info(
                        "WhatsApp: %s executed for %s/%s",
                        result.payload.action, result.payload.entity_type, result.payload.entity_id,
                    )
                else:
                    logger.info("WhatsApp: token rejected (%s)", result.error_code)

                sender = message.get("from")
                if sender:
                    try:
                        client.send_text(sender, confirmation_text(result))
                    except Exception:
                        logger.exception("WhatsApp: confirmation to %s failed", sender)

    return processed
