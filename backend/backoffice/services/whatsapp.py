"""WhatsApp Business (Meta Cloud API) client.

Endpoint: POST {WHATSAPP_API_BASE_URL}/{phone_number_id}/messages
With WHATSAPP_ENABLED=False nothing is sent; the message is logged instead.
"""
import logging
from typing import Any

import httpx

from backoffice.core.config import settings

logger = logging.getLogger(__name__)


class WhatsAppError(Exception):
    """Graph API rejected the request or could not be reached."""

    def __init__(self, message: str, code: int | None = None, status_code: int | None = None):
        self.code = code
        self.status_code = status_code
        super().__init__(message)


def normalize_phone(phone: str) -> str:
    """Graph API wants digits only: no '+', spaces or dashes."""
    return "".join(ch for ch in phone if ch.isdigit())


def build_approval_template(
    to: str,
    body_params: list[str],
    approve_token: str,
    reject_token: str,
    template_name: str | None = None,
    language: str | None = None,
) -> dict[str, Any]:
    """Template message with a text body and approve/reject quick-reply buttons.

    The button payloads carry the action tokens; Meta echoes the payload back
    in the webhook when the button is tapped.
    """
    return {
        "messaging_product": "whatsapp",
        "to": normalize_phone(to),
        "type": "template",
        "template": {
            "name": template_name or settings.WHATSAPP_APPROVAL_TEMPLATE,
            "language": {"code": language or settings.WHATSAPP_TEMPLATE_LANGUAGE},
            "components": [
                {
                    "type": "body",
                    "parameters": [{"type": "text", "text": p} for p in body_params],
                },
                {
                    "type": "button",
                    "sub_type": "quick_reply",
                    "index": "0",
                    "parameters": [{"type": "payload", "payload": approve_token}],
                },
                {
                    "type": "button",
                    "sub_type": "quick_reply",
                    "index": "1",
                    "parameters": [{"type": "payload", "payload": reject_token}],
                },
            ],
        },
    }


class WhatsAppClient:
    def __init__(
        self,
        phone_number_id: str | None = None,
        access_token: str | None = None,
        base_url: str | None = None,
        enabled: bool | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.phone_number_id = phone_number_id or settings.WHATSAPP_PHONE_NUMBER_ID
        self.access_token = access_token or settings.WHATSAPP_ACCESS_TOKEN
        self.base_url = (base_url or settings.WHATSAPP_API_BASE_URL).rstrip("/")
        self.enabled = settings.WHATSAPP_ENABLED if enabled is None else enabled
        self.timeout = timeout or settings.WHATSAPP_TIMEOUT_SECONDS
        self._transport = transport

    @property
    def messages_url(self) -> str:
        return f"{self.base_url}/{self.phone_number_id}/messages"

    def send_template(
        self,
        to: str,
        body_params: list[str],
        approve_token: str,
        reject_token: str,
        template_name: str | None = None,
    ) -> dict[str, Any]:
        payload = build_approval_template(to, body_params, approve_token, reject_token, template_name)
        return self._post(payload)

    def send_text(self, to: str, text: str) -> dict[str, Any]:
        payload = {
            "messaging_product": "whatsapp",
            "to": normalize_phone(to),
            "type": "text",
            "text": {"body": text},
        }
        return self._post(payload)

    def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        if not self.enabled:
            logger.info("WhatsApp disabled; would send %s message to %s", payload["type"], payload["to"])
            return {"messages": [], "mocked": True}

        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                resp = client.post(self.messages_url, json=payload, headers=headers)
        except httpx.RequestError as e:
            raise WhatsAppError(f"Failed to reach WhatsApp API: {e.__class__.__name__}") from e

        if resp.status_code >= 400:
            try:
                error = resp.json().get("error", {})
            except ValueError:
                error = {}
            raise WhatsAppError(
                error.get("message") or f"WhatsApp API HTTP {resp.status_code}",
                code=error.get("code"),
                status_code=resp.status_code,
            )

        data = resp.json()
        message_ids = [m.get("id") for m in data.get("messages", [])]
        logger.info("WhatsApp %s message sent to %s: %s", payload["type"], payload["to"], message_ids)
        return data
