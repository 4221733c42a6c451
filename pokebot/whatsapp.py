"""
WhatsApp Cloud API glue: inbound payload parsing and outbound replies.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from .config import Settings
from .ordering.replies import (
    MAX_BUTTON_TITLE,
    MAX_ROW_TITLE,
    ButtonsReply,
    ListReply,
    Reply,
)

logger = logging.getLogger(__name__)


# -------------------
# Inbound
# -------------------
def extract_messages(body: Dict[str, Any]) -> List[Tuple[str, str]]:
    """
    (sender phone, text) for every text / button reply / list reply in a
    webhook payload. Anything else (statuses, media) is ignored.
    """
    out: List[Tuple[str, str]] = []
    if not isinstance(body, dict):
        return out
    for entry in body.get("entry") or []:
        for change in (entry or {}).get("changes") or []:
            value = (change or {}).get("value") or {}
            for msg in value.get("messages") or []:
                sender = str((msg or {}).get("from") or "").strip()
                text = _message_text(msg or {})
                if sender and text:
                    out.append((sender, text))
    return out


def _message_text(msg: Dict[str, Any]) -> str:
    kind = msg.get("type")
    if kind == "text":
        return str((msg.get("text") or {}).get("body") or "").strip()
    if kind == "interactive":
        inter = msg.get("interactive") or {}
        if inter.get("list_reply"):
            # row ids are product slugs; titles are truncated on the way out
            row = inter["list_reply"]
            return str(row.get("id") or row.get("title") or "").strip()
        return str((inter.get("button_reply") or {}).get("title") or "").strip()
    if kind == "button":
        # quick-reply buttons on template messages
        return str((msg.get("button") or {}).get("text") or "").strip()
    return ""


# -------------------
# Outbound
# -------------------
def build_payload(to: str, reply: Reply) -> Dict[str, Any]:
    if isinstance(reply, ButtonsReply) and reply.buttons:
        return {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "interactive",
            "interactive": {
                "type": "button",
                "body": {"text": reply.text},
                "action": {
                    "buttons": [
                        {"type": "reply", "reply": {"id": f"btn_{idx}", "title": title[:MAX_BUTTON_TITLE]}}
                        for idx, title in enumerate(reply.buttons)
                    ]
                },
            },
        }

    if isinstance(reply, ListReply) and reply.rows:
        return {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "interactive",
            "interactive": {
                "type": "list",
                "body": {"text": reply.text},
                "action": {
                    "button": reply.button[:MAX_BUTTON_TITLE],
                    "sections": [
                        {
                            "title": "Opciones",
                            "rows": [
                                {
                                    "id": row.id,
                                    "title": row.title[:MAX_ROW_TITLE],
                                    "description": row.description,
                                }
                                for row in reply.rows
                            ],
                        }
                    ],
                },
            },
        }

    return {
        "messaging_product": "whatsapp",
        "to": to,
        "type": "text",
        "text": {"body": reply.text},
    }


class WhatsAppSender:
    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> None:
        self.settings = settings
        self.client = client or httpx.AsyncClient(timeout=10.0)

    @property
    def url(self) -> str:
        return f"https://graph.facebook.com/{self.settings.graph_version}/{self.settings.whatsapp_phone_id}/messages"

    async def send(self, to: str, reply: Reply) -> None:
        if not (self.settings.whatsapp_phone_id and self.settings.whatsapp_access_token):
            logger.warning("WhatsApp credentials missing; reply to %s not sent: %r", to, reply.text[:80])
            return
        try:
            resp = await self.client.post(
                self.url,
                headers={"Authorization": f"Bearer {self.settings.whatsapp_access_token}"},
                json=build_payload(to, reply),
            )
            resp.raise_for_status()
        except httpx.HTTPError:
            logger.exception("Failed to send WhatsApp message to %s", to)

    async def aclose(self) -> None:
        await self.client.aclose()
