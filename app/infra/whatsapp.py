# app/infra/whatsapp.py
import os
from typing import Sequence

import httpx

from app.models.notification import BaseNotification
from app.services.titles import notification_title

WHATSAPP_API_URL = os.getenv("WHATSAPP_API_URL", "https://graph.facebook.com/v19.0")


class WhatsAppSender:
    """Mensaje de texto por la WhatsApp Cloud API, uno por número."""

    def __init__(self, http_client: httpx.AsyncClient, token: str, phone_number_id: str, base_url: str = WHATSAPP_API_URL):
        self.http = http_client
        self.token = token
        self.url = f"{base_url}/{phone_number_id}/messages"

    async def send(self, destinations: Sequence[str], notification: BaseNotification) -> None:
        text = f"{notification_title(notification)}\n{notification.message}"
        for phone in destinations:
            resp = await self.http.post(
                self.url,
                headers={"Authorization": f"Bearer {self.token}"},
                json={
                    "messaging_product": "whatsapp",
                    "to": phone,
                    "type": "text",
                    "text": {"body": text},
                },
            )
            resp.raise_for_status()
