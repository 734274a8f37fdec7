# app/infra/resend_email.py
import os
from typing import Sequence

import httpx

from app.models.notification import BaseNotification
from app.services.titles import notification_title

RESEND_API_URL = os.getenv("RESEND_API_URL", "https://api.resend.com/emails")


class ResendEmailSender:
    def __init__(self, http_client: httpx.AsyncClient, api_key: str, sender: str, url: str = RESEND_API_URL):
        self.http = http_client
        self.api_key = api_key
        self.sender = sender
        self.url = url

    async def send(self, destinations: Sequence[str], notification: BaseNotification) -> None:
        if not destinations:
            return
        resp = await self.http.post(
            self.url,
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={
                "from": self.sender,
                "to": list(destinations),
                "subject": notification_title(notification),
                "text": notification.message,
            },
        )
        resp.raise_for_status()
