# app/infra/senders.py
import logging
import os
from typing import List, Protocol, Sequence

import httpx

from app.infra.expo_push import ExpoPushSender
from app.infra.resend_email import ResendEmailSender
from app.infra.whatsapp import WhatsAppSender
from app.models.notification import BaseNotification

logger = logging.getLogger(__name__)


class PushSender(Protocol):
    async def send(self, tokens: Sequence[str], title: str, body: str) -> List[str]:
        """Envía el push y devuelve los tokens que el proveedor rechazó."""
        ...


class NotificationSender(Protocol):
    """SMS/WhatsApp y email: fire-and-forget, no devuelven nada."""

    async def send(self, destinations: Sequence[str], notification: BaseNotification) -> None:
        ...


class LoggingPushSender:
    """Se usa cuando no hay proveedor de push configurado."""

    async def send(self, tokens, title, body):
        logger.debug("[push] deshabilitado; se descartan %d tokens (%s)", len(tokens), title)
        return []


class LoggingSender:
    def __init__(self, channel: str):
        self.channel = channel

    async def send(self, destinations, notification):
        logger.debug(
            "[%s] deshabilitado; notificación %s no enviada a %d destinos",
            self.channel, notification.id, len(destinations),
        )


def build_senders(http_client: httpx.AsyncClient):
    """
    Arma (push, sms, email) según las variables de entorno.
    Si falta la config de un proveedor se usa el sender que sólo loguea.
    """
    if os.getenv("PUSH_NOTIFICATIONS_ENABLED", "true").lower() == "true":
        push = ExpoPushSender(http_client, access_token=os.getenv("EXPO_ACCESS_TOKEN"))
    else:
        push = LoggingPushSender()

    wa_token = os.getenv("WHATSAPP_TOKEN")
    wa_phone_id = os.getenv("WHATSAPP_PHONE_NUMBER_ID")
    if wa_token and wa_phone_id:
        sms = WhatsAppSender(http_client, token=wa_token, phone_number_id=wa_phone_id)
    else:
        logger.warning("[senders] Falta WHATSAPP_TOKEN / WHATSAPP_PHONE_NUMBER_ID; WhatsApp deshabilitado.")
        sms = LoggingSender("whatsapp")

    resend_key = os.getenv("RESEND_API_KEY")
    if resend_key:
        email = ResendEmailSender(
            http_client,
            api_key=resend_key,
            sender=os.getenv("EMAIL_FROM", "Spot <notifications@spot.app>"),
        )
    else:
        logger.warning("[senders] Falta RESEND_API_KEY; email deshabilitado.")
        email = LoggingSender("email")

    return push, sms, email
