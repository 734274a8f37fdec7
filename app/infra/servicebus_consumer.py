# app/infra/servicebus_consumer.py
import asyncio
import logging
import os
from datetime import datetime, timezone
from typing import Optional

from azure.servicebus import TransportType
from azure.servicebus.aio import ServiceBusClient
from pydantic import ValidationError
from sqlalchemy.orm import sessionmaker

from app.models.queue_message import QueueMessage
from app.services.notification_handler import NotificationDispatcher

logger = logging.getLogger(__name__)

# ====== env ======
SB_CONN_STR = os.getenv("AZURE_SERVICE_BUS_CONNECTION_STRING")
SB_QUEUE = os.getenv("AZURE_SERVICE_BUS_QUEUE_NAME", "notifications-queue")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class NotificationConsumer:
    """
    Consumer asíncrono de Azure Service Bus:
      - AMQP sobre WebSocket (443) para funcionar en App Service.
      - Cada mensaje es un QueueMessage: se persiste y se hace fan-out
        dentro de UNA transacción.
      - Confirma (complete) sólo si procesó OK.
      - Mensajes que no validan van a la DLQ (reintentar no los arregla).
      - Reconecta con backoff si se cae.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        dispatcher: NotificationDispatcher,
        conn_str: Optional[str] = SB_CONN_STR,
        queue_name: Optional[str] = SB_QUEUE,
        backoff: float = 5,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.conn_str = conn_str
        self.queue_name = queue_name
        self.backoff = backoff

        self.started_at: Optional[str] = None
        self.last_message_at: Optional[str] = None
        self.last_error: Optional[str] = None

    def status(self) -> dict:
        return {
            "startedAt": self.started_at,
            "lastMessageAt": self.last_message_at,
            "lastError": self.last_error,
            "queue": self.queue_name,
            "hasConnectionString": bool(self.conn_str),
        }

    async def handle_message(self, receiver, msg) -> None:
        # >>> OJO: el body llega como iterable de bytes <<<
        body_bytes = b"".join(part for part in msg.body)
        try:
            event = QueueMessage.model_validate_json(body_bytes)
        except ValidationError as e:
            self.last_error = f"mensaje inválido: {e.error_count()} errores"
            logger.warning("[consumer] ❗ Mensaje inválido, a DLQ: %s", e)
            await receiver.dead_letter_message(
                msg,
                reason="InvalidNotification",
                error_description=str(e)[:1024],
            )
            return

        try:
            with self.session_factory.begin() as session:
                created, report = await self.dispatcher.process_notifications(session, event.notifications)
        except Exception as e:
            # No completar => reintenta (o DLQ por MaxDeliveryCount)
            self.last_error = repr(e)
            logger.exception("[consumer] ❗ Error procesando mensaje")
            return

        await receiver.complete_message(msg)
        self.last_message_at = _now()
        logger.info(
            "[consumer] ✅ Mensaje completado: %d notificaciones, %d entregas, %d fallidas",
            len(created), report.attempts, len(report.failures),
        )

    async def run(self):
        if not self.conn_str:
            logger.warning("⚠️  Falta AZURE_SERVICE_BUS_CONNECTION_STRING. No se consumirá la cola.")
            return

        if not self.queue_name:
            logger.warning("⚠️  Falta AZURE_SERVICE_BUS_QUEUE_NAME. No se consumirá la cola.")
            return

        self.started_at = _now()

        while True:
            try:
                logger.info("[consumer] ⚙️ Conectando a Service Bus (cola: %s) con WebSockets 443…", self.queue_name)
                async with ServiceBusClient.from_connection_string(
                    self.conn_str,
                    transport_type=TransportType.AmqpOverWebsocket,  # clave para 443
                ) as sb_client:
                    receiver = sb_client.get_queue_receiver(
                        queue_name=self.queue_name,
                        max_wait_time=20,
                    )
                    async with receiver:
                        logger.info("[consumer] ✅ Escuchando cola: %s", self.queue_name)
                        while True:
                            messages = await receiver.receive_messages(
                                max_message_count=10,
                                max_wait_time=10,
                            )
                            if not messages:
                                await asyncio.sleep(0.5)
                                continue

                            for msg in messages:
                                await self.handle_message(receiver, msg)

                # si sale del with sin error, pequeña pausa antes de reconectar
                await asyncio.sleep(1)

            except asyncio.CancelledError:
                logger.info("[consumer] detenido")
                raise
            except Exception as e:
                self.last_error = repr(e)
                logger.error("[consumer] 🔁 Error de conexión, reintento en %ss -> %s", self.backoff, e)
                await asyncio.sleep(self.backoff)
